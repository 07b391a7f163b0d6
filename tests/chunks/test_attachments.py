"""Tests for data URL attachment extraction."""

from __future__ import annotations

import base64

import pytest

from codex_rollout.chunks.attachments import (
    MAX_PREVIEW_CHARS,
    TRUNCATION_MARKER,
    classify_mime_type,
    estimate_base64_size,
    extract_attachments,
    merge_attachments,
    parse_data_url_attachment,
)
from codex_rollout.parsing.schemas import InputImageBlock, InputTextBlock


@pytest.mark.parametrize(
    ("mime_type", "expected"),
    [
        ("IMAGE/PNG", "image"),
        ("text/markdown", "markdown"),
        ("application/json", "code"),
        ("application/vnd.api+json", "code"),
        ("text/csv", "text"),
        ("application/pdf", "binary"),
        ("video/mp4", "binary"),
        ("application/x-custom", "unknown"),
    ],
)
def test_classify_mime_type(mime_type: str, expected: str) -> None:
    assert classify_mime_type(mime_type) == expected


def test_text_attachment_is_decoded() -> None:
    attachment = parse_data_url_attachment("data:text/plain;charset=utf-8;base64,aGVsbG8=")

    assert attachment is not None
    assert attachment.kind == "text"
    assert attachment.size_bytes == 5
    assert attachment.previewable
    assert attachment.text_content == "hello"
    assert not attachment.truncated


def test_long_text_attachment_is_truncated() -> None:
    payload = base64.b64encode(b"a" * (MAX_PREVIEW_CHARS + 1)).decode()

    attachment = parse_data_url_attachment(f"data:text/markdown;base64,{payload}")

    assert attachment is not None
    assert attachment.truncated
    assert attachment.text_content == "a" * MAX_PREVIEW_CHARS + TRUNCATION_MARKER


def test_image_attachment_keeps_data_url() -> None:
    attachment = parse_data_url_attachment("data:image/png;base64,iVBORw0K\nGgo=")

    assert attachment is not None
    assert attachment.previewable
    assert attachment.data_url == "data:image/png;base64,iVBORw0KGgo="
    assert attachment.text_content is None


@pytest.mark.parametrize(
    ("url", "reason", "size"),
    [
        ("data:application/pdf;base64,JVBERi0=", "binary", 5),
        ("data:application/x-custom;base64,AAAA", "unsupported_mime", 3),
        ("data:text/plain;base64,@@@@", "decode_error", None),
        ("data:text/plain;base64,//4=", "decode_error", 2),
        ("data:text/plain;base64," + "QUFB" * 699051, "too_large", 2097153),
    ],
)
def test_attachments_that_cannot_be_previewed(url: str, reason: str, size: int | None) -> None:
    attachment = parse_data_url_attachment(url)

    assert attachment is not None
    assert not attachment.previewable
    assert attachment.preview_reason == reason
    assert attachment.size_bytes == size


def test_non_data_urls_are_ignored() -> None:
    assert parse_data_url_attachment("https://example.com/image.png") is None
    assert parse_data_url_attachment("data:text/plain,hello") is None


def test_estimate_base64_size() -> None:
    assert estimate_base64_size("aGVsbG8=") == 5
    assert estimate_base64_size("aGVsbG8") == 5
    assert estimate_base64_size("aGVsb") is None
    assert estimate_base64_size("a!b=") is None


def test_extract_and_merge_attachments() -> None:
    """Only input_image blocks are considered, and duplicates merge by fingerprint."""
    blocks = (
        InputTextBlock(text="see attached"),
        InputImageBlock(image_url="data:text/plain;base64,aGVsbG8="),
        InputImageBlock(image_url="https://example.com/remote.png"),
    )

    attachments = tuple(extract_attachments(blocks))
    other = parse_data_url_attachment("data:text/plain;base64,d29ybGQ=")
    assert other is not None
    merged = merge_attachments(attachments, (attachments[0], other))

    assert len(attachments) == 1
    assert [attachment.text_content for attachment in merged] == ["hello", "world"]
