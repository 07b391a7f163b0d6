"""Attachment extraction from ``input_image`` data URLs on user messages."""

from __future__ import annotations

import base64
import binascii
import logging
import re

from ..parsing.schemas import ContentBlock, InputImageBlock
from .schemas import AttachmentKind, UserAttachment

LOGGER = logging.getLogger(__name__)

MAX_PREVIEW_BYTES = 2 * 1024 * 1024
MAX_PREVIEW_CHARS = 20_000
TRUNCATION_MARKER = "\n\n[truncated]"
FINGERPRINT_SAMPLE_LENGTH = 96

_DATA_URL_PATTERN = re.compile(r"^data:([^;,]+)((?:;[^;,]*)*);base64,(.*)$", re.IGNORECASE | re.DOTALL)
_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE_PATTERN = re.compile(r"\s+")

_MARKDOWN_MIME_TYPES = frozenset({"text/markdown", "text/x-markdown"})
_CODE_MIME_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "text/xml",
        "application/javascript",
        "application/x-javascript",
        "text/javascript",
        "application/typescript",
        "application/x-typescript",
        "text/typescript",
        "application/x-python",
        "text/x-python",
        "application/x-sh",
        "application/x-shellscript",
        "text/x-sh",
        "text/x-shellscript",
        "application/x-yaml",
        "application/yaml",
        "text/yaml",
        "text/x-yaml",
        "application/x-toml",
        "text/toml",
        "text/html",
        "text/css",
    }
)
_CODE_MIME_SUFFIXES = ("+json", "+xml")
_BINARY_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/octet-stream",
        "application/gzip",
        "application/x-gzip",
        "application/x-tar",
        "application/x-7z-compressed",
    }
)
_BINARY_MIME_PREFIXES = ("audio/", "video/", "font/")
_TEXTUAL_KINDS = frozenset({"text", "markdown", "code"})


def classify_mime_type(mime_type: str) -> AttachmentKind:
    """Map a MIME type to an attachment kind."""
    mime = mime_type.strip().lower()
    if mime.startswith("image/"):
        return "image"
    if mime in _MARKDOWN_MIME_TYPES:
        return "markdown"
    if mime in _CODE_MIME_TYPES or mime.endswith(_CODE_MIME_SUFFIXES):
        return "code"
    if mime.startswith("text/"):
        return "text"
    if mime in _BINARY_MIME_TYPES or mime.startswith(_BINARY_MIME_PREFIXES):
        return "binary"
    return "unknown"


def estimate_base64_size(payload: str) -> int | None:
    """Return the decoded byte length of a base64 payload, or None when it is not valid base64."""
    if not _BASE64_PATTERN.match(payload) or len(payload) % 4 == 1:
        return None
    padding = len(payload) - len(payload.rstrip("="))
    unpadded = len(payload) - padding
    return (unpadded * 3) // 4


def parse_data_url_attachment(url: str) -> UserAttachment | None:
    """Build an attachment from a ``data:<mime>;base64,<payload>`` URL.

    Returns None for URLs that are not base64 data URLs. Decode problems never
    raise; they mark the attachment as not previewable with a reason.
    """
    match = _DATA_URL_PATTERN.match(url.strip())
    if match is None:
        return None

    mime_type = match.group(1).strip().lower()
    payload = _WHITESPACE_PATTERN.sub("", match.group(3))
    kind = classify_mime_type(mime_type)
    size_bytes = estimate_base64_size(payload)

    if size_bytes is None:
        LOGGER.debug("Attachment with MIME type %s has an invalid base64 payload", mime_type)
        return UserAttachment(
            kind=kind, mime_type=mime_type, size_bytes=None, previewable=False, preview_reason="decode_error"
        )

    if kind == "image":
        return UserAttachment(
            kind=kind,
            mime_type=mime_type,
            size_bytes=size_bytes,
            previewable=True,
            data_url=f"data:{mime_type};base64,{payload}",
        )

    if kind == "binary":
        return UserAttachment(
            kind=kind, mime_type=mime_type, size_bytes=size_bytes, previewable=False, preview_reason="binary"
        )

    if kind not in _TEXTUAL_KINDS:
        return UserAttachment(
            kind=kind, mime_type=mime_type, size_bytes=size_bytes, previewable=False, preview_reason="unsupported_mime"
        )

    if size_bytes > MAX_PREVIEW_BYTES:
        return UserAttachment(
            kind=kind, mime_type=mime_type, size_bytes=size_bytes, previewable=False, preview_reason="too_large"
        )

    try:
        text = base64.b64decode(_pad_base64(payload), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        LOGGER.debug("Failed to decode %s attachment: %s", mime_type, exc)
        return UserAttachment(
            kind=kind, mime_type=mime_type, size_bytes=size_bytes, previewable=False, preview_reason="decode_error"
        )

    truncated = len(text) > MAX_PREVIEW_CHARS
    if truncated:
        text = text[:MAX_PREVIEW_CHARS] + TRUNCATION_MARKER
    return UserAttachment(
        kind=kind,
        mime_type=mime_type,
        size_bytes=size_bytes,
        previewable=True,
        text_content=text,
        truncated=truncated,
    )


def extract_attachments(blocks: tuple[ContentBlock, ...]) -> list[UserAttachment]:
    """Collect attachments from the ``input_image`` blocks of one message."""
    attachments: list[UserAttachment] = []
    for block in blocks:
        if not isinstance(block, InputImageBlock):
            continue
        attachment = parse_data_url_attachment(block.image_url)
        if attachment is not None:
            attachments.append(attachment)
    return attachments


def attachment_fingerprint(attachment: UserAttachment) -> str:
    sample = (attachment.text_content or attachment.data_url or "")[:FINGERPRINT_SAMPLE_LENGTH]
    size = "" if attachment.size_bytes is None else str(attachment.size_bytes)
    return "|".join((attachment.mime_type, attachment.kind, size, sample))


def merge_attachments(
    existing: tuple[UserAttachment, ...], incoming: tuple[UserAttachment, ...]
) -> tuple[UserAttachment, ...]:
    """Append incoming attachments whose fingerprint is not already present."""
    seen = {attachment_fingerprint(attachment) for attachment in existing}
    merged = list(existing)
    for attachment in incoming:
        fingerprint = attachment_fingerprint(attachment)
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        merged.append(attachment)
    return tuple(merged)


def _pad_base64(payload: str) -> str:
    return payload + "=" * (-len(payload) % 4)
