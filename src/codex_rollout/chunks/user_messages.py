"""User message sanitizing and cross-channel de-duplication.

The same user turn is usually logged twice: once as a ``response_item`` user
message and once as a ``user_message`` event. The two copies can differ in
whitespace, image tags and attachment placeholders, so equality is decided on
normalized text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal

from .attachments import merge_attachments
from .schemas import UserAttachment, UserChunk

MessageSource = Literal["response", "event"]

_IMAGE_TAG_PATTERN = re.compile(r"</?image\b[^>]*>", re.IGNORECASE)
_PLACEHOLDER_PATTERN = re.compile(r"\[(?:Image|Attachment) #\d+\]", re.IGNORECASE)
_TRAILING_LINE_SPACE_PATTERN = re.compile(r"[ \t]+\n")
_LEADING_LINE_SPACE_PATTERN = re.compile(r"\n[ \t]+")
_EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class PendingUserMessage:
    content: str
    timestamp: str
    source: MessageSource
    attachments: tuple[UserAttachment, ...] = ()

    def to_chunk(self) -> UserChunk:
        return UserChunk(content=self.content, timestamp=self.timestamp, attachments=self.attachments)


def sanitize_user_text(value: str) -> str:
    """Strip image tags, tidy line whitespace and collapse blank-line runs."""
    value = _IMAGE_TAG_PATTERN.sub("", value)
    value = _TRAILING_LINE_SPACE_PATTERN.sub("\n", value)
    value = _LEADING_LINE_SPACE_PATTERN.sub("\n", value)
    value = _EXCESS_NEWLINES_PATTERN.sub("\n\n", value)
    return value.strip()


def normalize_comparable_text(value: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", value).strip()


def count_placeholders(value: str) -> int:
    return len(_PLACEHOLDER_PATTERN.findall(sanitize_user_text(value)))


def _text_without_placeholders(value: str) -> str:
    return normalize_comparable_text(_PLACEHOLDER_PATTERN.sub(" ", sanitize_user_text(value)))


def is_equivalent_user_content(left: str, right: str) -> bool:
    """Return True when two user message texts describe the same turn."""
    if normalize_comparable_text(sanitize_user_text(left)) == normalize_comparable_text(sanitize_user_text(right)):
        return True

    text_only_left = _text_without_placeholders(left)
    text_only_right = _text_without_placeholders(right)
    if text_only_left and text_only_left == text_only_right:
        return True

    if not text_only_left and not text_only_right:
        left_count = count_placeholders(left)
        return left_count > 0 and left_count == count_placeholders(right)

    return False


def pick_preferred(pending: PendingUserMessage, incoming: PendingUserMessage) -> PendingUserMessage:
    """Choose which of two equivalent copies to keep; attachments from both are merged."""
    pending_count = count_placeholders(pending.content)
    incoming_count = count_placeholders(incoming.content)
    if incoming_count != pending_count:
        preferred = incoming if incoming_count > pending_count else pending
    elif pending.source == "event" and incoming.source == "response":
        preferred = incoming
    else:
        preferred = pending

    other = incoming if preferred is pending else pending
    return replace(preferred, attachments=merge_attachments(preferred.attachments, other.attachments))
