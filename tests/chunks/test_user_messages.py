"""Tests for user message sanitizing and de-duplication."""

from __future__ import annotations

from codex_rollout.chunks.schemas import UserAttachment
from codex_rollout.chunks.user_messages import (
    PendingUserMessage,
    count_placeholders,
    is_equivalent_user_content,
    pick_preferred,
    sanitize_user_text,
)


def test_sanitize_user_text() -> None:
    assert sanitize_user_text("  a  \n\n\n\n  b <image name=x.png>") == "a\n\nb"
    assert sanitize_user_text("<image></image>") == ""


def test_count_placeholders() -> None:
    assert count_placeholders("[Image #1] and [attachment #2] but not [Image 3]") == 2


def test_is_equivalent_user_content() -> None:
    assert is_equivalent_user_content("fix  the\nbug", "fix the bug")
    assert is_equivalent_user_content("look [Image #1]", "look")
    assert is_equivalent_user_content("[Image #1]", "[Image #2]")
    assert not is_equivalent_user_content("[Image #1]", "[Image #1] [Image #2]")
    assert not is_equivalent_user_content("first", "second")


def test_pick_preferred_favors_placeholders_then_response_source() -> None:
    attachment = UserAttachment(kind="text", mime_type="text/plain", size_bytes=5, previewable=True, text_content="hi")
    event_copy = PendingUserMessage(content="look", timestamp="t1", source="event", attachments=(attachment,))
    response_copy = PendingUserMessage(content="look [Image #1]", timestamp="t2", source="response")

    preferred = pick_preferred(event_copy, response_copy)

    assert preferred.content == "look [Image #1]"
    assert preferred.attachments == (attachment,)

    plain_response = PendingUserMessage(content="look", timestamp="t3", source="response")
    assert pick_preferred(event_copy, plain_response).source == "response"
    assert pick_preferred(plain_response, event_copy).source == "response"
