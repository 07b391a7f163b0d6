"""Structural validation of raw rollout JSON values into typed entries.

Each entry kind and payload variant has its own parser that returns the typed
value or ``None``. Nothing here raises: a value that fails its predicate is
rejected whole and the caller drops it.
"""

from __future__ import annotations

from typing import Any, Callable

from .schemas import (
    TOKEN_FIELDS,
    AgentMessagePayload,
    AgentReasoningPayload,
    CompactedEntry,
    ContentBlock,
    ContextCompactedPayload,
    EventMsgEntry,
    EventMsgPayload,
    FunctionCallOutputPayload,
    FunctionCallPayload,
    InputImageBlock,
    InputTextBlock,
    LogEntry,
    MessagePayload,
    OutputTextBlock,
    ReasoningPayload,
    ResponseItemEntry,
    ResponseItemPayload,
    SessionMetaEntry,
    SessionMetaGit,
    TokenCountInfo,
    TokenCountPayload,
    TokenUsageValues,
    TurnContextEntry,
    UnknownContentBlock,
    UserMessagePayload,
)

_MESSAGE_ROLES = frozenset({"developer", "user", "assistant"})


def validate_entry(value: Any) -> LogEntry | None:
    """Return the typed entry for a raw JSON value, or None when it is not a valid entry."""
    if not isinstance(value, dict):
        return None
    entry_type = value.get("type")
    parser = _ENTRY_PARSERS.get(entry_type) if isinstance(entry_type, str) else None
    if parser is None:
        return None
    return parser(value)


def is_log_entry(value: Any) -> bool:
    """Return True when a raw JSON value validates as a rollout entry."""
    return validate_entry(value) is not None


# Field helpers


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _optional_strs(record: dict[str, Any], keys: tuple[str, ...]) -> dict[str, str | None] | None:
    """Collect optional string fields; None when any present field has a wrong type."""
    values: dict[str, str | None] = {}
    for key in keys:
        if key not in record:
            values[key] = None
            continue
        value = record[key]
        if not isinstance(value, str):
            return None
        values[key] = value
    return values


def _is_str_or_record(record: dict[str, Any], key: str) -> bool:
    return key not in record or isinstance(record[key], (str, dict))


def _entry_timestamp(value: dict[str, Any]) -> str | None:
    timestamp = value.get("timestamp")
    return timestamp if isinstance(timestamp, str) else None


# Content blocks


def parse_content_block(value: Any) -> ContentBlock | None:
    if not isinstance(value, dict):
        return None
    block_type = value.get("type")
    if not isinstance(block_type, str):
        return None

    if block_type == "input_text":
        text = value.get("text")
        return InputTextBlock(text=text) if isinstance(text, str) else None
    if block_type == "output_text":
        text = value.get("text")
        return OutputTextBlock(text=text) if isinstance(text, str) else None
    if block_type == "input_image":
        image_url = value.get("image_url")
        return InputImageBlock(image_url=image_url) if isinstance(image_url, str) else None

    text = value.get("text", None)
    if text is not None and not isinstance(text, str):
        return None
    return UnknownContentBlock(type=block_type, text=text)


# response_item payloads


def parse_message_payload(value: dict[str, Any]) -> MessagePayload | None:
    role = value.get("role")
    content = value.get("content")
    if role not in _MESSAGE_ROLES or not isinstance(content, list):
        return None

    blocks: list[ContentBlock] = []
    for raw_block in content:
        block = parse_content_block(raw_block)
        if block is None:
            return None
        blocks.append(block)
    return MessagePayload(role=role, content=tuple(blocks))


def parse_function_call_payload(value: dict[str, Any]) -> FunctionCallPayload | None:
    name = value.get("name")
    arguments = value.get("arguments")
    call_id = value.get("call_id")
    if not (isinstance(name, str) and isinstance(arguments, str) and isinstance(call_id, str)):
        return None
    return FunctionCallPayload(name=name, arguments=arguments, call_id=call_id)


def parse_function_call_output_payload(value: dict[str, Any]) -> FunctionCallOutputPayload | None:
    call_id = value.get("call_id")
    output = value.get("output")
    if not (isinstance(call_id, str) and isinstance(output, str)):
        return None
    return FunctionCallOutputPayload(call_id=call_id, output=output)


def parse_reasoning_payload(value: dict[str, Any]) -> ReasoningPayload | None:
    summary = value.get("summary")
    if not isinstance(summary, list):
        return None

    texts: list[str] = []
    for item in summary:
        if isinstance(item, str):
            texts.append(item)
        elif isinstance(item, dict) and isinstance(item.get("text"), str):
            texts.append(item["text"])
        else:
            return None

    encrypted_content = value.get("encrypted_content")
    if encrypted_content is not None and not isinstance(encrypted_content, str):
        return None
    return ReasoningPayload(summary=tuple(texts), encrypted_content=encrypted_content)


_RESPONSE_PAYLOAD_PARSERS: dict[str, Callable[[dict[str, Any]], ResponseItemPayload | None]] = {
    "message": parse_message_payload,
    "function_call": parse_function_call_payload,
    "function_call_output": parse_function_call_output_payload,
    "reasoning": parse_reasoning_payload,
}


def parse_response_item_payload(value: Any) -> ResponseItemPayload | None:
    if not isinstance(value, dict):
        return None
    payload_type = value.get("type")
    parser = _RESPONSE_PAYLOAD_PARSERS.get(payload_type) if isinstance(payload_type, str) else None
    return parser(value) if parser is not None else None


# event_msg payloads


def parse_token_usage(value: Any) -> TokenUsageValues | None:
    """Parse one usage snapshot; every counter must be present and numeric."""
    if not isinstance(value, dict):
        return None

    counters: dict[str, int] = {}
    for field_name in TOKEN_FIELDS:
        raw_value = value.get(field_name)
        if not _is_number(raw_value):
            return None
        counters[field_name] = int(raw_value)
    return TokenUsageValues(**counters)


def parse_token_count_payload(value: dict[str, Any]) -> TokenCountPayload | None:
    info = value.get("info")
    if info is None:
        return TokenCountPayload(info=None)
    if not isinstance(info, dict):
        return None

    total_usage = parse_token_usage(info.get("total_token_usage"))
    last_usage = parse_token_usage(info.get("last_token_usage"))
    if total_usage is None or last_usage is None:
        return None

    context_window = info.get("model_context_window")
    if not _is_number(context_window):
        return None

    return TokenCountPayload(
        info=TokenCountInfo(
            total_usage=total_usage,
            last_usage=last_usage,
            model_context_window=int(context_window),
        )
    )


def parse_agent_reasoning_payload(value: dict[str, Any]) -> AgentReasoningPayload | None:
    text = value.get("text")
    return AgentReasoningPayload(text=text) if isinstance(text, str) else None


def parse_agent_message_payload(value: dict[str, Any]) -> AgentMessagePayload | None:
    message = value.get("message")
    return AgentMessagePayload(message=message) if isinstance(message, str) else None


def parse_user_message_payload(value: dict[str, Any]) -> UserMessagePayload | None:
    message = value.get("message")
    return UserMessagePayload(message=message) if isinstance(message, str) else None


def parse_context_compacted_payload(value: dict[str, Any]) -> ContextCompactedPayload | None:
    return ContextCompactedPayload()


_EVENT_PAYLOAD_PARSERS: dict[str, Callable[[dict[str, Any]], EventMsgPayload | None]] = {
    "token_count": parse_token_count_payload,
    "agent_reasoning": parse_agent_reasoning_payload,
    "agent_message": parse_agent_message_payload,
    "user_message": parse_user_message_payload,
    "context_compacted": parse_context_compacted_payload,
}


def parse_event_msg_payload(value: Any) -> EventMsgPayload | None:
    if not isinstance(value, dict):
        return None
    payload_type = value.get("type")
    parser = _EVENT_PAYLOAD_PARSERS.get(payload_type) if isinstance(payload_type, str) else None
    return parser(value) if parser is not None else None


# Entries


def parse_session_meta_entry(value: dict[str, Any]) -> SessionMetaEntry | None:
    timestamp = _entry_timestamp(value)
    payload = value.get("payload")
    if timestamp is None or not isinstance(payload, dict):
        return None

    fields = _optional_strs(payload, ("id", "cwd", "originator", "cli_version", "model_provider", "model"))
    if fields is None:
        return None
    if not _is_str_or_record(payload, "base_instructions"):
        return None

    git: SessionMetaGit | None = None
    if "git" in payload:
        raw_git = payload["git"]
        if not isinstance(raw_git, dict):
            return None
        git_fields = _optional_strs(raw_git, ("commit_hash", "branch", "repository_url"))
        if git_fields is None:
            return None
        git = SessionMetaGit(**git_fields)

    if fields["id"] is None and fields["cwd"] is None:
        return None

    return SessionMetaEntry(
        timestamp=timestamp,
        base_instructions=payload.get("base_instructions"),
        git=git,
        raw=value,
        **fields,
    )


def parse_response_item_entry(value: dict[str, Any]) -> ResponseItemEntry | None:
    timestamp = _entry_timestamp(value)
    if timestamp is None:
        return None
    payload = parse_response_item_payload(value.get("payload"))
    if payload is None:
        return None
    return ResponseItemEntry(timestamp=timestamp, payload=payload, raw=value)


def parse_turn_context_entry(value: dict[str, Any]) -> TurnContextEntry | None:
    timestamp = _entry_timestamp(value)
    payload = value.get("payload")
    if timestamp is None or not isinstance(payload, dict):
        return None

    fields = _optional_strs(
        payload,
        ("turn_id", "cwd", "approval_policy", "model", "personality", "effort", "summary", "user_instructions"),
    )
    if fields is None:
        return None
    for key in ("sandbox_policy", "collaboration_mode", "truncation_policy"):
        if not _is_str_or_record(payload, key):
            return None

    if fields["cwd"] is None and fields["model"] is None:
        return None

    return TurnContextEntry(
        timestamp=timestamp,
        turn_id=fields["turn_id"],
        cwd=fields["cwd"],
        model=fields["model"],
        effort=fields["effort"],
        collaboration_mode=_collaboration_mode_label(payload.get("collaboration_mode")),
        approval_policy=fields["approval_policy"],
        personality=fields["personality"],
        summary=fields["summary"],
        raw=value,
    )


def parse_event_msg_entry(value: dict[str, Any]) -> EventMsgEntry | None:
    timestamp = _entry_timestamp(value)
    if timestamp is None:
        return None
    payload = parse_event_msg_payload(value.get("payload"))
    if payload is None:
        return None
    return EventMsgEntry(timestamp=timestamp, payload=payload, raw=value)


def parse_compacted_entry(value: dict[str, Any]) -> CompactedEntry | None:
    timestamp = _entry_timestamp(value)
    if timestamp is None:
        return None
    payload = value.get("payload", {})
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    return CompactedEntry(timestamp=timestamp, message=message if isinstance(message, str) else None, raw=value)


def _collaboration_mode_label(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        mode = value.get("mode")
        if isinstance(mode, str):
            return mode.strip() or None
    return None


_ENTRY_PARSERS: dict[str, Callable[[dict[str, Any]], LogEntry | None]] = {
    "session_meta": parse_session_meta_entry,
    "response_item": parse_response_item_entry,
    "turn_context": parse_turn_context_entry,
    "event_msg": parse_event_msg_entry,
    "compacted": parse_compacted_entry,
}
