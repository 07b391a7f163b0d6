"""Detection of the bootstrap preludes Codex injects at the start of a session."""

from __future__ import annotations

import re
from typing import Literal

PreludeKind = Literal[
    "agents_instructions",
    "environment_context",
    "permissions_instructions",
    "collaboration_mode",
    "turn_aborted",
]

_AGENTS_HEADING = re.compile(r"^#?\s*AGENTS\.md instructions\b", re.IGNORECASE)
_AGENTS_INSTRUCTIONS_BLOCK = re.compile(r"<INSTRUCTIONS>.*</INSTRUCTIONS>", re.IGNORECASE | re.DOTALL)
_ENVIRONMENT_CONTEXT_WRAPPER = re.compile(r"^<environment_context>.*</environment_context>$", re.IGNORECASE | re.DOTALL)
_ENVIRONMENT_CONTEXT_CWD = re.compile(r"<cwd>.*</cwd>", re.IGNORECASE | re.DOTALL)
_ENVIRONMENT_CONTEXT_SHELL = re.compile(r"<shell>.*</shell>", re.IGNORECASE | re.DOTALL)
_PERMISSIONS_WRAPPER = re.compile(
    r"^<permissions\s+instructions>.*</permissions\s+instructions>$", re.IGNORECASE | re.DOTALL
)
_COLLABORATION_MODE_WRAPPER = re.compile(r"^<collaboration_mode>.*</collaboration_mode>$", re.IGNORECASE | re.DOTALL)
# Injected after the user interrupts a running turn.
_TURN_ABORTED_WRAPPER = re.compile(r"^<turn_aborted>.*</turn_aborted>$", re.IGNORECASE | re.DOTALL)


def classify_prelude(content: str) -> PreludeKind | None:
    """Return the prelude kind of a system message, or None for ordinary content."""
    value = content.strip()
    if not value:
        return None

    if _AGENTS_HEADING.search(value) and _AGENTS_INSTRUCTIONS_BLOCK.search(value):
        return "agents_instructions"
    if (
        _ENVIRONMENT_CONTEXT_WRAPPER.search(value)
        and _ENVIRONMENT_CONTEXT_CWD.search(value)
        and _ENVIRONMENT_CONTEXT_SHELL.search(value)
    ):
        return "environment_context"
    if _PERMISSIONS_WRAPPER.search(value):
        return "permissions_instructions"
    if _COLLABORATION_MODE_WRAPPER.search(value):
        return "collaboration_mode"
    if _TURN_ABORTED_WRAPPER.search(value):
        return "turn_aborted"
    return None
