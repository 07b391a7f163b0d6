"""Tests for bootstrap prelude detection."""

from __future__ import annotations

from codex_rollout.parsing.bootstrap import classify_prelude


def test_classify_prelude_kinds() -> None:
    agents = "# AGENTS.md instructions for /repo\n\n<INSTRUCTIONS>\nUse uv.\n</INSTRUCTIONS>"
    environment = "<environment_context>\n  <cwd>/repo</cwd>\n  <shell>zsh</shell>\n</environment_context>"
    permissions = "<permissions instructions>\nsandbox: workspace-write\n</permissions instructions>"
    collaboration = "<collaboration_mode>plan</collaboration_mode>"
    aborted = "  <turn_aborted>user interrupted</turn_aborted>\n"

    assert classify_prelude(agents) == "agents_instructions"
    assert classify_prelude(environment) == "environment_context"
    assert classify_prelude(permissions) == "permissions_instructions"
    assert classify_prelude(collaboration) == "collaboration_mode"
    assert classify_prelude(aborted) == "turn_aborted"


def test_partial_wrappers_are_not_preludes() -> None:
    """A wrapper missing its required inner tags is ordinary content."""
    assert classify_prelude("<environment_context><cwd>/repo</cwd></environment_context>") is None
    assert classify_prelude("AGENTS.md instructions without a block") is None
    assert classify_prelude("please read <turn_aborted>x</turn_aborted>") is None
    assert classify_prelude("   ") is None
    assert classify_prelude("Run the tests") is None
