"""Typed rollout entries and the parsers that build sessions from them."""
