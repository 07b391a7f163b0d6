"""Reconstruction and usage accounting for Codex rollout logs."""

__version__ = "0.1.0"
