"""Conversation chunk reconstruction from validated rollout entries."""
