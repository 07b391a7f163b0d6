"""Custom exceptions for rollout parsing and stats failures."""


class RolloutError(Exception):
    """Base exception for rollout analysis errors."""


class RolloutReadError(RolloutError):
    """Raised when a rollout file cannot be opened or read."""


class StatsScopeError(RolloutError):
    """Raised when a stats scope string cannot be parsed."""


class RateCardError(RolloutError):
    """Raised when a rate card file is invalid and strict loading was requested."""
