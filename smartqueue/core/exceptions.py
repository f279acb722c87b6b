"""
Domain Exceptions

Store and transition errors propagate to callers (the API maps them to
HTTP status codes). Predictor errors are raised inside predictor
implementations only and are converted to tagged results before they
reach the queue engine.
"""

from typing import Optional


class SmartQueueError(Exception):
    """Base class for all SmartQueue errors."""


class UnknownCanteenError(SmartQueueError):
    """Raised when a canteen id does not resolve in the registry."""

    def __init__(self, canteen_id: str):
        self.canteen_id = canteen_id
        super().__init__(f"Unknown canteen: {canteen_id}")


class TokenNotFoundError(SmartQueueError):
    """Raised when a token lookup misses."""

    def __init__(self, token_id: str):
        self.token_id = token_id
        super().__init__(f"Token not found: {token_id}")


class InvalidTransitionError(SmartQueueError):
    """Raised when a status change is not an edge of the lifecycle graph."""

    def __init__(self, token_id: str, current: str, requested: str):
        self.token_id = token_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Token {token_id} cannot move from {current} to {requested}"
        )


class PredictorUnavailableError(SmartQueueError):
    """The predictor is not configured, unreachable, or errored."""

    def __init__(self, message: str = "Predictor unavailable", cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class MalformedPredictorResponseError(SmartQueueError):
    """The predictor answered, but not with the expected schema."""
