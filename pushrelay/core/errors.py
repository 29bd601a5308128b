from __future__ import annotations


class PushRelayError(Exception):
    """Base error for pushrelay."""


class StoreError(PushRelayError):
    """Retry or metric store read/write failure."""


class PayloadValidationError(PushRelayError, ValueError):
    """Notification payload or type does not match the schema."""


class SweepInProgressError(PushRelayError):
    """Another sweeper currently holds the sweep lease."""


class PushSendError(PushRelayError):
    """Push gateway rejected or failed to deliver a message."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        # Exposed for send-error classification on retry records and metrics.
        self.code = code
