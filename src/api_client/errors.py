"""
Error taxonomy for the video translation client.

Only the transport retrier and configuration loading raise these; the
invoker, poller and orchestrator hand them back as values so the CLI can
report the first failure and exit non-zero.
"""

from __future__ import annotations


class VideoTranslationError(Exception):
    """Base class for every error raised or reported by this package."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(VideoTranslationError):
    """A required credential or endpoint is missing or invalid."""


class TransientTransportError(VideoTranslationError):
    """Retryable failure: 429/5xx gateway statuses or a connection failure."""


class PermanentApiError(VideoTranslationError):
    """Non-retryable failure, optionally carrying the vendor error code."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.error_code = error_code


class ExhaustedRetries(VideoTranslationError):
    """Every retry attempt hit a transient failure."""

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            f"Gave up after {attempts} attempts: {message}",
            status_code,
        )
        self.last_error = message
        self.attempts = attempts


class OperationError(VideoTranslationError):
    """An operation ended without succeeding."""

    def __init__(
        self,
        message: str,
        operation_id: str,
        last_status: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.operation_id = operation_id
        self.last_status = last_status


class OperationTimedOut(OperationError):
    """The poller deadline passed before a terminal status was seen."""


class OperationFailed(OperationError):
    """The server reported the operation as Failed."""


class OperationCancelled(OperationError):
    """The server reported the operation as cancelled."""
