"""Exception hierarchy shared by the anchoring, integration and session layers."""
from __future__ import annotations

__all__ = [
    "AnchoringError",
    "ConfigError",
    "PayloadValidationError",
    "ServiceError",
    "LabelingServiceError",
    "SuggestionServiceError",
    "SuggestionTimeoutError",
]


class AnchoringError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(AnchoringError, ValueError):
    """Raised when configuration content is invalid."""


class PayloadValidationError(AnchoringError):
    """Raised when an external payload does not match its schema."""

    def __init__(self, message: str, *, errors: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.errors = errors


class ServiceError(AnchoringError):
    """Error communicating with an external collaborator service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LabelingServiceError(ServiceError):
    """The span labeling service failed or returned a non-2xx status."""


class SuggestionServiceError(ServiceError):
    """The suggestion service failed or returned a non-2xx status."""


class SuggestionTimeoutError(SuggestionServiceError):
    """A suggestion request did not finish within its timeout.

    Distinct from user cancellation, which is never reported as an error.
    """

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Suggestion request timed out after {timeout_ms} ms")
        self.timeout_ms = timeout_ms
