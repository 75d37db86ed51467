"""Error taxonomy for the availability and reservation engine."""

from typing import Any


class ReservationError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ReservationValidationError(ReservationError):
    """Structural or business-rule violation; never retried automatically."""

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.issues = issues


class CapacityExceededError(ReservationValidationError):
    def __init__(self, remaining: int, message: str | None = None) -> None:
        super().__init__(message or f"{remaining} remaining")
        self.remaining = remaining


class InvalidTransitionError(ReservationValidationError):
    pass


class RateLimitedError(ReservationError):
    """Retryable after a cooldown; reported without internal detail."""

    def __init__(self, retry_after: int | None = None) -> None:
        super().__init__("Rate limit exceeded")
        self.retry_after = retry_after


class StoreUnavailableError(ReservationError):
    pass


class ConfigUnavailableError(StoreUnavailableError):
    """Opening hours could not be fetched on a path that must not fall back to defaults."""


class SlotBusyError(ReservationError):
    """Another request holds the commit guard for the same slot."""


class ReservationNotFoundError(ReservationError):
    pass


class CryptoError(ReservationError):
    """Missing key material, malformed blob or authentication tag mismatch."""


def issues_from_pydantic(exc: Any) -> list[dict[str, Any]]:
    """Flatten a ``pydantic.ValidationError`` into ``[{field, message, code}]``."""
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors()
    ]
