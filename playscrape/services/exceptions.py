from __future__ import annotations


class AppLookupError(Exception):
    """Base class for lookup pipeline errors."""

    def __init__(self, message: str, *, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class InvalidInputError(AppLookupError):
    """Identifier failed basic shape checks; never retried."""


class FetchError(AppLookupError):
    """Transport failure, timeout or non-success status from the storefront."""

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        status_code: int | None = None,
        cause: BaseException | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, identifier=identifier)
        self.status_code = status_code
        self.cause = cause
        self.attempts = attempts


class ExtractionError(AppLookupError):
    """Listing was fetched but no title could be resolved."""

    NOT_FOUND = "not_found"
    BLOCKED = "blocked"

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        reason: str = NOT_FOUND,
    ) -> None:
        super().__init__(message, identifier=identifier)
        self.reason = reason

    @property
    def blocked(self) -> bool:
        return self.reason == self.BLOCKED


__all__ = [
    "AppLookupError",
    "InvalidInputError",
    "FetchError",
    "ExtractionError",
]
