from __future__ import annotations


class InhouseError(Exception):
    """Base exception for in-house roster failures."""


class StoreError(InhouseError):
    """Raised when the persisted roster store cannot be read or written."""

    def __init__(self, operation: str, range_name: str, message: str = "") -> None:
        self.operation = operation
        self.range_name = range_name
        detail = f"{operation} failed for {range_name}"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)


class RemoteApiError(InhouseError):
    """Raised when the tournament-code API call fails."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MissingCredentialError(RemoteApiError):
    """Raised when no Riot API key is configured."""


class AccessForbiddenError(RemoteApiError):
    """Raised when the Riot API answers 403 for the configured key."""


class RenderError(InhouseError):
    """Raised when a signup display could not be updated."""


__all__ = [
    "InhouseError",
    "StoreError",
    "RemoteApiError",
    "MissingCredentialError",
    "AccessForbiddenError",
    "RenderError",
]
