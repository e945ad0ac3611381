"""Error types shared by the grant and mention store adapters."""

from __future__ import annotations

__all__ = ["AllianceHQError", "StoreUnavailable", "MalformedImport"]


class AllianceHQError(Exception):
    """Base class for errors surfaced to operators."""


class StoreUnavailable(AllianceHQError):
    """A store adapter could not complete a read or write."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"{operation} failed: {reason}")
        self.operation = operation
        self.reason = reason


class MalformedImport(AllianceHQError):
    """An import payload failed shape validation and was rejected as a whole."""
