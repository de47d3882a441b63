# src/daynote/core/errors.py

"""Exception hierarchy shared by stores, the reconciler and the CLI."""

from __future__ import annotations


class DaynoteError(Exception):
    """Base class for all daynote errors."""


class ValidationError(DaynoteError, ValueError):
    """A record or payload is missing a required field or holds an invalid value."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class SnapshotFormatError(ValidationError):
    """An import payload is not a recognizable notes/plans snapshot."""


class NotFound(DaynoteError, LookupError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class AlreadyExists(DaynoteError):
    def __init__(self, kind: str, record_id: str | None = None, *, reason: str = "already_exists") -> None:
        msg = f"{kind} already exists" if record_id is None else f"{kind} already exists: {record_id}"
        super().__init__(msg)
        self.kind = kind
        self.record_id = record_id
        self.reason = reason


class AuthFailure(DaynoteError):
    """Remote backend rejected the session credentials."""


class StoreError(DaynoteError):
    """Backend or transport failure not covered by a more specific error."""
