# speed_scout/errors.py
"""
Exception hierarchy shared by the scheduler, the storage layer and the server.
"""
from __future__ import annotations

import enum
from typing import Optional


class SpeedScoutError(Exception):
    """Base class for all project errors."""


class InvalidInput(SpeedScoutError, ValueError):
    """Malformed URL, content hash, share id or empty URL set. Never retried."""


class ErrorKind(str, enum.Enum):
    """Classification of a failed analysis, set by the gateway."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"


class AnalysisError(SpeedScoutError):
    """One URL+device analysis failed upstream."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: Optional[int] = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.body = body

    @classmethod
    def from_status(cls, status: int, message: str, body: str = "") -> AnalysisError:
        if status in (401, 403):
            kind = ErrorKind.UNAUTHORIZED
        elif status == 429:
            kind = ErrorKind.RATE_LIMITED
        else:
            kind = ErrorKind.UPSTREAM
        return cls(kind, message, status=status, body=body)

    def __repr__(self) -> str:
        return f"<AnalysisError kind={self.kind.value} status={self.status} message={str(self)!r}>"


class BlobNotFound(SpeedScoutError, KeyError):
    """No report blob under the requested key."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "blob not found"


class ShareNotFound(SpeedScoutError):
    """No share record exists for the id."""


class ShareExpired(SpeedScoutError):
    """The share record exists but its expiry time has passed."""


__all__ = [
    "SpeedScoutError",
    "InvalidInput",
    "ErrorKind",
    "AnalysisError",
    "BlobNotFound",
    "ShareNotFound",
    "ShareExpired",
]
