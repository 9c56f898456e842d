from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ValidationError(AppError):
    """Missing or empty required field. Never retried automatically."""


class TransientError(AppError):
    """Persistence unreachable or too slow. Safe to retry with backoff."""


class ConnectionRejected(AppError):
    """Realtime handshake carried no parseable user identity."""
