"""Exceptions shared by route handlers, pipelines and service clients."""
from __future__ import annotations


class APIError(Exception):
    """An error that maps directly onto an HTTP response.

    Rendered as ``{"error": ..., "detail": ..., "code": ...}`` by the
    application exception handler.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        *,
        detail: str | dict | list | None = None,
        code: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.detail = detail
        self.code = code
        self.headers = headers


class ServiceError(Exception):
    """Raised when a third-party music service call fails."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: dict | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class ServiceAuthError(ServiceError):
    """Raised when a third-party service rejects our credentials."""

    def __init__(self, message: str, *, code: str) -> None:
        super().__init__(message, status_code=401)
        self.code = code


class RatingsImportError(Exception):
    """Raised when a ratings CSV cannot be read or parsed."""
    pass


class GeniusMatchError(Exception):
    """Raised when the Genius matching pipeline fails."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
