"""
Error taxonomy shared by the engines, orchestrators and the HTTP boundary.

Every failure that should reach a caller is a ``DSUError`` carrying an
``ErrorKind``; the underlying cause, when there is one, travels as
``__cause__``.
"""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    EXTERNAL = "external"
    UNSUPPORTED = "unsupported"


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: HTTPStatus.BAD_REQUEST,
    ErrorKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorKind.AUTHENTICATION: HTTPStatus.UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: HTTPStatus.FORBIDDEN,
    ErrorKind.CONFLICT: HTTPStatus.CONFLICT,
    ErrorKind.EXTERNAL: HTTPStatus.BAD_GATEWAY,
    ErrorKind.UNSUPPORTED: HTTPStatus.NOT_IMPLEMENTED,
}


class DSUError(Exception):
    """Base class for every failure surfaced to callers."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> HTTPStatus:
        return _STATUS_BY_KIND[self.kind]

    def to_payload(self) -> dict:
        return {"error": self.kind.value, "detail": self.message}


class InvalidRequestError(DSUError):
    """Raised when a required field is missing or malformed."""

    kind = ErrorKind.VALIDATION


class NotFoundError(DSUError):
    """Raised for unknown domains, authorize ids or schemas."""

    kind = ErrorKind.NOT_FOUND


class AuthenticationError(DSUError):
    """Raised when the caller's credential is missing, invalid or expired."""

    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(DSUError):
    """Raised when the caller is known but lacks permission."""

    kind = ErrorKind.AUTHORIZATION


class ConflictError(DSUError):
    """Raised when a write collides with a unique key."""

    kind = ErrorKind.CONFLICT


class ExternalServiceError(DSUError):
    """Raised when a provider call fails or returns an unusable body."""

    kind = ErrorKind.EXTERNAL


class UnsupportedOperationError(DSUError):
    """Raised when an operation is not part of a provider's protocol."""

    kind = ErrorKind.UNSUPPORTED


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "DSUError",
    "ErrorKind",
    "ExternalServiceError",
    "InvalidRequestError",
    "NotFoundError",
    "UnsupportedOperationError",
]
