"""HTTP response schemas."""

from .auth import AuthorizationCompleteResponse, AuthorizationStartResponse

__all__ = ["AuthorizationCompleteResponse", "AuthorizationStartResponse"]
