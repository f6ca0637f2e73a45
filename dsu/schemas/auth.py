"""Response payloads for the authorization endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from dsu.models.authorization import AuthorizationInfo, to_millis


class AuthorizationStartResponse(BaseModel):
    """Where to send the user to grant access to a provider."""

    authorize_id: str = Field(..., description="Correlation id echoed back by the provider.")
    url: str = Field(..., description="Provider URL the user should be redirected to.")
    previously_denied: bool = Field(
        False, description="Whether an earlier attempt for this provider was abandoned."
    )
    creation_date: int = Field(..., description="Creation time in epoch milliseconds.")

    @classmethod
    def from_info(cls, info: AuthorizationInfo) -> "AuthorizationStartResponse":
        return cls(
            authorize_id=info.authorize_id,
            url=info.url,
            previously_denied=info.previously_denied,
            creation_date=to_millis(info.created_at),
        )


class AuthorizationCompleteResponse(BaseModel):
    status: str = "connected"
    domain: str


__all__ = ["AuthorizationCompleteResponse", "AuthorizationStartResponse"]
