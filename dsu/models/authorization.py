"""
Domain models for delegated provider access.

``AuthorizationInfo`` is the pending half of a handshake and
``AuthorizationToken`` the credential it eventually yields. Both are immutable;
stores append new records rather than updating old ones.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dsu.core.errors import InvalidRequestError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NEVER = datetime.max.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds without float rounding."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


NEVER_MILLIS = to_millis(NEVER)


def from_millis(value: int) -> datetime:
    if value >= NEVER_MILLIS:
        return NEVER
    seconds, millis = divmod(int(value), 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(
        microsecond=millis * 1000
    )


def new_authorize_id() -> str:
    """Return a fresh, unguessable correlation id for a pending handshake."""
    return uuid4().hex


class AuthorizationInfo(BaseModel):
    """State for one in-flight handshake, keyed by ``authorize_id``."""

    model_config = ConfigDict(frozen=True)

    authorize_id: str = Field(default_factory=new_authorize_id, min_length=1)
    username: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    url: str = Field(..., description="Where the user is sent at the provider.")
    client_url: Optional[str] = Field(
        None, description="Where the user lands once the handshake completes."
    )
    pre_auth_state: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    previously_denied: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "authorize_id": self.authorize_id,
            "username": self.username,
            "domain": self.domain,
            "url": self.url,
            "client_url": self.client_url,
            "pre_auth_state": dict(self.pre_auth_state),
            "creation_date": to_millis(self.created_at),
            "previously_denied": self.previously_denied,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuthorizationInfo":
        return cls(
            authorize_id=record["authorize_id"],
            username=record["username"],
            domain=record["domain"],
            url=record["url"],
            client_url=record.get("client_url"),
            pre_auth_state=record.get("pre_auth_state") or {},
            created_at=from_millis(record["creation_date"]),
            previously_denied=bool(record.get("previously_denied")),
        )


class AuthorizationToken(BaseModel):
    """A credential issued by a provider for one (username, domain) pair."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)
    access_token_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: datetime = NEVER
    extras: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _can_sign_or_refresh(self) -> "AuthorizationToken":
        if not self.access_token_secret and not self.refresh_token:
            raise InvalidRequestError(
                "An authorization token needs a secret or a refresh token."
            )
        return self

    @property
    def never_expires(self) -> bool:
        return self.expires_at >= NEVER

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.never_expires:
            return False
        return self.expires_at <= (now or utcnow())

    def to_record(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "domain": self.domain,
            "access_token": self.access_token,
            "access_token_secret": self.access_token_secret,
            "refresh_token": self.refresh_token,
            "expiration_time": to_millis(self.expires_at),
            "extras": dict(self.extras),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuthorizationToken":
        return cls(
            username=record["username"],
            domain=record["domain"],
            access_token=record["access_token"],
            access_token_secret=record.get("access_token_secret"),
            refresh_token=record.get("refresh_token"),
            expires_at=from_millis(record["expiration_time"]),
            extras=record.get("extras") or {},
        )


__all__ = [
    "AuthorizationInfo",
    "AuthorizationToken",
    "NEVER",
    "from_millis",
    "new_authorize_id",
    "to_millis",
    "utcnow",
]
