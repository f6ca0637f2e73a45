"""Caller-side credentials presented to the data read endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from dsu.models.authorization import utcnow


class AuthenticationToken(BaseModel):
    """Proves the caller is ``username``."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1)
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())


class AuthorizationGrant(BaseModel):
    """Lets a third party read ``owner``'s data for the listed schema ids."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1)
    scopes: FrozenSet[str] = frozenset()
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())

    def covers(self, schema_id: str) -> bool:
        return schema_id in self.scopes


__all__ = ["AuthenticationToken", "AuthorizationGrant"]
