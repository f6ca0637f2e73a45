"""Read/write contracts for the bins the orchestrators depend on."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from dsu.models.authorization import AuthorizationInfo, AuthorizationToken
from dsu.models.data import DataPoint


class AuthorizationInfoStore(Protocol):
    def insert(self, info: AuthorizationInfo) -> None:
        """Persist a pending handshake; a duplicate ``authorize_id`` is a conflict."""

    def get(self, authorize_id: str) -> AuthorizationInfo:
        """Return the pending handshake or raise ``NotFoundError``."""

    def exists(self, username: str, domain: str) -> bool:
        """Whether any handshake was ever started for the pair."""


class AuthorizationTokenStore(Protocol):
    def insert(
        self, token: AuthorizationToken, *, authorize_id: Optional[str] = None
    ) -> None:
        """Append a token; at most one token may be issued per ``authorize_id``."""

    def latest(self, username: str, domain: str) -> Optional[AuthorizationToken]:
        """Return the token with the greatest expiration, if any."""

    def issued_for(self, authorize_id: str) -> bool:
        ...


class DataStore(Protocol):
    def insert(self, points: Sequence[DataPoint]) -> None:
        ...

    def read(
        self,
        *,
        owner: str,
        schema_id: str,
        version: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[DataPoint], int]:
        """Return one page of points, newest first, plus the total match count."""


__all__ = ["AuthorizationInfoStore", "AuthorizationTokenStore", "DataStore"]
