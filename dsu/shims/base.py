"""Contracts every provider integration implements."""

from __future__ import annotations

from datetime import datetime
from typing import List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from dsu.models.authorization import AuthorizationInfo, AuthorizationToken
from dsu.models.data import Schema, ShimDataPage


@runtime_checkable
class AuthorizationEngine(Protocol):
    domain: str

    async def begin(
        self, username: str, client_url: Optional[str]
    ) -> AuthorizationInfo:
        """Start a handshake and return the pending record to persist."""

    async def exchange(
        self, info: AuthorizationInfo, callback: Mapping[str, str]
    ) -> AuthorizationToken:
        """Complete a handshake from the provider's callback parameters."""

    async def refresh(self, token: AuthorizationToken) -> AuthorizationToken:
        """Mint a replacement for an expired token, or raise UnsupportedOperationError."""


@runtime_checkable
class Shim(Protocol):
    @property
    def domain(self) -> str:
        ...

    def authorization_engine(self) -> AuthorizationEngine:
        ...

    def schema_ids(self) -> List[str]:
        ...

    def schema_versions(self, schema_id: str) -> List[int]:
        ...

    def schema(self, schema_id: str, version: int) -> Optional[Schema]:
        ...

    async def fetch_data(
        self,
        schema_id: str,
        version: int,
        token: AuthorizationToken,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        columns: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> ShimDataPage:
        """
        Fetch one page of normalized points, newest first.

        ``skip`` and ``limit`` apply over a stable ordering. An expired token is
        refreshed through the shim's engine and handed back in
        ``ShimDataPage.refreshed_token`` for the caller to persist.
        """


__all__ = ["AuthorizationEngine", "Shim"]
