"""Read dispatch: decide whose data is wanted, check access, then route the read."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from dsu.clients.stores import AuthorizationTokenStore, DataStore
from dsu.core.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidRequestError,
    NotFoundError,
)
from dsu.models.authorization import utcnow
from dsu.models.credentials import AuthenticationToken, AuthorizationGrant
from dsu.models.data import DataReadResult, apply_columns
from dsu.services.requests import ServiceRequest
from dsu.shims.registry import ShimRegistry
from dsu.shims.util import parse_schema_id

logger = logging.getLogger(__name__)

DEFAULT_NUM_TO_RETURN = 100
MAX_NUM_TO_RETURN = 1000

INSUFFICIENT_CREDENTIALS = (
    "Insufficient credentials were provided to read the requested user's data."
)
NOT_YET_AUTHORIZED = (
    "The user has not yet authorized this domain. "
    "Authorize it through /auth/authorized first."
)


class DataReadRequest(ServiceRequest[DataReadResult]):
    def __init__(
        self,
        *,
        schema_id: str,
        version: int,
        registry: ShimRegistry,
        token_store: AuthorizationTokenStore,
        data_store: DataStore,
        authentication: Optional[AuthenticationToken] = None,
        grant: Optional[AuthorizationGrant] = None,
        owner: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        columns: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = DEFAULT_NUM_TO_RETURN,
        now: Optional[datetime] = None,
    ) -> None:
        super().__init__()
        if authentication is None and grant is None:
            raise AuthenticationError("No authentication credential was provided.")
        self.domain = parse_schema_id(schema_id).domain
        if version < 1:
            raise InvalidRequestError("The schema version must be a positive integer.")
        if skip < 0:
            raise InvalidRequestError("The number to skip must be zero or positive.")
        if limit < 1 or limit > MAX_NUM_TO_RETURN:
            raise InvalidRequestError(
                f"The number to return must be between 1 and {MAX_NUM_TO_RETURN}."
            )
        if start is not None and end is not None and start > end:
            raise InvalidRequestError("The start date is after the end date.")

        self.schema_id = schema_id
        self.version = version
        self.owner = owner or None
        self.start = start
        self.end = end
        self.columns: List[str] = [column for column in (columns or []) if column]
        self.skip = skip
        self.limit = limit
        self._authentication = authentication
        self._grant = grant
        self._registry = registry
        self._token_store = token_store
        self._data_store = data_store
        self._now = now

    def resolve_owner(self) -> str:
        """Whose data is being read: explicit owner, then grant owner, then caller."""
        if self.owner:
            return self.owner
        if self._grant is not None:
            return self._grant.owner
        return self._authentication.username  # type: ignore[union-attr]

    def _check_access(self, owner: str) -> None:
        now = self._now or utcnow()
        if self._authentication is not None and owner == self._authentication.username:
            if self._authentication.is_expired(now):
                raise AuthenticationError("The authentication token has expired.")
            return
        if self._grant is not None and owner == self._grant.owner:
            if self._grant.is_expired(now):
                raise AuthorizationError("The authorization token has expired.")
            if not self._grant.covers(self.schema_id):
                raise AuthorizationError(
                    "The given authorization token does not grant the bearer "
                    "access to the given schema ID."
                )
            return
        raise AuthorizationError(INSUFFICIENT_CREDENTIALS)

    async def _run(self) -> Optional[DataReadResult]:
        owner = self.resolve_owner()
        self._check_access(owner)

        if self._registry.has(self.domain):
            return await self._read_from_shim(owner)

        points, total = self._data_store.read(
            owner=owner,
            schema_id=self.schema_id,
            version=self.version,
            start=self.start,
            end=self.end,
            skip=self.skip,
            limit=self.limit,
        )
        return DataReadResult(data=apply_columns(points, self.columns), count=total)

    async def _read_from_shim(self, owner: str) -> DataReadResult:
        shim = self._registry.get(self.domain)
        if shim.schema(self.schema_id, self.version) is None:
            raise NotFoundError(
                f"The schema ID, '{self.schema_id}', and version, "
                f"'{self.version}', pair is unknown."
            )

        token = self._token_store.latest(owner, self.domain)
        if token is None:
            raise AuthorizationError(NOT_YET_AUTHORIZED)

        page = await shim.fetch_data(
            self.schema_id,
            self.version,
            token,
            start=self.start,
            end=self.end,
            columns=self.columns,
            skip=self.skip,
            limit=self.limit,
        )
        if page.refreshed_token is not None:
            self._token_store.insert(page.refreshed_token)
            logger.info("Persisted refreshed %s token for %s", self.domain, owner)
        return DataReadResult(data=page.points, count=len(page.points))


__all__ = [
    "DEFAULT_NUM_TO_RETURN",
    "DataReadRequest",
    "INSUFFICIENT_CREDENTIALS",
    "MAX_NUM_TO_RETURN",
    "NOT_YET_AUTHORIZED",
]
