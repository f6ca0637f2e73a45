"""
Orchestrators for the two halves of a provider handshake.

``InitiateAuthorization`` runs when a user asks to connect a provider and
``CompleteAuthorization`` runs when the provider sends them back. The pending
``AuthorizationInfo`` record, looked up by its ``authorize_id``, is the only
thing linking the two requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from dsu.clients.stores import AuthorizationInfoStore, AuthorizationTokenStore
from dsu.core.errors import AuthorizationError, InvalidRequestError
from dsu.models.authorization import AuthorizationInfo, AuthorizationToken, utcnow
from dsu.services.requests import ServiceRequest
from dsu.shims.registry import ShimRegistry

logger = logging.getLogger(__name__)


def _require(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidRequestError(message)
    return value


class InitiateAuthorization(ServiceRequest[AuthorizationInfo]):
    """Start a handshake unless the user already holds a usable token."""

    def __init__(
        self,
        *,
        username: str,
        domain: str,
        client_url: Optional[str],
        registry: ShimRegistry,
        info_store: AuthorizationInfoStore,
        token_store: AuthorizationTokenStore,
    ) -> None:
        super().__init__()
        self.username = _require(username, "The username is missing.")
        self.domain = _require(domain, "The domain is missing.")
        self.client_url = client_url
        self._registry = registry
        self._info_store = info_store
        self._token_store = token_store

    async def _run(self) -> Optional[AuthorizationInfo]:
        shim = self._registry.get(self.domain)

        existing = self._token_store.latest(self.username, self.domain)
        if existing is not None and not existing.is_expired():
            logger.info(
                "User %s already authorized %s; nothing to do", self.username, self.domain
            )
            return None

        previously_denied = self._info_store.exists(self.username, self.domain)
        info = await shim.authorization_engine().begin(self.username, self.client_url)
        if previously_denied:
            info = info.model_copy(update={"previously_denied": True})

        self._info_store.insert(info)
        logger.info(
            "Started %s authorization %s for %s",
            self.domain,
            info.authorize_id,
            self.username,
        )
        return info


@dataclass(slots=True)
class CompletedAuthorization:
    token: AuthorizationToken
    domain: str
    client_url: Optional[str]


class CompleteAuthorization(ServiceRequest[CompletedAuthorization]):
    """Exchange a provider callback for a persisted token."""

    def __init__(
        self,
        *,
        authorize_id: str,
        callback: Mapping[str, str],
        registry: ShimRegistry,
        info_store: AuthorizationInfoStore,
        token_store: AuthorizationTokenStore,
        state_ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> None:
        super().__init__()
        self.authorize_id = _require(authorize_id, "The authorization state is missing.")
        self.callback = dict(callback)
        self._registry = registry
        self._info_store = info_store
        self._token_store = token_store
        self._state_ttl = state_ttl
        self._now = now

    async def _run(self) -> Optional[CompletedAuthorization]:
        info = self._info_store.get(self.authorize_id)

        if self._state_ttl:
            age = (self._now or utcnow()) - info.created_at
            if age > self._state_ttl:
                raise AuthorizationError(
                    "The authorization request has expired; start again."
                )

        if self._token_store.issued_for(info.authorize_id):
            logger.warning(
                "Rejected replayed callback for authorization %s", info.authorize_id
            )
            raise AuthorizationError("This authorization request was already completed.")

        shim = self._registry.get(info.domain)
        token = await shim.authorization_engine().exchange(info, self.callback)
        self._token_store.insert(token, authorize_id=info.authorize_id)
        logger.info(
            "Completed %s authorization %s for %s",
            info.domain,
            info.authorize_id,
            info.username,
        )
        return CompletedAuthorization(
            token=token, domain=info.domain, client_url=info.client_url
        )


__all__ = ["CompleteAuthorization", "CompletedAuthorization", "InitiateAuthorization"]
