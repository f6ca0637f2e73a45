"""
Engine for providers that have no user-facing consent step.

Some partner APIs authenticate the gateway itself and only need the user to be
registered with them. The handshake still goes through the normal
initiate/complete cycle so the rest of the system sees one shape: the
"provider" URL points straight back at our own callback.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from dsu.auth.oauth1 import with_query
from dsu.core.errors import UnsupportedOperationError
from dsu.models.authorization import (
    NEVER,
    AuthorizationInfo,
    AuthorizationToken,
    new_authorize_id,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_CREDENTIAL = "unused"

PreAuthorize = Callable[[str], Awaitable[Dict[str, Any]]]


class DirectAuthorizationEngine:
    def __init__(
        self,
        *,
        domain: str,
        callback_url: str,
        preauthorize: Optional[PreAuthorize] = None,
    ) -> None:
        self.domain = domain
        self._callback_url = callback_url
        self._preauthorize = preauthorize

    async def begin(
        self, username: str, client_url: Optional[str]
    ) -> AuthorizationInfo:
        authorize_id = new_authorize_id()
        pre_auth_state: Dict[str, Any] = {}
        if self._preauthorize is not None:
            pre_auth_state = await self._preauthorize(username)
        logger.info("Direct %s registration prepared for %s", self.domain, username)
        return AuthorizationInfo(
            authorize_id=authorize_id,
            username=username,
            domain=self.domain,
            url=with_query(self._callback_url, {"state": authorize_id}),
            client_url=client_url,
            pre_auth_state=pre_auth_state,
        )

    async def exchange(
        self, info: AuthorizationInfo, callback: Mapping[str, str]
    ) -> AuthorizationToken:
        return AuthorizationToken(
            username=info.username,
            domain=self.domain,
            access_token=PLACEHOLDER_CREDENTIAL,
            access_token_secret=PLACEHOLDER_CREDENTIAL,
            expires_at=NEVER,
            extras=dict(info.pre_auth_state),
        )

    async def refresh(self, token: AuthorizationToken) -> AuthorizationToken:
        raise UnsupportedOperationError(f"{self.domain} tokens do not expire.")


__all__ = ["DirectAuthorizationEngine", "PLACEHOLDER_CREDENTIAL"]
