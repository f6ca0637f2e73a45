"""
OAuth 2.0 authorization-code engine.

There is no request-token round trip, so ``begin`` only builds the consent URL
and the pending record carries no pre-auth state. Access tokens expire and are
renewed with the refresh token; every renewal is a brand new token record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Sequence

from dsu.auth.oauth1 import with_query
from dsu.core.errors import ExternalServiceError, InvalidRequestError
from dsu.models.authorization import (
    AuthorizationInfo,
    AuthorizationToken,
    new_authorize_id,
    utcnow,
)
from dsu.utils.http import ProviderHttpClient, parse_json

logger = logging.getLogger(__name__)

# Shaved off every expires_in to absorb clock skew and time spent in transit.
EXPIRY_MARGIN = timedelta(seconds=1)


@dataclass(frozen=True)
class OAuth2Endpoints:
    authorize_url: str
    token_url: str
    refresh_url: Optional[str] = None

    @property
    def refresh_endpoint(self) -> str:
        return self.refresh_url or self.token_url


class OAuth2Engine:
    def __init__(
        self,
        *,
        domain: str,
        endpoints: OAuth2Endpoints,
        client_id: str,
        client_secret: str,
        callback_url: str,
        http: ProviderHttpClient,
        scopes: Sequence[str] = (),
        clock=utcnow,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError(f"OAuth2 client credentials are required for {domain}.")
        self.domain = domain
        self._endpoints = endpoints
        self._client_id = client_id
        self._client_secret = client_secret
        self._callback_url = callback_url
        self._http = http
        self._scopes = tuple(scopes)
        self._clock = clock

    async def begin(
        self, username: str, client_url: Optional[str]
    ) -> AuthorizationInfo:
        authorize_id = new_authorize_id()
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._callback_url,
            "state": authorize_id,
        }
        if self._scopes:
            params["scope"] = " ".join(self._scopes)
        logger.info("OAuth2 %s for %s: consent redirect issued", self.domain, username)
        return AuthorizationInfo(
            authorize_id=authorize_id,
            username=username,
            domain=self.domain,
            url=with_query(self._endpoints.authorize_url, params),
            client_url=client_url,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Basic {self._client_secret}"}

    async def exchange(
        self, info: AuthorizationInfo, callback: Mapping[str, str]
    ) -> AuthorizationToken:
        code = callback.get("code")
        if not code:
            error = callback.get("error")
            if error:
                raise InvalidRequestError(f"The provider reported an error: {error}")
            raise InvalidRequestError("The callback did not include an authorization code.")

        requested_at = self._clock()
        response = await self._http.post(
            self._endpoints.token_url,
            headers=self._headers(),
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self._client_id,
            },
        )
        token = self._token_from(parse_json(response), info.username, requested_at, {})
        logger.info("OAuth2 %s for %s: token exchanged", self.domain, info.username)
        return token

    async def refresh(self, token: AuthorizationToken) -> AuthorizationToken:
        if not token.refresh_token:
            raise InvalidRequestError("The token has no refresh credential.")
        requested_at = self._clock()
        response = await self._http.post(
            self._endpoints.refresh_endpoint,
            headers=self._headers(),
            data={"grant_type": "refresh_token", "refresh_token": token.refresh_token},
        )
        refreshed = self._token_from(
            parse_json(response), token.username, requested_at, token.extras
        )
        logger.info("OAuth2 %s for %s: token refreshed", self.domain, token.username)
        return refreshed

    def _token_from(
        self,
        payload: Mapping[str, Any],
        username: str,
        issued_at: datetime,
        extras: Mapping[str, Any],
    ) -> AuthorizationToken:
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        if (
            not isinstance(access_token, str)
            or not isinstance(refresh_token, str)
            or not access_token
            or not refresh_token
            or expires_in is None
        ):
            raise ExternalServiceError(
                f"Incomplete token payload returned from {self.domain}."
            )
        try:
            lifetime = timedelta(seconds=int(expires_in))
            expires_at = issued_at + lifetime - EXPIRY_MARGIN
        except (OverflowError, TypeError, ValueError) as exc:
            raise ExternalServiceError(
                f"{self.domain} returned an unusable expires_in."
            ) from exc
        return AuthorizationToken(
            username=username,
            domain=self.domain,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            extras=dict(extras),
        )


__all__ = ["EXPIRY_MARGIN", "OAuth2Endpoints", "OAuth2Engine"]
