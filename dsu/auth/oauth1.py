"""
OAuth 1.0 authorization engine.

The handshake is split across two independent HTTP requests. ``begin`` obtains
a temporary request token and parks it in the pending ``AuthorizationInfo``;
``exchange`` runs when the provider redirects the user back and trades the
temporary token for a permanent one. Nothing is kept in memory between the two.
"""

from __future__ import annotations

import base64
import hmac
import logging
import time
from dataclasses import dataclass
from enum import Enum
from hashlib import sha1
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit
from uuid import uuid4

from dsu.core.errors import (
    ExternalServiceError,
    InvalidRequestError,
    UnsupportedOperationError,
)
from dsu.models.authorization import (
    NEVER,
    AuthorizationInfo,
    AuthorizationToken,
    new_authorize_id,
)
from dsu.utils.http import ProviderHttpClient, parse_form

logger = logging.getLogger(__name__)

SIGNATURE_METHOD = "HMAC-SHA1"
OAUTH_VERSION = "1.0"

PRE_AUTH_TOKEN = "token"
PRE_AUTH_SECRET = "secret"


class HandshakeState(str, Enum):
    INIT = "init"
    REQUEST_TOKEN_OBTAINED = "request_token_obtained"
    REDIRECT_ISSUED = "redirect_issued"
    CALLBACK_RECEIVED = "callback_received"
    TOKEN_EXCHANGED = "token_exchanged"


def percent_encode(value: Any) -> str:
    """RFC 3986 encoding as OAuth 1.0 requires: only unreserved characters survive."""
    return quote(str(value), safe="~")


def normalize_url(url: str) -> str:
    """Base string URI: scheme and host lowercased, no query or fragment."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if (scheme, parts.port) in (("http", 80), ("https", 443)):
        netloc = netloc.rsplit(":", 1)[0]
    return urlunsplit((scheme, netloc, parts.path or "/", "", ""))


def signature_base_string(
    method: str, url: str, params: Mapping[str, Any]
) -> str:
    """Build ``METHOD&url&sorted-params`` with query-string parameters folded in."""
    pairs = [(str(key), str(value)) for key, value in params.items()]
    pairs.extend(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in pairs)
    normalized = "&".join(f"{key}={value}" for key, value in encoded)
    return "&".join(
        (method.upper(), percent_encode(normalize_url(url)), percent_encode(normalized))
    )


def signing_key(secret: str, token_secret: str = "") -> str:
    return f"{percent_encode(secret)}&{percent_encode(token_secret)}"


def sign(base_string: str, key: str) -> str:
    digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def authorization_header(params: Mapping[str, str]) -> str:
    fields = ", ".join(
        f'{percent_encode(key)}="{percent_encode(value)}"'
        for key, value in sorted(params.items())
    )
    return f"OAuth {fields}"


def with_query(url: str, params: Mapping[str, str]) -> str:
    """Append ``params`` to whatever query ``url`` already carries."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment)
    )


@dataclass(frozen=True)
class OAuth1Endpoints:
    request_token_url: str
    authorize_url: str
    access_token_url: str


class OAuth1Engine:
    """Three-legged OAuth 1.0 handshake plus request signing for data calls."""

    def __init__(
        self,
        *,
        domain: str,
        endpoints: OAuth1Endpoints,
        consumer_key: str,
        consumer_secret: str,
        callback_url: str,
        http: ProviderHttpClient,
    ) -> None:
        if not consumer_key or not consumer_secret:
            raise ValueError(f"OAuth1 consumer credentials are required for {domain}.")
        self.domain = domain
        self._endpoints = endpoints
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._callback_url = callback_url
        self._http = http

    def _oauth_params(self, **extra: str) -> Dict[str, str]:
        params = {
            "oauth_consumer_key": self._consumer_key,
            "oauth_nonce": uuid4().hex,
            "oauth_signature_method": SIGNATURE_METHOD,
            "oauth_timestamp": str(int(time.time())),
            "oauth_version": OAUTH_VERSION,
        }
        params.update(extra)
        return params

    async def _post_for_token(
        self, url: str, params: Dict[str, str], key: str, step: HandshakeState
    ) -> Dict[str, str]:
        params["oauth_signature"] = sign(signature_base_string("POST", url, params), key)
        response = await self._http.post(
            url, headers={"Authorization": authorization_header(params)}
        )
        body = parse_form(response)
        token = body.get("oauth_token")
        secret = body.get("oauth_token_secret")
        if not token or not secret:
            raise ExternalServiceError(
                f"{self.domain} did not return both a token and a secret "
                f"({step.value})."
            )
        return body

    async def begin(
        self, username: str, client_url: Optional[str]
    ) -> AuthorizationInfo:
        """Obtain a request token and describe where to send the user."""
        authorize_id = new_authorize_id()
        callback = with_query(self._callback_url, {"state": authorize_id})

        params = self._oauth_params(oauth_callback=callback)
        body = await self._post_for_token(
            self._endpoints.request_token_url,
            params,
            signing_key(self._consumer_secret),
            HandshakeState.REQUEST_TOKEN_OBTAINED,
        )
        logger.info(
            "OAuth1 %s for %s: %s",
            self.domain,
            username,
            HandshakeState.REQUEST_TOKEN_OBTAINED.value,
        )

        url = with_query(self._endpoints.authorize_url, {"oauth_token": body["oauth_token"]})
        info = AuthorizationInfo(
            authorize_id=authorize_id,
            username=username,
            domain=self.domain,
            url=url,
            client_url=client_url,
            pre_auth_state={
                PRE_AUTH_TOKEN: body["oauth_token"],
                PRE_AUTH_SECRET: body["oauth_token_secret"],
            },
        )
        logger.info(
            "OAuth1 %s for %s: %s", self.domain, username, HandshakeState.REDIRECT_ISSUED.value
        )
        return info

    def _request_token(self, info: AuthorizationInfo) -> Tuple[str, str]:
        token = info.pre_auth_state.get(PRE_AUTH_TOKEN)
        secret = info.pre_auth_state.get(PRE_AUTH_SECRET)
        if not token or not secret:
            raise InvalidRequestError(
                "The pending authorization does not hold a request token."
            )
        return token, secret

    async def exchange(
        self, info: AuthorizationInfo, callback: Mapping[str, str]
    ) -> AuthorizationToken:
        """Trade the authorized request token for a permanent access token."""
        request_token, request_secret = self._request_token(info)
        echoed = callback.get("oauth_token")
        if echoed and echoed != request_token:
            raise InvalidRequestError(
                "The callback token does not match the pending authorization."
            )
        logger.info(
            "OAuth1 %s for %s: %s",
            self.domain,
            info.username,
            HandshakeState.CALLBACK_RECEIVED.value,
        )

        extra = {"oauth_token": request_token}
        verifier = callback.get("oauth_verifier")
        if verifier:
            extra["oauth_verifier"] = verifier
        body = await self._post_for_token(
            self._endpoints.access_token_url,
            self._oauth_params(**extra),
            signing_key(request_secret),
            HandshakeState.TOKEN_EXCHANGED,
        )
        logger.info(
            "OAuth1 %s for %s: %s",
            self.domain,
            info.username,
            HandshakeState.TOKEN_EXCHANGED.value,
        )
        return AuthorizationToken(
            username=info.username,
            domain=self.domain,
            access_token=body["oauth_token"],
            access_token_secret=body["oauth_token_secret"],
            refresh_token=None,
            expires_at=NEVER,
            extras=self._token_extras(body, callback),
        )

    def _token_extras(
        self, body: Mapping[str, str], callback: Mapping[str, str]
    ) -> Dict[str, Any]:
        """Provider-specific values to keep with the token; none by default."""
        return {}

    async def refresh(self, token: AuthorizationToken) -> AuthorizationToken:
        raise UnsupportedOperationError("OAuth v1 tokens do not expire.")

    def sign_request(
        self,
        method: str,
        url: str,
        token: AuthorizationToken,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, str]:
        """Return the signed ``oauth_*`` parameters for a data call made with ``token``."""
        oauth = self._oauth_params(oauth_token=token.access_token)
        signed = {**{k: str(v) for k, v in (params or {}).items()}, **oauth}
        oauth["oauth_signature"] = sign(
            signature_base_string(method, url, signed),
            signing_key(self._consumer_secret, token.access_token_secret or ""),
        )
        return oauth

    def authorization_headers(
        self,
        method: str,
        url: str,
        token: AuthorizationToken,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, str]:
        oauth = self.sign_request(method, url, token, params)
        return {"Authorization": authorization_header(oauth)}


__all__ = [
    "HandshakeState",
    "OAuth1Endpoints",
    "OAuth1Engine",
    "authorization_header",
    "percent_encode",
    "sign",
    "signature_base_string",
    "signing_key",
    "with_query",
]
