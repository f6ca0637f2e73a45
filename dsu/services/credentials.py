"""
Signed caller credentials.

Authentication tokens and third-party authorization grants are compact,
tamper-evident strings: an HMAC-SHA256 signature followed by the JSON claims,
base64url encoded together.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from datetime import datetime, timedelta
from hashlib import sha256
from typing import Any, Dict, Iterable, Optional

from dsu.core.errors import AuthenticationError
from dsu.models.authorization import from_millis, to_millis, utcnow
from dsu.models.credentials import AuthenticationToken, AuthorizationGrant

_SIGNATURE_SIZE = 32
_AUTHENTICATION = "authn"
_GRANT = "grant"


class SignedCredentialCodec:
    """Issue and verify caller credentials."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("A signing secret must be provided.")
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise AuthenticationError("Malformed credential.") from exc
        signature, serialized = decoded[:_SIGNATURE_SIZE], decoded[_SIGNATURE_SIZE:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not serialized or not hmac.compare_digest(signature, expected_signature):
            raise AuthenticationError("Invalid credential signature.")
        try:
            payload = json.loads(serialized)
        except ValueError as exc:
            raise AuthenticationError("Malformed credential.") from exc
        if not isinstance(payload, dict):
            raise AuthenticationError("Malformed credential.")
        return payload

    def issue_authentication(
        self,
        username: str,
        *,
        ttl: timedelta = timedelta(hours=1),
        now: Optional[datetime] = None,
    ) -> str:
        expires_at = (now or utcnow()) + ttl
        return self.encode(
            {"typ": _AUTHENTICATION, "sub": username, "exp": to_millis(expires_at)}
        )

    def read_authentication(self, token: str) -> AuthenticationToken:
        payload = self._claims(token, _AUTHENTICATION)
        return AuthenticationToken(
            username=payload["sub"], expires_at=from_millis(payload["exp"])
        )

    def issue_grant(
        self,
        owner: str,
        scopes: Iterable[str],
        *,
        ttl: timedelta = timedelta(days=30),
        now: Optional[datetime] = None,
    ) -> str:
        expires_at = (now or utcnow()) + ttl
        return self.encode(
            {
                "typ": _GRANT,
                "sub": owner,
                "scope": sorted(set(scopes)),
                "exp": to_millis(expires_at),
            }
        )

    def read_grant(self, token: str) -> AuthorizationGrant:
        payload = self._claims(token, _GRANT)
        return AuthorizationGrant(
            owner=payload["sub"],
            scopes=frozenset(payload.get("scope") or ()),
            expires_at=from_millis(payload["exp"]),
        )

    def _claims(self, token: str, expected_type: str) -> Dict[str, Any]:
        payload = self.decode(token)
        if payload.get("typ") != expected_type:
            raise AuthenticationError("Credential presented in the wrong place.")
        subject = payload.get("sub")
        expires = payload.get("exp")
        if not subject or not isinstance(subject, str):
            raise AuthenticationError("Malformed credential.")
        # epoch milliseconds; bool is an int subclass
        if isinstance(expires, bool) or not isinstance(expires, int) or expires < 0:
            raise AuthenticationError("Malformed credential.")
        scopes = payload.get("scope") or []
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise AuthenticationError("Malformed credential.")
        return payload


__all__ = ["SignedCredentialCodec"]
