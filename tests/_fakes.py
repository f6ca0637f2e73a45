"""Test doubles shared by several test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import parse_qsl, unquote

import httpx

from dsu.models.authorization import (
    NEVER,
    AuthorizationInfo,
    AuthorizationToken,
    new_authorize_id,
)
from dsu.models.data import DataPoint, Schema, ShimDataPage
from dsu.shims.util import SchemaCatalog
from dsu.utils.http import ProviderHttpClient

CALLBACK_URL = "https://dsu.example.com/auth/oauth/external_authorization"


class RecordingProvider:
    """Mock provider: routes requests to handlers and remembers what was sent."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[tuple, Any] = {}

    def on(self, method: str, url: str, handler: Any) -> None:
        self.routes[(method, url)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        base = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        handler = self.routes.get((request.method, base))
        if handler is None:
            return httpx.Response(404, text="no route")
        if isinstance(handler, httpx.Response):
            return handler
        return handler(request)

    def client(self) -> ProviderHttpClient:
        return ProviderHttpClient(timeout=5.0, transport=httpx.MockTransport(self))


def parse_oauth_header(value: str) -> Dict[str, str]:
    assert value.startswith("OAuth ")
    params = {}
    for part in value[len("OAuth ") :].split(","):
        key, _, raw = part.strip().partition("=")
        params[unquote(key)] = unquote(raw.strip('"'))
    return params


def form_body(request: httpx.Request) -> Dict[str, str]:
    return dict(parse_qsl(request.content.decode("utf-8")))


class FakeEngine:
    """Authorization engine that never leaves the process."""

    def __init__(self, domain: str = "fake") -> None:
        self.domain = domain
        self.begun: List[str] = []
        self.exchanged: List[Dict[str, str]] = []
        self.refreshed: List[AuthorizationToken] = []

    async def begin(self, username: str, client_url: Optional[str]) -> AuthorizationInfo:
        self.begun.append(username)
        authorize_id = new_authorize_id()
        return AuthorizationInfo(
            authorize_id=authorize_id,
            username=username,
            domain=self.domain,
            url=f"https://provider.example.com/authorize?state={authorize_id}",
            client_url=client_url,
            pre_auth_state={"token": "RT", "secret": "RS"},
        )

    async def exchange(
        self, info: AuthorizationInfo, callback: Mapping[str, str]
    ) -> AuthorizationToken:
        self.exchanged.append(dict(callback))
        return AuthorizationToken(
            username=info.username,
            domain=self.domain,
            access_token="AT",
            access_token_secret="AS",
            expires_at=NEVER,
        )

    async def refresh(self, token: AuthorizationToken) -> AuthorizationToken:
        self.refreshed.append(token)
        return token.model_copy(update={"access_token": "AT2", "expires_at": NEVER})


class FakeShim:
    """A shim serving one schema from a fixed, in-memory point list."""

    def __init__(self, domain: str = "fake", points: Sequence[float] = ()) -> None:
        self._domain = domain
        self.engine = FakeEngine(domain)
        self.catalog = SchemaCatalog(domain, {"steps": "Steps taken."})
        self.values = list(points)
        self.calls: List[Dict[str, Any]] = []
        self.refresh_on_fetch = False

    @property
    def domain(self) -> str:
        return self._domain

    def authorization_engine(self) -> FakeEngine:
        return self.engine

    def schema_ids(self) -> List[str]:
        return self.catalog.ids()

    def schema_versions(self, schema_id: str) -> List[int]:
        return self.catalog.versions(schema_id)

    def schema(self, schema_id: str, version: int) -> Optional[Schema]:
        return self.catalog.get(schema_id, version)

    async def fetch_data(self, schema_id, version, token, **kwargs) -> ShimDataPage:
        self.calls.append({"schema_id": schema_id, "token": token, **kwargs})
        skip = kwargs.get("skip", 0)
        limit = kwargs.get("limit", 100)
        base = datetime(2024, 1, 31, tzinfo=timezone.utc)
        points = [
            DataPoint(
                owner=token.username,
                schema_id=schema_id,
                version=version,
                timestamp=base - timedelta(days=index),
                data={"steps": value},
            )
            for index, value in enumerate(self.values)
        ][skip : skip + limit]
        refreshed = None
        if self.refresh_on_fetch:
            refreshed = await self.engine.refresh(token)
        return ShimDataPage(points=points, refreshed_token=refreshed)
