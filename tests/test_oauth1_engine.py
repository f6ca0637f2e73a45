try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import CALLBACK_URL, parse_oauth_header
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import CALLBACK_URL, parse_oauth_header  # type: ignore

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from dsu.auth.oauth1 import (
    OAuth1Endpoints,
    OAuth1Engine,
    sign,
    signature_base_string,
    signing_key,
)
from dsu.core.errors import (
    ExternalServiceError,
    InvalidRequestError,
    UnsupportedOperationError,
)
from dsu.models.authorization import AuthorizationInfo

ENDPOINTS = OAuth1Endpoints(
    request_token_url="https://provider.example.com/oauth/request_token",
    authorize_url="https://provider.example.com/oauth/authorize",
    access_token_url="https://provider.example.com/oauth/access_token",
)


def _engine(provider) -> OAuth1Engine:
    return OAuth1Engine(
        domain="example",
        endpoints=ENDPOINTS,
        consumer_key="ck",
        consumer_secret="cs",
        callback_url=CALLBACK_URL,
        http=provider.client(),
    )


def _assert_signed(request: httpx.Request, key: str) -> dict:
    params = parse_oauth_header(request.headers["Authorization"])
    signature = params.pop("oauth_signature")
    expected = sign(signature_base_string("POST", str(request.url), params), key)
    assert signature == expected
    return params


def _pending(**overrides) -> AuthorizationInfo:
    values = dict(
        authorize_id="abc",
        username="alice",
        domain="example",
        url="https://provider.example.com/oauth/authorize?oauth_token=RT",
        client_url="https://app.example.com/done",
        pre_auth_state={"token": "RT", "secret": "RS"},
    )
    values.update(overrides)
    return AuthorizationInfo(**values)


@pytest.mark.anyio
async def test_begin_obtains_request_token_and_builds_redirect(provider) -> None:
    provider.on(
        "POST",
        ENDPOINTS.request_token_url,
        httpx.Response(
            200, text="oauth_token=RT&oauth_token_secret=RS&oauth_callback_confirmed=true"
        ),
    )

    info = await _engine(provider).begin("alice", "https://app.example.com/done")

    assert info.username == "alice"
    assert info.domain == "example"
    assert info.client_url == "https://app.example.com/done"
    assert info.url == "https://provider.example.com/oauth/authorize?oauth_token=RT"
    assert info.pre_auth_state == {"token": "RT", "secret": "RS"}

    params = _assert_signed(provider.requests[0], "cs&")
    assert params["oauth_consumer_key"] == "ck"
    assert params["oauth_signature_method"] == "HMAC-SHA1"
    assert params["oauth_version"] == "1.0"
    callback = urlsplit(params["oauth_callback"])
    assert parse_qs(callback.query)["state"] == [info.authorize_id]


@pytest.mark.anyio
async def test_begin_generates_fresh_ids_and_nonces(provider) -> None:
    provider.on(
        "POST",
        ENDPOINTS.request_token_url,
        httpx.Response(200, text="oauth_token=RT&oauth_token_secret=RS"),
    )
    engine = _engine(provider)

    first = await engine.begin("alice", None)
    second = await engine.begin("alice", None)

    assert first.authorize_id != second.authorize_id
    nonces = {
        parse_oauth_header(request.headers["Authorization"])["oauth_nonce"]
        for request in provider.requests
    }
    assert len(nonces) == 2


@pytest.mark.anyio
async def test_begin_requires_both_token_and_secret(provider) -> None:
    provider.on(
        "POST", ENDPOINTS.request_token_url, httpx.Response(200, text="oauth_token=RT")
    )

    with pytest.raises(ExternalServiceError):
        await _engine(provider).begin("alice", None)


@pytest.mark.anyio
async def test_begin_fails_on_non_success_status(provider) -> None:
    provider.on(
        "POST", ENDPOINTS.request_token_url, httpx.Response(401, text="invalid consumer")
    )

    with pytest.raises(ExternalServiceError):
        await _engine(provider).begin("alice", None)


@pytest.mark.anyio
async def test_exchange_signs_with_request_token_and_returns_permanent_token(
    provider,
) -> None:
    provider.on(
        "POST",
        ENDPOINTS.access_token_url,
        httpx.Response(200, text="oauth_token=AT&oauth_token_secret=AS"),
    )

    token = await _engine(provider).exchange(
        _pending(), {"oauth_token": "RT", "oauth_verifier": "V"}
    )

    assert token.username == "alice"
    assert token.domain == "example"
    assert token.access_token == "AT"
    assert token.access_token_secret == "AS"
    assert token.refresh_token is None
    assert token.never_expires
    assert not token.is_expired()

    params = _assert_signed(provider.requests[0], "RS&")
    assert params["oauth_token"] == "RT"
    assert params["oauth_verifier"] == "V"


@pytest.mark.anyio
async def test_exchange_rejects_mismatched_callback_token(provider) -> None:
    with pytest.raises(InvalidRequestError):
        await _engine(provider).exchange(_pending(), {"oauth_token": "someone-else"})
    assert provider.requests == []


@pytest.mark.anyio
async def test_exchange_requires_stored_request_token(provider) -> None:
    with pytest.raises(InvalidRequestError):
        await _engine(provider).exchange(_pending(pre_auth_state={}), {})


@pytest.mark.anyio
async def test_exchange_fails_on_malformed_body(provider) -> None:
    provider.on(
        "POST", ENDPOINTS.access_token_url, httpx.Response(200, text="unexpected")
    )

    with pytest.raises(ExternalServiceError):
        await _engine(provider).exchange(_pending(), {"oauth_token": "RT"})


@pytest.mark.anyio
async def test_refresh_is_unsupported(provider) -> None:
    provider.on(
        "POST",
        ENDPOINTS.access_token_url,
        httpx.Response(200, text="oauth_token=AT&oauth_token_secret=AS"),
    )
    engine = _engine(provider)
    token = await engine.exchange(_pending(), {})

    with pytest.raises(UnsupportedOperationError, match="do not expire"):
        await engine.refresh(token)


@pytest.mark.anyio
async def test_sign_request_uses_consumer_and_token_secrets(provider) -> None:
    provider.on(
        "POST",
        ENDPOINTS.access_token_url,
        httpx.Response(200, text="oauth_token=AT&oauth_token_secret=AS"),
    )
    engine = _engine(provider)
    token = await engine.exchange(_pending(), {})
    url = "https://api.provider.example.com/data"

    oauth = engine.sign_request("GET", url, token, {"day": "2024-01-01"})

    signature = oauth.pop("oauth_signature")
    assert oauth["oauth_token"] == "AT"
    expected = sign(
        signature_base_string("GET", url, {**oauth, "day": "2024-01-01"}),
        signing_key("cs", "AS"),
    )
    assert signature == expected
