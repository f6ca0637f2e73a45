try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import CALLBACK_URL
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import CALLBACK_URL  # type: ignore

import base64
import json
from itertools import count

import httpx
import pytest

from dsu.auth.direct import PLACEHOLDER_CREDENTIAL
from dsu.core.errors import ExternalServiceError, InvalidRequestError, UnsupportedOperationError
from dsu.models.authorization import NEVER, AuthorizationToken
from dsu.shims.twonet import API_BASE, DEVICES, TwoNetShim


def _shim(provider) -> TwoNetShim:
    return TwoNetShim(key="pk", secret="ps", callback_url=CALLBACK_URL, http=provider.client())


def _register_routes(provider) -> None:
    track_ids = count(1)
    provider.on("POST", API_BASE + "register", httpx.Response(200, json={"status": "ok"}))
    provider.on(
        "POST",
        API_BASE + "user/track/register",
        lambda request: httpx.Response(
            200,
            json={"trackRegistrationResponse": {"trackDetail": {"guid": f"T{next(track_ids)}"}}},
        ),
    )


@pytest.mark.anyio
async def test_initiation_registers_user_and_every_device(provider) -> None:
    _register_routes(provider)
    engine = _shim(provider).authorization_engine()

    info = await engine.begin("alice", "https://app.example.com/done")

    assert info.url == f"{CALLBACK_URL}?state={info.authorize_id}"
    assert set(info.pre_auth_state) == {"user", *(device.key for device in DEVICES)}
    assert info.pre_auth_state["entra_glucometer"] == "T1"
    assert len(provider.requests) == 1 + len(DEVICES)

    expected = base64.b64encode(b"pk:ps").decode("ascii")
    assert provider.requests[0].headers["Authorization"] == f"Basic {expected}"
    user_guid = json.loads(provider.requests[0].content)["registerRequest"]["guid"]
    assert user_guid == info.pre_auth_state["user"]


@pytest.mark.anyio
async def test_completion_fakes_a_never_expiring_token(provider) -> None:
    _register_routes(provider)
    engine = _shim(provider).authorization_engine()
    info = await engine.begin("alice", None)

    token = await engine.exchange(info, {})

    assert token.access_token == PLACEHOLDER_CREDENTIAL
    assert token.access_token_secret == PLACEHOLDER_CREDENTIAL
    assert token.never_expires
    assert token.extras == info.pre_auth_state
    with pytest.raises(UnsupportedOperationError):
        await engine.refresh(token)


@pytest.mark.anyio
async def test_fetch_reads_the_device_track(provider) -> None:
    _register_routes(provider)
    shim = _shim(provider)
    engine = shim.authorization_engine()
    token = await engine.exchange(await engine.begin("alice", None), {})
    provider.on(
        "POST",
        API_BASE + "user/track/filtered",
        httpx.Response(
            200,
            json={
                "trackResponse": {
                    "measures": {
                        "measure": [
                            {"time": 1_700_000_000, "blood": {"pulse": "61"}},
                            {"time": 1_700_000_600, "blood": {"pulse": "64"}},
                        ]
                    }
                }
            },
        ),
    )

    page = await shim.fetch_data("omh:twonet:nonin_pulse_bpm", 1, token, limit=1)

    assert [point.data for point in page.points] == [{"nonin_pulse_bpm": 64.0}]
    body = json.loads(provider.requests[-1].content)["trackRequest"]
    assert body["guid"] == token.extras["user"]
    assert body["trackGuid"] == token.extras["nonin_pulseoximeter"]
    assert "filter" not in body


@pytest.mark.anyio
async def test_single_measure_object_is_accepted(provider) -> None:
    provider.on(
        "POST",
        API_BASE + "user/track/filtered",
        httpx.Response(
            200,
            json={
                "trackResponse": {
                    "measures": {"measure": {"time": 1_700_000_000, "body": {"weight": "180.5"}}}
                }
            },
        ),
    )
    token = AuthorizationToken(
        username="alice",
        domain="twonet",
        access_token=PLACEHOLDER_CREDENTIAL,
        access_token_secret=PLACEHOLDER_CREDENTIAL,
        expires_at=NEVER,
        extras={"user": "U", "ad_weight_scale": "T3"},
    )

    page = await _shim(provider).fetch_data("omh:twonet:weight_lbs", 1, token)

    assert [point.data for point in page.points] == [{"weight_lbs": 180.5}]


@pytest.mark.anyio
async def test_failed_device_registration_aborts(provider) -> None:
    provider.on("POST", API_BASE + "register", httpx.Response(200, json={}))
    provider.on("POST", API_BASE + "user/track/register", httpx.Response(200, json={}))

    with pytest.raises(ExternalServiceError):
        await _shim(provider).authorization_engine().begin("alice", None)


@pytest.mark.anyio
async def test_token_without_device_is_refused(provider) -> None:
    token = AuthorizationToken(
        username="alice",
        domain="twonet",
        access_token=PLACEHOLDER_CREDENTIAL,
        access_token_secret=PLACEHOLDER_CREDENTIAL,
        expires_at=NEVER,
    )

    with pytest.raises(InvalidRequestError):
        await _shim(provider).fetch_data("omh:twonet:weight_lbs", 1, token)
