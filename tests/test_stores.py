try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from dsu.core.errors import ConflictError, NotFoundError
from dsu.models.authorization import (
    NEVER,
    AuthorizationInfo,
    AuthorizationToken,
    from_millis,
    new_authorize_id,
    to_millis,
)
from dsu.models.data import DataPoint


def _info(authorize_id: str = "abc", username: str = "alice") -> AuthorizationInfo:
    return AuthorizationInfo(
        authorize_id=authorize_id,
        username=username,
        domain="fitbit",
        url="https://www.fitbit.com/oauth/authorize?oauth_token=RT",
        client_url="https://app.example.com/done",
        pre_auth_state={"token": "RT", "secret": "RS"},
    )


def _token(expires_ms: int, access: str = "AT", username: str = "alice") -> AuthorizationToken:
    return AuthorizationToken(
        username=username,
        domain="fitbit",
        access_token=access,
        access_token_secret="AS",
        expires_at=from_millis(expires_ms),
    )


def test_pre_auth_state_round_trips(info_store) -> None:
    info = _info()
    info_store.insert(info)

    loaded = info_store.get("abc")

    assert loaded.pre_auth_state == {"token": "RT", "secret": "RS"}
    assert loaded.username == "alice"
    assert loaded.domain == "fitbit"
    assert loaded.url == info.url
    assert loaded.client_url == info.client_url
    assert to_millis(loaded.created_at) == to_millis(info.created_at)
    assert loaded.previously_denied is False


def test_pre_auth_state_is_encrypted_at_rest(info_store, db_path) -> None:
    info_store.insert(_info())

    with sqlite3.connect(db_path) as conn:
        (stored,) = conn.execute("SELECT pre_auth_state FROM authorization_info").fetchone()

    assert "RS" not in stored


def test_unknown_authorize_id_is_not_found(info_store) -> None:
    with pytest.raises(NotFoundError):
        info_store.get("missing")


def test_authorize_id_is_unique(info_store) -> None:
    info_store.insert(_info())

    with pytest.raises(ConflictError):
        info_store.insert(_info(username="mallory"))


def test_generated_authorize_ids_are_distinct_under_concurrency() -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(lambda _: new_authorize_id(), range(2000)))

    assert len(set(ids)) == len(ids)


def test_exists_tracks_previous_attempts(info_store) -> None:
    assert not info_store.exists("alice", "fitbit")
    info_store.insert(_info())
    assert info_store.exists("alice", "fitbit")
    assert not info_store.exists("alice", "withings")


def test_latest_token_has_greatest_expiration(token_store) -> None:
    for expires_ms, access in ((100, "A100"), (300, "A300"), (200, "A200")):
        token_store.insert(_token(expires_ms, access))

    latest = token_store.latest("alice", "fitbit")

    assert latest is not None
    assert latest.access_token == "A300"
    assert to_millis(latest.expires_at) == 300


def test_latest_token_is_none_without_records(token_store) -> None:
    token_store.insert(_token(100, username="bob"))
    assert token_store.latest("alice", "fitbit") is None


def test_never_expiring_token_round_trips(token_store) -> None:
    token = AuthorizationToken(
        username="alice",
        domain="withings",
        access_token="AT",
        access_token_secret="AS",
        expires_at=NEVER,
        extras={"userid": "42"},
    )
    token_store.insert(token)

    assert token_store.latest("alice", "withings") == token


def test_token_secrets_are_encrypted_at_rest(token_store, db_path) -> None:
    token_store.insert(_token(100, access="plain-access"))

    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT access_token, access_token_secret FROM authorization_tokens"
        ).fetchone()

    assert "plain-access" not in row[0]
    assert row[1] != "AS"


def test_one_token_per_authorization(token_store) -> None:
    assert not token_store.issued_for("abc")
    token_store.insert(_token(100), authorize_id="abc")
    assert token_store.issued_for("abc")

    with pytest.raises(ConflictError):
        token_store.insert(_token(200), authorize_id="abc")


def test_first_party_reads_are_newest_first_with_total(data_store) -> None:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    data_store.insert(
        [
            DataPoint(
                owner="alice",
                schema_id="omh:omh:weight",
                version=1,
                timestamp=base + timedelta(days=day),
                data={"weight": day},
            )
            for day in range(10)
        ]
    )

    page, total = data_store.read(
        owner="alice", schema_id="omh:omh:weight", version=1, skip=2, limit=3
    )

    assert total == 10
    assert [point.data["weight"] for point in page] == [7, 6, 5]

    windowed, total = data_store.read(
        owner="alice",
        schema_id="omh:omh:weight",
        version=1,
        start=base + timedelta(days=3),
        end=base + timedelta(days=5),
    )
    assert total == 3
    assert [point.data["weight"] for point in windowed] == [5, 4, 3]

    _, other_total = data_store.read(owner="bob", schema_id="omh:omh:weight", version=1)
    assert other_total == 0
