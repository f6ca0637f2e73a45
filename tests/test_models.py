try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import pytest

from dsu.core.errors import InvalidRequestError
from dsu.models.authorization import (
    NEVER,
    AuthorizationToken,
    from_millis,
    to_millis,
)
from dsu.models.data import project_columns


def test_token_needs_secret_or_refresh_credential() -> None:
    with pytest.raises(InvalidRequestError):
        AuthorizationToken(username="alice", domain="fitbit", access_token="AT")

    AuthorizationToken(
        username="alice", domain="fitbit", access_token="AT", access_token_secret="AS"
    )
    AuthorizationToken(
        username="alice", domain="fitbit", access_token="AT", refresh_token="RF"
    )


def test_token_expiry() -> None:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    token = AuthorizationToken(
        username="alice",
        domain="fitbit",
        access_token="AT",
        refresh_token="RF",
        expires_at=now + timedelta(seconds=1),
    )
    assert not token.is_expired(now)
    assert token.is_expired(now + timedelta(seconds=1))

    forever = token.model_copy(update={"expires_at": NEVER})
    assert forever.never_expires
    assert not forever.is_expired(datetime(9999, 1, 1, tzinfo=timezone.utc))


def test_millisecond_conversion_round_trips_including_never() -> None:
    moment = datetime(2024, 5, 17, 8, 30, 15, 123000, tzinfo=timezone.utc)
    assert from_millis(to_millis(moment)) == moment
    assert to_millis(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0
    assert from_millis(to_millis(NEVER)) == NEVER


def test_token_record_uses_persisted_field_names() -> None:
    token = AuthorizationToken(
        username="alice",
        domain="withings",
        access_token="AT",
        access_token_secret="AS",
        extras={"userid": "42"},
    )

    record = token.to_record()

    assert set(record) == {
        "username",
        "domain",
        "access_token",
        "access_token_secret",
        "refresh_token",
        "expiration_time",
        "extras",
    }
    assert AuthorizationToken.from_record(record) == token


def test_project_columns_keeps_only_requested_paths() -> None:
    data = {"steps": 10, "detail": {"source": "band", "battery": 80}, "other": 1}

    assert project_columns(data, None) == data
    assert project_columns(data, ["steps", "detail.source", "missing.path"]) == {
        "steps": 10,
        "detail": {"source": "band"},
    }
