"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import RecordingProvider
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import RecordingProvider  # type: ignore

import pytest

from dsu.clients.sqlite_store import (
    SQLiteAuthorizationInfoStore,
    SQLiteAuthorizationTokenStore,
    SQLiteDataStore,
)
from dsu.services.credentials import SignedCredentialCodec
from dsu.services.token_cipher import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture()
def cipher() -> TokenCipherService:
    return TokenCipherService(secret="store-secret")


@pytest.fixture()
def db_path(tmp_path) -> str:
    return str(tmp_path / "dsu.db")


@pytest.fixture()
def info_store(db_path, cipher) -> SQLiteAuthorizationInfoStore:
    return SQLiteAuthorizationInfoStore(db_path, cipher=cipher)


@pytest.fixture()
def token_store(db_path, cipher) -> SQLiteAuthorizationTokenStore:
    return SQLiteAuthorizationTokenStore(db_path, cipher=cipher)


@pytest.fixture()
def data_store(db_path) -> SQLiteDataStore:
    return SQLiteDataStore(db_path)


@pytest.fixture()
def codec() -> SignedCredentialCodec:
    return SignedCredentialCodec("codec-secret")


@pytest.fixture()
def provider() -> RecordingProvider:
    return RecordingProvider()
