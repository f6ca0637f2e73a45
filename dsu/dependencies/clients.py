"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from dsu.clients import (
    SQLiteAuthorizationInfoStore,
    SQLiteAuthorizationTokenStore,
    SQLiteDataStore,
)
from dsu.core.config import get_settings
from dsu.services import SignedCredentialCodec, TokenCipherService
from dsu.shims.registry import ShimRegistry, build_shim_registry
from dsu.utils.http import ProviderHttpClient


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_provider_http_client() -> ProviderHttpClient:
    """Provide the HTTP client every provider call goes through."""
    return ProviderHttpClient(timeout=_settings().oauth.http_timeout_seconds)


@lru_cache()
def get_shim_registry() -> ShimRegistry:
    """Build the frozen shim registry once per process."""
    return build_shim_registry(_settings(), get_provider_http_client())


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService(secret=_settings().security.token_encryption_secret)


@lru_cache()
def get_credential_codec() -> SignedCredentialCodec:
    """Provide the signer/verifier for caller credentials."""
    return SignedCredentialCodec(_settings().security.signing_secret)


@lru_cache()
def get_authorization_info_store() -> SQLiteAuthorizationInfoStore:
    return SQLiteAuthorizationInfoStore(
        _settings().storage.db_path, cipher=get_token_cipher_service()
    )


@lru_cache()
def get_authorization_token_store() -> SQLiteAuthorizationTokenStore:
    return SQLiteAuthorizationTokenStore(
        _settings().storage.db_path, cipher=get_token_cipher_service()
    )


@lru_cache()
def get_data_store() -> SQLiteDataStore:
    """Provide the first-party data store."""
    return SQLiteDataStore(_settings().storage.db_path)


__all__ = [
    "get_authorization_info_store",
    "get_authorization_token_store",
    "get_credential_codec",
    "get_data_store",
    "get_provider_http_client",
    "get_shim_registry",
    "get_token_cipher_service",
]
