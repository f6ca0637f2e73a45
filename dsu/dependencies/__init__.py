"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_authorization_info_store,
    get_authorization_token_store,
    get_credential_codec,
    get_data_store,
    get_provider_http_client,
    get_shim_registry,
    get_token_cipher_service,
)
from .config import Settings, get_app_settings

__all__ = [
    "Settings",
    "get_app_settings",
    "get_authorization_info_store",
    "get_authorization_token_store",
    "get_credential_codec",
    "get_data_store",
    "get_provider_http_client",
    "get_shim_registry",
    "get_token_cipher_service",
]
