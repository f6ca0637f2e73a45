"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the shim registry and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)


class SecuritySettings(_EnvSettings):
    """Secrets protecting stored tokens and caller credentials."""

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    credential_signing_secret: Optional[str] = Field(
        None,
        validation_alias="CREDENTIAL_SIGNING_SECRET",
        description="HMAC key for caller credentials; falls back to the encryption secret.",
    )

    @property
    def signing_secret(self) -> str:
        return self.credential_signing_secret or self.token_encryption_secret


class OAuthSettings(_EnvSettings):
    """Delegated authorization handshake configuration."""

    callback_url: AnyHttpUrl = Field(
        "http://localhost:8000/auth/oauth/external_authorization",
        validation_alias="OAUTH_CALLBACK_URL",
    )
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="PROVIDER_HTTP_TIMEOUT")

    @field_validator("state_ttl_seconds")
    @classmethod
    def _non_negative_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("OAUTH_STATE_TTL must be zero or positive.")
        return value

    @field_validator("http_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("PROVIDER_HTTP_TIMEOUT must be positive.")
        return value


class StorageSettings(_EnvSettings):
    """Location of the SQLite database holding every bin."""

    db_path: str = Field("data/dsu.db", validation_alias="DSU_DB_PATH")


class FitbitSettings(_EnvSettings):
    """OAuth1 consumer credentials for Fitbit."""

    client_id: Optional[str] = Field(None, validation_alias="FITBIT_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="FITBIT_CLIENT_SECRET")

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class WithingsSettings(_EnvSettings):
    """OAuth1 consumer credentials for Withings."""

    client_id: Optional[str] = Field(None, validation_alias="WITHINGS_CLIENT_ID")
    client_secret: Optional[str] = Field(
        None, validation_alias="WITHINGS_CLIENT_SECRET"
    )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class TwoNetSettings(_EnvSettings):
    """Partner key pair for the 2net device hub."""

    key: Optional[str] = Field(None, validation_alias="TWONET_KEY")
    secret: Optional[str] = Field(None, validation_alias="TWONET_SECRET")

    @property
    def configured(self) -> bool:
        return bool(self.key and self.secret)


class AppSettings(_EnvSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Default URL users land on once a provider has been connected.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    fitbit: FitbitSettings = Field(default_factory=FitbitSettings)
    withings: WithingsSettings = Field(default_factory=WithingsSettings)
    twonet: TwoNetSettings = Field(default_factory=TwoNetSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "FitbitSettings",
    "OAuthSettings",
    "SecuritySettings",
    "StorageSettings",
    "TwoNetSettings",
    "WithingsSettings",
    "get_settings",
]
