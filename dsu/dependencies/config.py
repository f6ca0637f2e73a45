"""
Settings injection for route handlers.

Routes declare ``settings: Settings`` and tests swap the object out through
``app.dependency_overrides[get_app_settings]``.
"""

from typing import Annotated

from fastapi import Depends

from dsu.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning the process-wide gateway settings."""
    return get_settings()


Settings = Annotated[AppSettings, Depends(get_app_settings)]

__all__ = ["Settings", "get_app_settings"]
