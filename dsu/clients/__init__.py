"""Persistence contracts and their SQLite implementations."""

from .sqlite_store import (
    SQLiteAuthorizationInfoStore,
    SQLiteAuthorizationTokenStore,
    SQLiteDataStore,
)
from .stores import AuthorizationInfoStore, AuthorizationTokenStore, DataStore

__all__ = [
    "AuthorizationInfoStore",
    "AuthorizationTokenStore",
    "DataStore",
    "SQLiteAuthorizationInfoStore",
    "SQLiteAuthorizationTokenStore",
    "SQLiteDataStore",
]
