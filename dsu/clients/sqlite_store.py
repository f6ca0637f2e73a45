"""SQLite-backed bins for pending handshakes, issued tokens and first-party data."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dsu.core.errors import ConflictError, NotFoundError
from dsu.models.authorization import (
    AuthorizationInfo,
    AuthorizationToken,
    from_millis,
    to_millis,
)
from dsu.models.data import DataPoint
from dsu.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


def _ensure_directory(db_path: Path) -> None:
    if db_path.parent and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)


class _SQLiteBin:
    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        _ensure_directory(self._db_path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        raise NotImplementedError


class SQLiteAuthorizationInfoStore(_SQLiteBin):
    """Pending handshakes, unique by ``authorize_id``."""

    def __init__(self, db_path: str, *, cipher: TokenCipherService) -> None:
        self._cipher = cipher
        super().__init__(db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS authorization_info (
                    authorize_id TEXT PRIMARY KEY,
                    username TEXT NOT NULL,
                    domain TEXT NOT NULL,
                    url TEXT NOT NULL,
                    client_url TEXT,
                    pre_auth_state TEXT NOT NULL,
                    creation_date INTEGER NOT NULL,
                    previously_denied INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS authorization_info_user_domain
                ON authorization_info (username, domain)
                """
            )

    def insert(self, info: AuthorizationInfo) -> None:
        record = info.to_record()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO authorization_info (
                        authorize_id, username, domain, url, client_url,
                        pre_auth_state, creation_date, previously_denied
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record["authorize_id"],
                        record["username"],
                        record["domain"],
                        record["url"],
                        record["client_url"],
                        self._cipher.encrypt_mapping(record["pre_auth_state"]),
                        record["creation_date"],
                        int(record["previously_denied"]),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Authorization {info.authorize_id} already exists."
            ) from exc

    def get(self, authorize_id: str) -> AuthorizationInfo:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM authorization_info WHERE authorize_id = ?",
                (authorize_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Unknown authorization id: {authorize_id}")
        record = dict(row)
        record["pre_auth_state"] = self._cipher.decrypt_mapping(record["pre_auth_state"])
        return AuthorizationInfo.from_record(record)

    def exists(self, username: str, domain: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM authorization_info
                WHERE username = ? AND domain = ? LIMIT 1
                """,
                (username, domain),
            ).fetchone()
        return row is not None


class SQLiteAuthorizationTokenStore(_SQLiteBin):
    """Append-only token bin; the latest-expiring token for a pair wins."""

    def __init__(self, db_path: str, *, cipher: TokenCipherService) -> None:
        self._cipher = cipher
        super().__init__(db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS authorization_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL,
                    domain TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    access_token_secret TEXT,
                    refresh_token TEXT,
                    expiration_time INTEGER NOT NULL,
                    extras TEXT NOT NULL,
                    authorize_id TEXT UNIQUE
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS authorization_tokens_latest
                ON authorization_tokens (username, domain, expiration_time DESC)
                """
            )

    def insert(
        self, token: AuthorizationToken, *, authorize_id: Optional[str] = None
    ) -> None:
        record = token.to_record()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO authorization_tokens (
                        username, domain, access_token, access_token_secret,
                        refresh_token, expiration_time, extras, authorize_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record["username"],
                        record["domain"],
                        self._cipher.encrypt(record["access_token"]),
                        self._cipher.encrypt_optional(record["access_token_secret"]),
                        self._cipher.encrypt_optional(record["refresh_token"]),
                        record["expiration_time"],
                        json.dumps(record["extras"], sort_keys=True),
                        authorize_id,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"A token was already issued for authorization {authorize_id}."
            ) from exc
        logger.info("Stored %s token for user %s", token.domain, token.username)

    def latest(self, username: str, domain: str) -> Optional[AuthorizationToken]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM authorization_tokens
                WHERE username = ? AND domain = ?
                ORDER BY expiration_time DESC, id DESC
                LIMIT 1
                """,
                (username, domain),
            ).fetchone()
        if row is None:
            return None
        record = dict(row)
        record["access_token"] = self._cipher.decrypt(record["access_token"])
        record["access_token_secret"] = self._cipher.decrypt_optional(
            record["access_token_secret"]
        )
        record["refresh_token"] = self._cipher.decrypt_optional(record["refresh_token"])
        record["extras"] = json.loads(record["extras"])
        return AuthorizationToken.from_record(record)

    def issued_for(self, authorize_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM authorization_tokens WHERE authorize_id = ?",
                (authorize_id,),
            ).fetchone()
        return row is not None


class SQLiteDataStore(_SQLiteBin):
    """First-party data points for schemas no shim serves."""

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS data_points (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner TEXT NOT NULL,
                    schema_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    timestamp INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS data_points_owner_schema
                ON data_points (owner, schema_id, version, timestamp DESC)
                """
            )

    def insert(self, points: Sequence[DataPoint]) -> None:
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO data_points (owner, schema_id, version, timestamp, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        point.owner,
                        point.schema_id,
                        point.version,
                        to_millis(point.timestamp),
                        json.dumps(point.data, sort_keys=True),
                    )
                    for point in points
                ],
            )

    def read(
        self,
        *,
        owner: str,
        schema_id: str,
        version: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[DataPoint], int]:
        clauses = ["owner = ?", "schema_id = ?", "version = ?"]
        args: list = [owner, schema_id, version]
        if start is not None:
            clauses.append("timestamp >= ?")
            args.append(to_millis(start))
        if end is not None:
            clauses.append("timestamp <= ?")
            args.append(to_millis(end))
        where = " AND ".join(clauses)

        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM data_points WHERE {where}", args
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT * FROM data_points WHERE {where}
                ORDER BY timestamp DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                [*args, limit, skip],
            ).fetchall()

        points = [
            DataPoint(
                owner=row["owner"],
                schema_id=row["schema_id"],
                version=row["version"],
                timestamp=from_millis(row["timestamp"]),
                data=json.loads(row["data"]),
            )
            for row in rows
        ]
        return points, total


__all__ = [
    "SQLiteAuthorizationInfoStore",
    "SQLiteAuthorizationTokenStore",
    "SQLiteDataStore",
]
