from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from sunbeam.logging import get_logger
from sunbeam.storage.errors import StorageError
from sunbeam.storage.models import (
    RefreshRecord,
    RegisteredClient,
    User,
    UserProfile,
    new_api_token,
    new_refresh_token,
)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id BIGINT PRIMARY KEY,
        username TEXT NOT NULL,
        disc TEXT NOT NULL DEFAULT '0000',
        avatar TEXT,
        bot BOOLEAN NOT NULL DEFAULT FALSE,
        api_token TEXT NOT NULL UNIQUE,
        site_lang TEXT NOT NULL DEFAULT 'en',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS frostpaw_clients (
        client_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        secret TEXT NOT NULL,
        owner_id BIGINT NOT NULL,
        domain TEXT,
        privacy_policy TEXT,
        verified BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS frostpaw_refresh_tokens (
        refresh_token TEXT PRIMARY KEY,
        client_id TEXT NOT NULL REFERENCES frostpaw_clients (client_id) ON DELETE CASCADE,
        user_id BIGINT NOT NULL REFERENCES users (user_id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (client_id, user_id)
    )
    """,
]


class PostgresStore:
    """Thin Postgres-backed store for users, Frostpaw clients and refresh tokens."""

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=1,
            max_size=10,
            open=True,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[psycopg.Connection]:
        try:
            with self.pool.connection() as conn:
                yield conn
        except StorageError:
            raise
        except psycopg.Error as exc:
            # PoolTimeout is an OperationalError too
            self.logger.error("postgres_error", error_type=type(exc).__name__, error=str(exc))
            raise StorageError("database unavailable", {"error": str(exc)}) from exc

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    @staticmethod
    def _user_from_row(row: Dict[str, Any]) -> User:
        return User(
            id=int(row["user_id"]),
            username=row["username"],
            disc=row.get("disc") or "0000",
            avatar=row.get("avatar"),
            bot=row.get("bot", False),
            api_token=row["api_token"],
            site_lang=row.get("site_lang") or "en",
            created_at=row.get("created_at", datetime.utcnow()),
        )

    @staticmethod
    def _client_from_row(row: Dict[str, Any]) -> RegisteredClient:
        return RegisteredClient(
            client_id=row["client_id"],
            name=row["name"],
            secret=row["secret"],
            owner_id=int(row["owner_id"]),
            domain=row.get("domain"),
            privacy_policy=row.get("privacy_policy"),
            verified=row.get("verified", False),
            created_at=row.get("created_at", datetime.utcnow()),
        )

    @staticmethod
    def _refresh_from_row(row: Dict[str, Any]) -> RefreshRecord:
        return RefreshRecord(
            refresh_token=row["refresh_token"],
            client_id=row["client_id"],
            user_id=int(row["user_id"]),
            created_at=row.get("created_at", datetime.utcnow()),
        )

    def upsert_user(self, profile: UserProfile) -> User:
        # api_token is only written on insert so it survives later logins
        with self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO users (user_id, username, disc, avatar, bot, api_token)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE
                    SET username = EXCLUDED.username,
                        disc = EXCLUDED.disc,
                        avatar = EXCLUDED.avatar,
                        bot = EXCLUDED.bot
                RETURNING *
                """,
                (
                    profile.id,
                    profile.username,
                    profile.disc,
                    profile.avatar,
                    profile.bot,
                    new_api_token(),
                ),
            ).fetchone()
        if not row:
            raise StorageError("user upsert returned no row", {"user_id": profile.id})
        return self._user_from_row(row)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = %s", (user_id,)
            ).fetchone()
        return self._user_from_row(row) if row else None

    def create_client(
        self,
        client_id: str,
        name: str,
        secret: str,
        owner_id: int,
        *,
        domain: Optional[str] = None,
        privacy_policy: Optional[str] = None,
        verified: bool = False,
    ) -> RegisteredClient:
        with self._connect() as conn:
            try:
                row = conn.execute(
                    """
                    INSERT INTO frostpaw_clients (client_id, name, secret, owner_id, domain, privacy_policy, verified)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (client_id, name, secret, owner_id, domain, privacy_policy, verified),
                ).fetchone()
            except errors.UniqueViolation as exc:
                raise StorageError("client already exists", {"client_id": client_id}) from exc
        return self._client_from_row(row)

    def get_client(self, client_id: str) -> Optional[RegisteredClient]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM frostpaw_clients WHERE client_id = %s", (client_id,)
            ).fetchone()
        return self._client_from_row(row) if row else None

    def get_or_create_refresh_token(self, client_id: str, user_id: int) -> RefreshRecord:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO frostpaw_refresh_tokens (refresh_token, client_id, user_id)
                VALUES (%s, %s, %s)
                ON CONFLICT (client_id, user_id) DO NOTHING
                """,
                (new_refresh_token(), client_id, user_id),
            )
            row = conn.execute(
                "SELECT * FROM frostpaw_refresh_tokens WHERE client_id = %s AND user_id = %s",
                (client_id, user_id),
            ).fetchone()
        if not row:
            raise StorageError(
                "refresh token missing after insert",
                {"client_id": client_id, "user_id": user_id},
            )
        return self._refresh_from_row(row)

    def get_refresh_record(self, refresh_token: str) -> Optional[RefreshRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM frostpaw_refresh_tokens WHERE refresh_token = %s",
                (refresh_token,),
            ).fetchone()
        return self._refresh_from_row(row) if row else None

    def close(self) -> None:
        self.pool.close()
