from __future__ import annotations

import json
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as aioredis

from sunbeam.logging import get_logger
from sunbeam.storage.models import ClientSession

logger = get_logger(__name__)


class TokenCache(Protocol):
    """Expiring map of issued Frostpaw access tokens to their client sessions."""

    async def insert(self, token: str, session: ClientSession) -> None: ...

    async def get(self, token: str) -> Optional[ClientSession]: ...

    async def invalidate(self, token: str) -> None: ...

    async def iterate(self) -> List[Tuple[str, ClientSession]]: ...

    async def close(self) -> None: ...


class MemoryTokenCache:
    """Process-local token cache with per-entry TTL.

    Expired entries are dropped whenever they are touched by ``get`` or
    ``iterate``. All access goes through a lock so concurrent requests can
    share one instance.
    """

    def __init__(
        self, ttl_seconds: int, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[ClientSession, float]] = {}
        self._lock = threading.Lock()

    async def insert(self, token: str, session: ClientSession) -> None:
        with self._lock:
            self._entries[token] = (session, self._clock() + self.ttl_seconds)

    async def get(self, token: str) -> Optional[ClientSession]:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            session, expires_at = entry
            if expires_at <= self._clock():
                self._entries.pop(token, None)
                return None
            return session

    async def invalidate(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    async def iterate(self) -> List[Tuple[str, ClientSession]]:
        now = self._clock()
        with self._lock:
            expired = [t for t, (_, exp) in self._entries.items() if exp <= now]
            for token in expired:
                self._entries.pop(token, None)
            return [(token, session) for token, (session, _) in self._entries.items()]

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisTokenCache:
    """Redis-backed token cache; Redis key expiry provides the TTL."""

    KEY_PREFIX = "frostpaw:access:"

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int,
        *,
        socket_timeout: float = 5.0,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling the cache."""
        from redis import Redis

        # Short-lived sync client so the async one is not bound to a startup loop
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    @staticmethod
    def _encode(session: ClientSession) -> str:
        return json.dumps(
            {
                "client_id": session.client_id,
                "user_id": session.user_id,
                "session_token": session.session_token,
            }
        )

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[ClientSession]:
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return ClientSession(
                client_id=data["client_id"],
                user_id=int(data["user_id"]),
                session_token=data["session_token"],
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("token_cache_entry_corrupt", error=str(exc))
            return None

    async def insert(self, token: str, session: ClientSession) -> None:
        await self.client.set(
            f"{self.KEY_PREFIX}{token}", self._encode(session), ex=self.ttl_seconds
        )

    async def get(self, token: str) -> Optional[ClientSession]:
        return self._decode(await self.client.get(f"{self.KEY_PREFIX}{token}"))

    async def invalidate(self, token: str) -> None:
        await self.client.delete(f"{self.KEY_PREFIX}{token}")

    async def iterate(self) -> List[Tuple[str, ClientSession]]:
        entries: List[Tuple[str, ClientSession]] = []
        async for key in self.client.scan_iter(match=f"{self.KEY_PREFIX}*", count=500):
            # Keys may expire between SCAN and GET
            session = self._decode(await self.client.get(key))
            if session is not None:
                entries.append((key[len(self.KEY_PREFIX):], session))
        return entries

    async def close(self) -> None:
        await self.client.aclose()
