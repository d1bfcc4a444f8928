from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse, urlunparse

from fastapi import Request

from sunbeam.config import Settings, get_settings
from sunbeam.logging import get_logger
from sunbeam.service.nonce import NonceVerifier
from sunbeam.service.oauth import TokenExchanger
from sunbeam.service.sessions import AuthStore, SessionIssuer
from sunbeam.storage.memory import MemoryStore
from sunbeam.storage.token_cache import MemoryTokenCache, RedisTokenCache, TokenCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a connection URL for logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


def _build_store(settings: Settings) -> AuthStore:
    if settings.use_memory_store:
        return MemoryStore()
    from sunbeam.storage.postgres import PostgresStore

    return PostgresStore(settings.database_url)


def _build_cache(settings: Settings) -> TokenCache:
    redis_error: Exception | None = None
    if settings.redis_url:
        try:
            cache = RedisTokenCache(settings.redis_url, settings.access_token_ttl_seconds)
            cache.verify_connection()
            return cache
        except Exception as exc:
            redis_error = exc

    if not settings.test_mode and not settings.allow_redis_fallback_dev:
        raise RuntimeError(
            "Redis is required for the Frostpaw token cache; start Redis or set "
            "TEST_MODE=true/ALLOW_REDIS_FALLBACK_DEV=true for the in-memory fallback."
        ) from redis_error

    logger.warning(
        "redis_disabled_fallback",
        redis_url=_mask_url_password(settings.redis_url),
        error=str(redis_error) if redis_error else "redis_url_missing",
        message="Frostpaw access tokens are cached in-process only",
    )
    return MemoryTokenCache(settings.access_token_ttl_seconds)


class Runtime:
    """Service instances shared by every request of one app."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[AuthStore] = None,
        cache: Optional[TokenCache] = None,
        exchanger: Optional[TokenExchanger] = None,
    ) -> None:
        self.settings = settings or get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )
        try:
            self.store = store if store is not None else _build_store(self.settings)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.cache = cache if cache is not None else _build_cache(self.settings)
        self.exchanger = exchanger or TokenExchanger(self.settings)
        self.verifier = NonceVerifier(self.store)
        self.sessions = SessionIssuer(self.store, self.cache, self.exchanger, self.verifier)

    async def close(self) -> None:
        await self.cache.close()
        self.store.close()


def get_runtime(request: Request) -> Runtime:
    """FastAPI dependency returning the runtime attached to the running app."""
    return request.app.state.runtime
