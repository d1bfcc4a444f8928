from __future__ import annotations

import os
from typing import Any, List

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sunbeam.logging import get_logger

logger = get_logger(__name__)

# Known front ends allowed to act as OAuth redirect origins
DEFAULT_FRONTEND_ORIGINS = [
    "https://fateslist.xyz",
    "https://lynx.fateslist.xyz",
    "https://sunbeam.fateslist.xyz",
    "http://localhost:3000",
]


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the auth service, resolved from env and `.env`."""

    # Identity provider (Discord)
    oauth_client_id: str = env_field("", "OAUTH_CLIENT_ID")
    oauth_client_secret: str = env_field("", "OAUTH_CLIENT_SECRET")
    oauth_authorize_url: str = env_field(
        "https://discord.com/oauth2/authorize", "OAUTH_AUTHORIZE_URL"
    )
    oauth_token_url: str = env_field(
        "https://discord.com/api/v10/oauth2/token", "OAUTH_TOKEN_URL"
    )
    oauth_profile_url: str = env_field(
        "https://discord.com/api/v10/users/@me", "OAUTH_PROFILE_URL"
    )
    oauth_scope: str = env_field("identify", "OAUTH_SCOPE")
    oauth_timeout_seconds: float = env_field(
        10.0,
        "OAUTH_TIMEOUT_SECONDS",
        description="Timeout applied to each identity provider call; never retried",
    )
    frontend_origins: List[str] = env_field(
        DEFAULT_FRONTEND_ORIGINS,
        "FRONTEND_ORIGINS",
        description="Comma-separated Frostpaw-Server values accepted on POST /oauth2",
    )
    access_token_ttl_seconds: int = env_field(
        60 * 60,
        "ACCESS_TOKEN_TTL_SECONDS",
        description="Lifetime of Frostpaw access tokens in the token cache",
    )
    database_url: str = env_field(
        "postgresql://localhost:5432/fateslist", "DATABASE_URL"
    )
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    allow_redis_fallback_dev: bool = env_field(False, "ALLOW_REDIS_FALLBACK_DEV")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow in-memory fallbacks and test-only runtime resets",
    )
    enable_hsts: bool = env_field(True, "ENABLE_HSTS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("frontend_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]
        return value

    @field_validator("access_token_ttl_seconds")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("access token TTL must be positive")
        return value

    def is_known_frontend(self, origin: str | None) -> bool:
        if not origin:
            return False
        return origin.rstrip("/") in self.frontend_origins


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
        if not _settings_cache.oauth_client_id:
            logger.warning("oauth_client_id_missing", env="OAUTH_CLIENT_ID")
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
