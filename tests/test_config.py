import pytest
from pydantic import ValidationError

from sunbeam.config import DEFAULT_FRONTEND_ORIGINS, Settings, get_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.frontend_origins == DEFAULT_FRONTEND_ORIGINS
        assert settings.access_token_ttl_seconds == 3600
        assert settings.oauth_timeout_seconds == 10.0
        assert settings.oauth_scope == "identify"

    def test_origins_from_comma_separated_string(self):
        settings = Settings(frontend_origins="https://a.example/, https://b.example,,")
        assert settings.frontend_origins == ["https://a.example", "https://b.example"]

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValidationError):
            Settings(access_token_ttl_seconds=0)

    def test_is_known_frontend(self):
        settings = Settings(frontend_origins=["https://fateslist.xyz"])
        assert settings.is_known_frontend("https://fateslist.xyz")
        assert settings.is_known_frontend("https://fateslist.xyz/")
        assert not settings.is_known_frontend("https://evil.example")
        assert not settings.is_known_frontend("")
        assert not settings.is_known_frontend(None)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OAUTH_CLIENT_ID", "env-client")
        monkeypatch.setenv("FRONTEND_ORIGINS", "https://x.example,https://y.example")
        monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "120")
        monkeypatch.setenv("USE_MEMORY_STORE", "true")

        settings = Settings.from_env()

        assert settings.oauth_client_id == "env-client"
        assert settings.frontend_origins == ["https://x.example", "https://y.example"]
        assert settings.access_token_ttl_seconds == 120
        assert settings.use_memory_store is True

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setenv("OAUTH_CLIENT_ID", "first")
        first = get_settings()
        monkeypatch.setenv("OAUTH_CLIENT_ID", "second")
        assert get_settings() is first
