import asyncio
import inspect
import json
import os
import sys
from pathlib import Path

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sunbeam.app import create_app  # noqa: E402
from sunbeam.config import Settings, reset_settings_cache  # noqa: E402
from sunbeam.service.oauth import TokenExchanger  # noqa: E402
from sunbeam.service.runtime import Runtime  # noqa: E402
from sunbeam.storage.memory import MemoryStore  # noqa: E402
from sunbeam.storage.token_cache import MemoryTokenCache  # noqa: E402

FRONTEND = "https://fateslist.xyz"
CLIENT_SECRET = "frostpaw-test-secret-0123456789"
DISCORD_USER = {
    "id": "563808552288780322",
    "username": "Rootspring",
    "discriminator": "1234",
    "avatar": "a1b2c3",
}


class DiscordStub:
    """Fake Discord OAuth2 endpoints served through httpx.MockTransport."""

    def __init__(self):
        self.token_status = 200
        self.token_body = json.dumps({"access_token": "discord-access", "token_type": "Bearer"})
        self.profile_status = 200
        self.profile_body = json.dumps(DISCORD_USER)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(self.token_status, text=self.token_body)
        if request.url.path.endswith("/users/@me"):
            return httpx.Response(self.profile_status, text=self.profile_body)
        return httpx.Response(404, text="unknown stub route")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(autouse=True)
def reset_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings():
    return Settings(
        oauth_client_id="fateslist-test",
        oauth_client_secret="discord-client-secret",
        frontend_origins=[FRONTEND, "http://localhost:3000"],
        access_token_ttl_seconds=3600,
        use_memory_store=True,
        test_mode=True,
        redis_url="",
    )


@pytest.fixture
def discord():
    return DiscordStub()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def token_cache(settings):
    return MemoryTokenCache(settings.access_token_ttl_seconds)


@pytest.fixture
def frostpaw_client(memory_store):
    return memory_store.create_client(
        "squirrelflight",
        "Squirrelflight",
        CLIENT_SECRET,
        563808552288780322,
        domain="https://squirrelflight.example",
    )


@pytest.fixture
def runtime(settings, memory_store, token_cache, discord):
    return Runtime(
        settings,
        store=memory_store,
        cache=token_cache,
        exchanger=TokenExchanger(settings, transport=discord.transport()),
    )


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime=runtime))


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
