"""Tests for the authorization-code exchange against a stubbed provider."""

import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from sunbeam.service.errors import BadExchangeError, NoUserError
from sunbeam.service.oauth import TokenExchanger, redirect_uri_for

REDIRECT = "https://fateslist.xyz/frostpaw/login"


@pytest.fixture
def exchanger(settings, discord):
    return TokenExchanger(settings, transport=discord.transport())


class TestRedirectAndAuthorizeUrl:
    def test_redirect_uri_appends_callback_path(self):
        assert redirect_uri_for("https://fateslist.xyz") == REDIRECT
        assert redirect_uri_for("https://fateslist.xyz/") == REDIRECT

    def test_authorize_url_carries_client_and_state(self, exchanger, settings):
        url = exchanger.authorize_url(REDIRECT, "state-123")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert url.startswith(settings.oauth_authorize_url)
        assert query["client_id"] == [settings.oauth_client_id]
        assert query["redirect_uri"] == [REDIRECT]
        assert query["state"] == ["state-123"]
        assert query["scope"] == ["identify"]
        assert query["response_type"] == ["code"]


class TestExchangeSuccess:
    async def test_returns_provider_profile(self, exchanger):
        profile = await exchanger.exchange("good-code", REDIRECT)

        assert profile.id == 563808552288780322
        assert profile.username == "Rootspring"
        assert profile.disc == "1234"
        assert profile.avatar == "a1b2c3"
        assert profile.bot is False

    async def test_token_request_is_form_encoded_code_grant(self, exchanger, discord, settings):
        await exchanger.exchange("good-code", REDIRECT)

        token_request = discord.requests[0]
        assert token_request.method == "POST"
        form = parse_qs(token_request.content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["good-code"]
        assert form["redirect_uri"] == [REDIRECT]
        assert form["client_id"] == [settings.oauth_client_id]
        assert form["client_secret"] == [settings.oauth_client_secret]

    async def test_profile_fetched_with_provider_token(self, exchanger, discord):
        await exchanger.exchange("good-code", REDIRECT)

        assert len(discord.requests) == 2
        profile_request = discord.requests[1]
        assert profile_request.method == "GET"
        assert profile_request.headers["Authorization"] == "Bearer discord-access"


class TestExchangeFailures:
    async def test_rejected_code_carries_provider_body(self, exchanger, discord):
        discord.token_status = 400
        discord.token_body = '{"error": "invalid_grant"}'

        with pytest.raises(BadExchangeError) as exc_info:
            await exchanger.exchange("used-code", REDIRECT)

        assert exc_info.value.error_code == "BadExchange"
        assert exc_info.value.body == '{"error": "invalid_grant"}'
        assert "invalid_grant" in exc_info.value.message
        # No profile call after a failed exchange
        assert len(discord.requests) == 1

    async def test_unparseable_token_response(self, exchanger, discord):
        discord.token_body = "<html>gateway timeout</html>"

        with pytest.raises(BadExchangeError) as exc_info:
            await exchanger.exchange("code", REDIRECT)
        assert exc_info.value.body == "<html>gateway timeout</html>"

    async def test_token_response_without_access_token(self, exchanger, discord):
        discord.token_body = json.dumps({"token_type": "Bearer"})

        with pytest.raises(BadExchangeError):
            await exchanger.exchange("code", REDIRECT)

    async def test_transport_error_is_bad_exchange(self, settings):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        exchanger = TokenExchanger(settings, transport=httpx.MockTransport(unreachable))
        with pytest.raises(BadExchangeError):
            await exchanger.exchange("code", REDIRECT)

    async def test_profile_rejection_is_no_user(self, exchanger, discord):
        discord.profile_status = 401
        discord.profile_body = '{"message": "401: Unauthorized"}'

        with pytest.raises(NoUserError) as exc_info:
            await exchanger.exchange("code", REDIRECT)
        assert exc_info.value.error_code == "NoUser"
        assert exc_info.value.body == '{"message": "401: Unauthorized"}'

    async def test_profile_without_numeric_id_is_no_user(self, exchanger, discord):
        discord.profile_body = json.dumps({"id": "not-a-snowflake", "username": "x"})

        with pytest.raises(NoUserError):
            await exchanger.exchange("code", REDIRECT)
