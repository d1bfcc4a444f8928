from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

import httpx

from sunbeam.config import Settings
from sunbeam.logging import get_logger
from sunbeam.service.errors import BadExchangeError, NoUserError
from sunbeam.storage.models import UserProfile

logger = get_logger(__name__)

# Path on the front end that receives the provider redirect
LOGIN_CALLBACK_PATH = "/frostpaw/login"


def redirect_uri_for(server: str) -> str:
    return f"{server.rstrip('/')}{LOGIN_CALLBACK_PATH}"


class TokenExchanger:
    """Authorization-code exchange against the identity provider.

    Two sequential calls, both bounded by ``oauth_timeout_seconds`` and never
    retried: the code is traded for a provider access token, which is then used
    once to fetch the user's profile. The provider token is not kept.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self.logger = logger

    def authorize_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.settings.oauth_client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": self.settings.oauth_scope,
            "response_type": "code",
        }
        return f"{self.settings.oauth_authorize_url}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.oauth_timeout_seconds,
            follow_redirects=False,
            transport=self._transport,
        )

    async def exchange(self, code: str, redirect_uri: str) -> UserProfile:
        async with self._client() as client:
            access_token = await self._fetch_access_token(client, code, redirect_uri)
            return await self._fetch_profile(client, access_token)

    async def _fetch_access_token(
        self, client: httpx.AsyncClient, code: str, redirect_uri: str
    ) -> str:
        token_data = {
            "client_id": self.settings.oauth_client_id,
            "client_secret": self.settings.oauth_client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        try:
            response = await client.post(
                self.settings.oauth_token_url,
                data=token_data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            self.logger.error("oauth_token_request_failed", error=str(exc))
            raise BadExchangeError(f"token request failed: {exc}") from exc

        if not response.is_success:
            self.logger.warning(
                "oauth_token_rejected",
                status_code=response.status_code,
                redirect_uri=redirect_uri,
            )
            raise BadExchangeError(response.text, body=response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            self.logger.error("oauth_token_parse_error", error=str(exc))
            raise BadExchangeError(response.text, body=response.text) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            self.logger.error("oauth_no_access_token")
            raise BadExchangeError(response.text, body=response.text)
        return access_token

    async def _fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> UserProfile:
        try:
            response = await client.get(
                self.settings.oauth_profile_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            self.logger.error("oauth_profile_request_failed", error=str(exc))
            raise NoUserError(f"profile request failed: {exc}") from exc

        if not response.is_success:
            self.logger.warning("oauth_profile_rejected", status_code=response.status_code)
            raise NoUserError(response.text, body=response.text)

        try:
            payload = response.json()
            profile = UserProfile.from_discord(payload)
        except (ValueError, KeyError, TypeError) as exc:
            self.logger.error("oauth_profile_parse_error", error=str(exc))
            raise NoUserError(response.text, body=response.text) from exc

        self.logger.info("oauth_exchange_success", user_id=profile.id)
        return profile
