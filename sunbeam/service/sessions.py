from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from sunbeam.logging import get_logger
from sunbeam.service.errors import (
    ClientMismatchError,
    ClientNotFoundError,
    RefreshTokenNotFoundError,
    SecretMismatchError,
    database_errors,
)
from sunbeam.service.nonce import NonceVerifier
from sunbeam.service.oauth import TokenExchanger
from sunbeam.storage.models import (
    ClientSession,
    RefreshRecord,
    RegisteredClient,
    User,
    UserProfile,
    new_access_token,
)
from sunbeam.storage.token_cache import TokenCache

logger = get_logger(__name__)


class AuthStore(Protocol):
    def upsert_user(self, profile: UserProfile) -> User: ...

    def get_user(self, user_id: int) -> Optional[User]: ...

    def get_client(self, client_id: str) -> Optional[RegisteredClient]: ...

    def get_or_create_refresh_token(
        self, client_id: str, user_id: int
    ) -> RefreshRecord: ...

    def get_refresh_record(self, refresh_token: str) -> Optional[RefreshRecord]: ...

    def close(self) -> None: ...


@dataclass
class CookieLogin:
    """Browser login; the route stores ``user`` and ``token`` in the session cookie."""

    user: User
    token: str


@dataclass
class ClientLogin:
    """Frostpaw client login; tokens go back in the body and no cookie is set."""

    user: User
    client: RegisteredClient
    access_token: str
    refresh_token: str


LoginResult = Union[CookieLogin, ClientLogin]


class SessionIssuer:
    """Turns a provider-verified user into a cookie session or a client session.

    Unauthenticated -> ProviderVerified happens through the token exchanger and a
    user upsert, which also yields the user's durable underlying session token.
    From there the default path produces a cookie login, while Frostpaw clients
    get a cached access token plus a stored refresh token. At most one access
    token per (client, user) pair is kept live; concurrent logins for the same
    pair may briefly leave one extra token until its TTL runs out.
    """

    def __init__(
        self,
        store: AuthStore,
        cache: TokenCache,
        exchanger: TokenExchanger,
        verifier: NonceVerifier,
    ) -> None:
        self.store = store
        self.cache = cache
        self.exchanger = exchanger
        self.verifier = verifier
        self.logger = logger

    async def login(
        self,
        code: str,
        redirect_uri: str,
        *,
        frostpaw: bool = False,
        blood: Optional[str] = None,
        claw: Optional[str] = None,
        unseathe_time: Optional[int] = None,
        now: Optional[int] = None,
    ) -> LoginResult:
        client: Optional[RegisteredClient] = None
        if frostpaw:
            # Checked before the exchange so a rejected challenge never burns the code
            client = self.verifier.verify(blood, claw, unseathe_time, now=now)

        profile = await self.exchanger.exchange(code, redirect_uri)
        with database_errors(self.logger, "user_upsert_failed", user_id=profile.id):
            user = self.store.upsert_user(profile)

        if client is None:
            self.logger.info("cookie_login", user_id=user.id)
            return CookieLogin(user=user, token=user.api_token)

        access_token = await self._mint_access_token(client.client_id, user)
        with database_errors(
            self.logger,
            "refresh_token_store_failed",
            client_id=client.client_id,
            user_id=user.id,
        ):
            record = self.store.get_or_create_refresh_token(client.client_id, user.id)

        self.logger.info("frostpaw_login", client_id=client.client_id, user_id=user.id)
        return ClientLogin(
            user=user,
            client=client,
            access_token=access_token,
            refresh_token=record.refresh_token,
        )

    def get_client(self, client_id: str) -> RegisteredClient:
        with database_errors(self.logger, "client_lookup_failed", client_id=client_id):
            client = self.store.get_client(client_id)
        if client is None:
            raise ClientNotFoundError(f"frostpaw client {client_id} not found")
        return client

    async def refresh(self, client_id: str, secret: str, refresh_token: str) -> str:
        """Mint a new access token from a refresh token without a provider round trip.

        The refresh token itself is left as is.
        """
        client = self.get_client(client_id)
        if not hmac.compare_digest(client.secret.encode(), secret.encode()):
            self.logger.warning("frostpaw_refresh_bad_secret", client_id=client_id)
            raise SecretMismatchError("client secret does not match")

        with database_errors(self.logger, "refresh_lookup_failed", client_id=client_id):
            record = self.store.get_refresh_record(refresh_token)
        if record is None:
            raise RefreshTokenNotFoundError("unknown refresh token")
        if record.client_id != client_id:
            self.logger.warning(
                "frostpaw_refresh_client_mismatch",
                client_id=client_id,
                bound_client_id=record.client_id,
            )
            raise ClientMismatchError("refresh token belongs to a different client")

        with database_errors(self.logger, "user_lookup_failed", user_id=record.user_id):
            user = self.store.get_user(record.user_id)
        if user is None:
            raise ClientNotFoundError(
                f"user {record.user_id} no longer exists", error_code="UserNotFound"
            )

        access_token = await self._mint_access_token(client_id, user)
        self.logger.info("frostpaw_refresh", client_id=client_id, user_id=user.id)
        return access_token

    async def resolve(self, access_token: str) -> Optional[ClientSession]:
        return await self.cache.get(access_token)

    async def revoke(self, access_token: str) -> None:
        await self.cache.invalidate(access_token)

    async def invalidate_pair(self, client_id: str, user_id: int) -> int:
        """Drop every cached access token issued to ``client_id`` for ``user_id``."""
        removed = 0
        for token, session in await self.cache.iterate():
            if session.matches(client_id, user_id):
                await self.cache.invalidate(token)
                removed += 1
        return removed

    async def _mint_access_token(self, client_id: str, user: User) -> str:
        removed = await self.invalidate_pair(client_id, user.id)
        if removed:
            self.logger.info(
                "frostpaw_tokens_invalidated",
                client_id=client_id,
                user_id=user.id,
                count=removed,
            )
        access_token = new_access_token()
        await self.cache.insert(
            access_token,
            ClientSession(client_id=client_id, user_id=user.id, session_token=user.api_token),
        )
        return access_token
