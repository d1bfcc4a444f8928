from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

ACCESS_TOKEN_PREFIX = "Frostpaw."
_TOKEN_ALPHABET = string.ascii_letters + string.digits


def random_token(length: int) -> str:
    """Alphanumeric token drawn from the OS CSPRNG."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def new_access_token() -> str:
    return ACCESS_TOKEN_PREFIX + random_token(64)


def new_refresh_token() -> str:
    return random_token(128)


def new_api_token() -> str:
    return random_token(128)


@dataclass
class UserProfile:
    """Identity returned by the provider's profile endpoint."""

    id: int
    username: str
    disc: str = "0000"
    avatar: Optional[str] = None
    bot: bool = False

    @classmethod
    def from_discord(cls, payload: dict) -> "UserProfile":
        # Discord sends snowflakes as strings
        user_id = int(str(payload["id"]))
        return cls(
            id=user_id,
            username=str(payload.get("username") or ""),
            disc=str(payload.get("discriminator") or "0000"),
            avatar=payload.get("avatar"),
            bot=bool(payload.get("bot", False)),
        )

    def avatar_url(self) -> str:
        if self.avatar:
            return f"https://cdn.discordapp.com/avatars/{self.id}/{self.avatar}.png"
        return "https://cdn.discordapp.com/embed/avatars/0.png"


@dataclass
class User:
    id: int
    username: str
    api_token: str
    disc: str = "0000"
    avatar: Optional[str] = None
    bot: bool = False
    site_lang: str = "en"
    created_at: datetime = field(default_factory=datetime.utcnow)

    def profile(self) -> UserProfile:
        return UserProfile(
            id=self.id,
            username=self.username,
            disc=self.disc,
            avatar=self.avatar,
            bot=self.bot,
        )


@dataclass
class RegisteredClient:
    """Third-party Frostpaw application; ``secret`` keys its HMAC challenges."""

    client_id: str
    name: str
    secret: str
    owner_id: int
    domain: Optional[str] = None
    privacy_policy: Optional[str] = None
    verified: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class RefreshRecord:
    refresh_token: str
    client_id: str
    user_id: int
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class ClientSession:
    """What a live Frostpaw access token stands for."""

    client_id: str
    user_id: int
    session_token: str

    def matches(self, client_id: str, user_id: int) -> bool:
        return self.client_id == client_id and self.user_id == user_id
