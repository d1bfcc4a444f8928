from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from sunbeam.storage.models import RegisteredClient, User


class APIResponse(BaseModel):
    """Uniform envelope for simple results and every error."""

    done: bool
    reason: Optional[str] = None
    context: Optional[str] = None


class OauthDoQuery(BaseModel):
    code: str = Field(..., min_length=1, max_length=512)
    state: Optional[str] = Field(default=None, max_length=128)
    frostpaw: bool = False
    frostpaw_blood: Optional[str] = Field(default=None, max_length=128)
    frostpaw_claw: Optional[str] = Field(default=None, max_length=256)
    frostpaw_claw_unseathe_time: Optional[int] = None

    @field_validator("frostpaw_blood", "frostpaw_claw")
    @classmethod
    def _blank_as_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class UserPayload(BaseModel):
    id: str
    username: str
    disc: str
    avatar: str
    bot: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserPayload":
        profile = user.profile()
        return cls(
            id=str(user.id),
            username=user.username,
            disc=user.disc,
            avatar=profile.avatar_url(),
            bot=user.bot,
        )


class OauthUserLogin(BaseModel):
    """Cookie-flow login payload; also the base64 JSON stored in the cookie."""

    user: UserPayload
    token: str
    site_lang: str = "en"


class FrostpawLoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserPayload


class FrostpawClient(BaseModel):
    id: str
    name: str
    domain: Optional[str] = None
    privacy_policy: Optional[str] = None
    owner_id: str
    verified: bool = False

    @classmethod
    def from_client(cls, client: RegisteredClient) -> "FrostpawClient":
        return cls(
            id=client.client_id,
            name=client.name,
            domain=client.domain,
            privacy_policy=client.privacy_policy,
            owner_id=str(client.owner_id),
            verified=client.verified,
        )


class RefreshRequest(BaseModel):
    secret: str = Field(..., min_length=1, max_length=512)
    refresh_token: str = Field(..., min_length=1, max_length=512)


class RefreshResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class SessionInfo(BaseModel):
    client_id: str
    user_id: str
