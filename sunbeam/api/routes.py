from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, Response

from sunbeam.api.cookies import apply_session_cookie, clear_session_cookie
from sunbeam.api.schemas import (
    APIResponse,
    FrostpawClient,
    FrostpawLoginResponse,
    OauthDoQuery,
    OauthUserLogin,
    RefreshRequest,
    RefreshResponse,
    SessionInfo,
    UserPayload,
)
from sunbeam.logging import get_logger
from sunbeam.service.errors import InvalidServerError, NotAuthenticatedError
from sunbeam.service.oauth import redirect_uri_for
from sunbeam.service.runtime import Runtime, get_runtime
from sunbeam.service.sessions import ClientLogin
from sunbeam.storage.models import ACCESS_TOKEN_PREFIX, ClientSession

logger = get_logger(__name__)

router = APIRouter()


def _extract_access_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    value = header.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    if not value.startswith(ACCESS_TOKEN_PREFIX):
        return None
    return value


async def get_client_session(
    authorization: Optional[str] = Header(None),
    runtime: Runtime = Depends(get_runtime),
) -> ClientSession:
    token = _extract_access_token(authorization)
    if token is None:
        raise NotAuthenticatedError("missing Frostpaw access token")
    session = await runtime.sessions.resolve(token)
    if session is None:
        raise NotAuthenticatedError("access token is invalid or expired")
    return session


@router.get("/oauth2", response_model=APIResponse, tags=["login"])
async def get_oauth2(
    frostpaw_server: str = Header("", alias="Frostpaw-Server"),
    runtime: Runtime = Depends(get_runtime),
):
    """Return the provider authorize URL; ``reason`` carries the state nonce."""
    state = str(uuid.uuid4())
    url = runtime.exchanger.authorize_url(redirect_uri_for(frostpaw_server), state)
    return APIResponse(done=True, reason=state, context=url)


@router.post(
    "/oauth2",
    response_model=OauthUserLogin | FrostpawLoginResponse,
    tags=["login"],
)
async def do_oauth2(
    body: OauthDoQuery,
    response: Response,
    frostpaw_server: Optional[str] = Header(None, alias="Frostpaw-Server"),
    runtime: Runtime = Depends(get_runtime),
):
    """Complete a login given a provider code.

    Browsers get the session cookie. Frostpaw clients (``frostpaw: true``) must
    send their blood/claw/unseathe-time challenge and get tokens in the body.
    """
    if not runtime.settings.is_known_frontend(frostpaw_server):
        raise InvalidServerError(f"unknown Frostpaw-Server {frostpaw_server!r}")

    result = await runtime.sessions.login(
        body.code,
        redirect_uri_for(frostpaw_server),
        frostpaw=body.frostpaw,
        blood=body.frostpaw_blood,
        claw=body.frostpaw_claw,
        unseathe_time=body.frostpaw_claw_unseathe_time,
    )
    user = UserPayload.from_user(result.user)

    if isinstance(result, ClientLogin):
        return FrostpawLoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=runtime.settings.access_token_ttl_seconds,
            user=user,
        )

    login = OauthUserLogin(user=user, token=result.token, site_lang=result.user.site_lang)
    apply_session_cookie(response, login)
    return login


@router.delete("/oauth2", response_model=APIResponse, tags=["login"])
async def del_oauth2(response: Response):
    """Log out. Always succeeds, even without a session."""
    clear_session_cookie(response)
    return APIResponse(done=True)


@router.get(
    "/frostpaw/clients/{client_id}", response_model=FrostpawClient, tags=["frostpaw"]
)
async def get_frostpaw_client(
    client_id: str = Path(..., max_length=128),
    runtime: Runtime = Depends(get_runtime),
):
    client = runtime.sessions.get_client(client_id)
    return FrostpawClient.from_client(client)


@router.post(
    "/frostpaw/clients/{client_id}/refresh",
    response_model=RefreshResponse,
    tags=["frostpaw"],
)
async def refresh_frostpaw_token(
    body: RefreshRequest,
    client_id: str = Path(..., max_length=128),
    runtime: Runtime = Depends(get_runtime),
):
    access_token = await runtime.sessions.refresh(client_id, body.secret, body.refresh_token)
    return RefreshResponse(
        access_token=access_token,
        expires_in=runtime.settings.access_token_ttl_seconds,
    )


@router.get("/frostpaw/session", response_model=SessionInfo, tags=["frostpaw"])
async def get_frostpaw_session(session: ClientSession = Depends(get_client_session)):
    return SessionInfo(client_id=session.client_id, user_id=str(session.user_id))
