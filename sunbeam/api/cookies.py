from __future__ import annotations

import base64

from fastapi import Response

from sunbeam.api.schemas import OauthUserLogin
from sunbeam.logging import get_logger

logger = get_logger(__name__)

SESSION_COOKIE_NAME = "sunbeam-session:warriorcats"
SESSION_COOKIE_DOMAIN = "fateslist.xyz"
SESSION_COOKIE_PATH = "/"
SESSION_COOKIE_MAX_AGE = 8 * 60 * 60


def encode_session_cookie(login: OauthUserLogin) -> str:
    return base64.b64encode(login.model_dump_json().encode()).decode()


def decode_session_cookie(value: str) -> OauthUserLogin:
    return OauthUserLogin.model_validate_json(base64.b64decode(value))


def apply_session_cookie(response: Response, login: OauthUserLogin) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        encode_session_cookie(login),
        max_age=SESSION_COOKIE_MAX_AGE,
        path=SESSION_COOKIE_PATH,
        domain=SESSION_COOKIE_DOMAIN,
        secure=True,
        httponly=True,
        samesite="Strict",
    )


def clear_session_cookie(response: Response) -> None:
    """Expire the session cookie; failures are logged and never reach the caller."""
    try:
        response.delete_cookie(
            SESSION_COOKIE_NAME,
            path=SESSION_COOKIE_PATH,
            domain=SESSION_COOKIE_DOMAIN,
            secure=True,
            httponly=True,
            samesite="Strict",
        )
    except Exception as exc:
        logger.error("session_cookie_removal_failed", error=str(exc))
