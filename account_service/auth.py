"""Session authentication: cookie transport of the bearer token and FastAPI dependencies."""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from account_service import crud
from account_service.db import get_db
from account_service.errors import NotFound, Unauthenticated
from account_service.models import User
from account_service.utils import ACCESS_TOKEN_EXPIRE_MINUTES, create_access_token, decode_token

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "authorization")
AUTH_COOKIE_SECURE = os.getenv("AUTH_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}
TOKEN_SCHEME = "Bearer"

MSG_LOGIN_REQUIRED = "로그인이 필요합니다."
MSG_SESSION_EXPIRED = "로그인 정보가 유효하지 않습니다. 다시 로그인해주세요."


@dataclass(frozen=True)
class SessionIdentity:
    user_id: int
    session_version: int


def authenticate_request(cookie_value: Optional[str]) -> SessionIdentity:
    """
    Resolves a "Bearer <token>" value to the identity it was issued for.

    Raises Unauthenticated when the value is missing, uses another scheme, or
    carries a token that is malformed, tampered, expired or signed elsewhere.
    """
    if not cookie_value:
        raise Unauthenticated(MSG_LOGIN_REQUIRED)

    scheme, _, token = cookie_value.strip().partition(" ")
    if scheme != TOKEN_SCHEME or not token or " " in token.strip():
        logger.warning("Rejected session cookie with invalid scheme or format.")
        raise Unauthenticated(MSG_SESSION_EXPIRED)

    payload = decode_token(token.strip())
    if payload is None:
        raise Unauthenticated(MSG_SESSION_EXPIRED)

    try:
        user_id = int(payload["sub"])
        session_version = int(payload.get("ver", 0))
    except (KeyError, TypeError, ValueError):
        logger.warning("Rejected token with invalid 'sub' or 'ver' claim.")
        raise Unauthenticated(MSG_SESSION_EXPIRED)

    return SessionIdentity(user_id=user_id, session_version=session_version)


# --- Cookie transport ---

def set_session_cookie(response: Response, user: User) -> None:
    """Issues a fresh token for the user and stores it in the session cookie."""
    token = create_access_token(user.id, user.session_version)
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=f"{TOKEN_SCHEME} {token}",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=AUTH_COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        httponly=True,
        secure=AUTH_COOKIE_SECURE,
        samesite="lax",
    )


# --- Dependencies ---

def get_current_identity(request: Request) -> SessionIdentity:
    """Authenticates the request from its cookie, before any storage access."""
    return authenticate_request(request.cookies.get(AUTH_COOKIE_NAME))


def get_current_user(
    identity: SessionIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    """
    Loads the authenticated user.
    Tokens issued before the user's last revocation are rejected.
    """
    user = crud.get_user_by_id(db, identity.user_id)
    if user is None:
        logger.warning(f"Valid token for missing user_id {identity.user_id}.")
        raise NotFound("사용자를 찾을 수 없습니다.")
    if user.session_version != identity.session_version:
        logger.warning(f"Revoked token presented for user_id {user.id}.")
        raise Unauthenticated(MSG_SESSION_EXPIRED)
    return user
