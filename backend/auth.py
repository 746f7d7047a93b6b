# backend/auth.py
"""
Bearer-token authentication.

The auth provider issues HS256 JWTs whose ``sub`` claim is the user id.
Every endpoint resolves the caller through ``get_current_user_id``; any
failure surfaces uniformly as 401 {"error": "Unauthorized"}.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlmodel import Session, select

from config import Settings, get_settings
from errors import Unauthorized
from models import AppRole, UserRole

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def decode_user_id(token: str, settings: Settings) -> str:
    """Verify a bearer token and return its subject (the user id)."""
    if not settings.auth_jwt_secret:
        logger.error("AUTH_JWT_SECRET is not configured; rejecting bearer token")
        raise Unauthorized("Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.auth_jwt_audience,
        )
    except JWTError as e:
        raise Unauthorized("Invalid authentication token") from e

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid authentication token")
    return user_id


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Missing authorization header")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Missing authorization header")
    return token


def get_current_user_id(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> str:
    """FastAPI dependency: the authenticated caller's user id."""
    token = parse_bearer(authorization)
    return decode_user_id(token, settings)


def ensure_same_user(caller_id: str, body_user_id: Optional[str]) -> None:
    """Reject requests acting on behalf of another user."""
    if body_user_id is not None and body_user_id != caller_id:
        logger.warning("User %s attempted to act for user %s", caller_id, body_user_id)
        raise Unauthorized("Unauthorized: User mismatch")


def require_admin(session: Session, user_id: str) -> None:
    role = session.exec(select(UserRole).where(UserRole.user_id == user_id)).first()
    if role is None or role.role != AppRole.ADMIN.value:
        raise Unauthorized("Admin role required")
