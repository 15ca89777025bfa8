"""Security utilities: session tokens and random identifiers."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from pydantic import BaseModel

from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """Session token payload."""

    sub: str  # User ID
    username: str
    exp: datetime
    iat: datetime
    type: str = "session"


def create_session_token(
    user_id: UUID,
    username: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed, time-bounded session token bound to the user id."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.session_expire_days))

    payload = {
        "sub": str(user_id),
        "username": username,
        "exp": expire,
        "iat": now,
        "type": "session",
    }

    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_session_token(token: str) -> TokenPayload | None:
    """Decode and validate a session token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
        return TokenPayload(**payload)
    except jwt.ExpiredSignatureError:
        logger.info("Session token expired")
        return None
    except jwt.InvalidTokenError:
        return None


def session_max_age_seconds() -> int:
    return settings.session_expire_days * 24 * 60 * 60


def generate_invite_token() -> str:
    """Unguessable, URL-safe token for one-time invite links."""
    return secrets.token_urlsafe(32)
