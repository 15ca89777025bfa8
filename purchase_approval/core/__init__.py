"""Core application utilities."""

from .cache import close_redis, create_redis
from .config import Settings, get_settings
from .database import (
    async_session_factory,
    build_engine,
    build_session_factory,
    close_db,
    engine,
    get_session,
    get_session_context,
    init_db,
)
from .dependencies import (
    CurrentUser,
    CurrentUserDep,
    FamilyMemberDep,
    SessionDep,
    VendorDep,
    get_current_user,
    require_family,
    require_vendor,
)
from .security import (
    TokenPayload,
    create_session_token,
    decode_session_token,
    generate_invite_token,
    session_max_age_seconds,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Cache
    "create_redis",
    "close_redis",
    # Dependencies
    "CurrentUser",
    "get_current_user",
    "require_family",
    "require_vendor",
    "CurrentUserDep",
    "FamilyMemberDep",
    "VendorDep",
    "SessionDep",
    # Security
    "TokenPayload",
    "create_session_token",
    "decode_session_token",
    "generate_invite_token",
    "session_max_age_seconds",
]
