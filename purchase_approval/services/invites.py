"""One-time invite links that let another device join a family."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from ..core.config import get_settings
from ..core.security import create_session_token, generate_invite_token
from ..models import Family, OneTimeLink, User
from .auth import AuthService, CeremonyOptions, WebAuthnCeremony
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

INVALID_LINK_MESSAGE = "Invalid or expired invite link"


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass
class InviteInfo:
    token: str
    expires_at: datetime
    family: Family


@dataclass
class InviteRegistration:
    user: User
    family: Family
    session_token: str


class InviteService:
    def __init__(self, session: AsyncSession, ceremony: WebAuthnCeremony):
        self._session = session
        self._auth = AuthService(session, ceremony)

    async def create(self, inviter: User) -> InviteInfo:
        """Issue a link; the inviter must already have family settings."""
        if inviter.family_id is None:
            raise ValidationError("Family settings must be configured before creating invites")

        settings = get_settings()
        link = OneTimeLink(
            token=generate_invite_token(),
            user_id=inviter.id,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.invite_expire_hours),
        )
        self._session.add(link)
        await self._session.flush()

        family = await self._session.get(Family, inviter.family_id)
        logger.info(f"Invite link created by user {inviter.id}")
        return InviteInfo(token=link.token, expires_at=link.expires_at, family=family)

    async def validate(self, token: str) -> InviteInfo:
        link, family = await self._usable_link(token)
        return InviteInfo(token=link.token, expires_at=_aware(link.expires_at), family=family)

    async def start(self, token: str, username: str) -> tuple[CeremonyOptions, User, Family]:
        link, family = await self._usable_link(token)
        ceremony, user = await self._auth.start_registration(username)
        link.new_user_id = user.id
        await self._session.flush()
        return ceremony, user, family

    async def finish(self, token: str, credential: dict[str, Any]) -> InviteRegistration:
        """Verify the new passkey, join the family and consume the link."""
        link, family = await self._usable_link(token)
        if link.new_user_id is None:
            raise ValidationError("Invite registration was not started", field="token")

        user = await self._auth.finish_registration(link.new_user_id, credential)

        # Only the first finish consumes the link
        claimed = await self._session.execute(
            update(OneTimeLink)
            .where(OneTimeLink.id == link.id, OneTimeLink.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise ValidationError(INVALID_LINK_MESSAGE, field="token")
        set_committed_value(link, "used", True)

        user.family_id = family.id
        await self._session.flush()

        logger.info(f"User {user.id} joined family {family.id} via invite")
        return InviteRegistration(
            user=user,
            family=family,
            session_token=create_session_token(user.id, user.username),
        )

    async def _usable_link(self, token: str) -> tuple[OneTimeLink, Family]:
        if not token:
            raise ValidationError("Token is required", field="token")

        result = await self._session.execute(
            select(OneTimeLink)
            .where(OneTimeLink.token == token)
            .options(selectinload(OneTimeLink.inviter))
        )
        link = result.scalar_one_or_none()
        now = datetime.now(timezone.utc)
        if link is None or link.used or _aware(link.expires_at) <= now:
            raise ValidationError(INVALID_LINK_MESSAGE, field="token")

        if link.inviter is None or link.inviter.family_id is None:
            raise ValidationError(INVALID_LINK_MESSAGE, field="token")
        family = await self._session.get(Family, link.inviter.family_id)
        if family is None:
            raise NotFoundError("Family not found")
        return link, family
