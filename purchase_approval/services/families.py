"""Family settings and spending limits."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Family, User, Vendor, VendorLimit
from .errors import ConflictError, NotFoundError, ValidationError
from .validation import (
    normalize_key,
    validate_family_number,
    validate_limit,
    validate_surname,
)

logger = logging.getLogger(__name__)


@dataclass
class VendorLimitInput:
    vendor_id: str
    limit_amount: Decimal | None = None
    require_approval: bool = False


class FamilyService:
    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def find(self, number: str, surname: str) -> Family | None:
        """Resolve a family by its (number, surname) pair; surname is case-insensitive."""
        result = await self._session.execute(
            select(Family).where(
                Family.number == number.strip(),
                Family.surname_key == normalize_key(surname),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_number(self, number: str) -> list[Family]:
        result = await self._session.execute(
            select(Family).where(Family.number == number.strip()).order_by(Family.created_at)
        )
        return list(result.scalars().all())

    async def get_for_user(self, user: User) -> Family | None:
        if user.family_id is None:
            return None
        return await self._session.get(Family, user.family_id)

    async def require_for_user(self, user: User) -> Family:
        family = await self.get_for_user(user)
        if family is None:
            raise NotFoundError("Family settings not configured")
        return family

    async def vendor_limit(self, family_id: UUID, vendor_id: str) -> VendorLimit | None:
        result = await self._session.execute(
            select(VendorLimit).where(
                VendorLimit.family_id == family_id,
                VendorLimit.vendor_id == vendor_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_vendor_limits(self, family_id: UUID) -> list[VendorLimit]:
        result = await self._session.execute(
            select(VendorLimit)
            .where(VendorLimit.family_id == family_id)
            .options(selectinload(VendorLimit.vendor))
            .order_by(VendorLimit.vendor_id)
        )
        return list(result.scalars().all())

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def update_settings(self, user: User, number: str, surname: str) -> Family:
        """Create the caller's family, or rename the one they belong to.

        Joining an existing family goes through an invite link, so a
        (number, surname) pair owned by another family is a conflict.
        """
        try:
            number = validate_family_number(number)
        except ValueError as e:
            raise ValidationError(str(e), field="family_number")
        try:
            surname = validate_surname(surname)
        except ValueError as e:
            raise ValidationError(str(e), field="surname")

        existing = await self.find(number, surname)
        family = await self.get_for_user(user)

        if existing is not None and (family is None or existing.id != family.id):
            raise ConflictError("Family number already taken by another family")

        if family is None:
            family = Family(number=number, surname=surname, surname_key=normalize_key(surname))
            self._session.add(family)
            await self._session.flush()
            user.family_id = family.id
            logger.info(f"Family {family.id} created by user {user.id}")
        else:
            family.number = number
            family.surname = surname
            family.surname_key = normalize_key(surname)
            logger.info(f"Family {family.id} settings updated by user {user.id}")

        await self._session.flush()
        return family

    async def update_limits(
        self,
        user: User,
        default_limit: Decimal,
        vendor_limits: list[VendorLimitInput] | None = None,
    ) -> Family:
        """Set the default limit and, optionally, per-vendor overrides.

        An override with no amount and no forced approval is removed.
        """
        family = await self.require_for_user(user)
        try:
            family.default_limit = validate_limit(default_limit)
        except ValueError as e:
            raise ValidationError(str(e), field="default_limit")

        for item in vendor_limits or []:
            if await self._session.get(Vendor, item.vendor_id) is None:
                raise NotFoundError(f"Vendor '{item.vendor_id}' not found")

            limit_amount = None
            if item.limit_amount is not None:
                try:
                    limit_amount = validate_limit(item.limit_amount)
                except ValueError as e:
                    raise ValidationError(str(e), field="vendor_limits")

            override = await self.vendor_limit(family.id, item.vendor_id)
            if limit_amount is None and not item.require_approval:
                if override is not None:
                    await self._session.delete(override)
                continue

            if override is None:
                override = VendorLimit(family_id=family.id, vendor_id=item.vendor_id)
                self._session.add(override)
            override.limit_amount = limit_amount
            override.require_approval = item.require_approval

        await self._session.flush()
        logger.info(f"Family {family.id} limits updated (default {family.default_limit})")
        return family
