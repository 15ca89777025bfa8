"""Vendor profiles and the per-vendor surname autofill cache."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import User, Vendor, VendorSurnameCache, utcnow
from .errors import ConflictError, ValidationError
from .validation import validate_category, validate_vendor_id, validate_vendor_name

logger = logging.getLogger(__name__)


class VendorService:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, vendor_id: str) -> Vendor | None:
        return await self._session.get(Vendor, vendor_id)

    async def get_for_user(self, user_id: UUID) -> Vendor | None:
        result = await self._session.execute(
            select(Vendor).where(Vendor.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert_profile(
        self,
        user: User,
        name: str,
        category: str = "other",
        requires_approval: bool = False,
        vendor_id: str | None = None,
    ) -> Vendor:
        """Register the user as a vendor, or update their profile.

        The vendor id is fixed once chosen; it defaults to the username.
        """
        try:
            name = validate_vendor_name(name)
        except ValueError as e:
            raise ValidationError(str(e), field="name")
        try:
            category = validate_category(category)
        except ValueError as e:
            raise ValidationError(str(e), field="category")

        vendor = await self.get_for_user(user.id)
        if vendor is None:
            try:
                vendor_id = validate_vendor_id(vendor_id or user.username)
            except ValueError as e:
                raise ValidationError(str(e), field="vendor_id")
            if await self.get(vendor_id) is not None:
                raise ConflictError(f"Vendor id '{vendor_id}' is already taken")
            vendor = Vendor(id=vendor_id, user_id=user.id, created_at=utcnow())
            self._session.add(vendor)
            logger.info(f"Vendor profile {vendor_id} created for user {user.id}")

        vendor.name = name
        vendor.category = category
        vendor.requires_approval = requires_approval
        await self._session.flush()
        return vendor

    # =========================================================================
    # SURNAME CACHE
    # =========================================================================

    async def remember_surname(self, vendor_id: str, family_number: str, surname: str) -> None:
        result = await self._session.execute(
            select(VendorSurnameCache).where(
                VendorSurnameCache.vendor_id == vendor_id,
                VendorSurnameCache.family_number == family_number,
            )
        )
        entry = result.scalar_one_or_none()
        if entry:
            entry.surname = surname
            entry.updated_at = utcnow()
        else:
            self._session.add(VendorSurnameCache(
                vendor_id=vendor_id, family_number=family_number, surname=surname
            ))
        await self._session.flush()

    async def cached_surname(self, vendor_id: str, family_number: str) -> str | None:
        result = await self._session.execute(
            select(VendorSurnameCache.surname).where(
                VendorSurnameCache.vendor_id == vendor_id,
                VendorSurnameCache.family_number == family_number,
            )
        )
        return result.scalar_one_or_none()
