"""
Transaction Ledger: durable record of every purchase attempt.

The ledger is the single source of truth for "has this transaction
already been resolved?". Resolution is a conditional UPDATE guarded by
status = pending, so concurrent resolvers race safely: the first writer
wins and every later attempt affects zero rows.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import (
    Family,
    ResolutionSource,
    Transaction,
    TransactionStatus,
    Vendor,
)
from .errors import ValidationError

logger = logging.getLogger(__name__)


class TransactionLedger:
    """Create, resolve and query ledger rows."""

    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_pending(
        self,
        family_id: UUID,
        vendor_id: str,
        amount: Decimal,
        description: str | None = None,
        child_name: str | None = None,
    ) -> Transaction:
        """Record a purchase awaiting a parent decision."""
        transaction = Transaction(
            family_id=family_id,
            vendor_id=vendor_id,
            amount=amount,
            description=description,
            child_name=child_name,
            status=TransactionStatus.PENDING,
        )
        self._session.add(transaction)
        await self._session.flush()
        logger.info(f"Transaction {transaction.id} created as pending ({amount})")
        return transaction

    async def create_approved(
        self,
        family_id: UUID,
        vendor_id: str,
        amount: Decimal,
        description: str | None = None,
        child_name: str | None = None,
    ) -> Transaction:
        """Record a purchase approved at submission (within the spending limit)."""
        now = datetime.now(timezone.utc)
        transaction = Transaction(
            family_id=family_id,
            vendor_id=vendor_id,
            amount=amount,
            description=description,
            child_name=child_name,
            status=TransactionStatus.APPROVED,
            resolution_source=ResolutionSource.LIMIT,
            created_at=now,
            approved_at=now,
        )
        self._session.add(transaction)
        await self._session.flush()
        logger.info(f"Transaction {transaction.id} approved within limit ({amount})")
        return transaction

    # =========================================================================
    # RESOLVE (FIRST WRITER WINS)
    # =========================================================================

    async def resolve(
        self,
        transaction_id: UUID,
        outcome: TransactionStatus,
        source: ResolutionSource,
        responder_id: UUID | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Move a pending transaction to a terminal status.

        Returns True if this call won. A False return means another
        resolver got there first (or the id is unknown); it is a no-op,
        not an error.
        """
        if not outcome.is_terminal:
            raise ValidationError(f"Cannot resolve a transaction to {outcome.value}", field="action")

        now = datetime.now(timezone.utc)
        values: dict = {
            "status": outcome,
            "resolution_source": source,
            "responded_by_user_id": responder_id,
        }
        if outcome == TransactionStatus.DECLINED:
            values["declined_at"] = now
            values["decline_reason"] = reason
        else:
            values["approved_at"] = now

        result = await self._session.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        won = result.rowcount == 1
        if won:
            logger.info(f"Transaction {transaction_id} resolved as {outcome.value} via {source.value}")
        else:
            logger.warning(
                f"Resolve of transaction {transaction_id} as {outcome.value} was a no-op "
                f"(already resolved or unknown)"
            )
        return won

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, transaction_id: UUID) -> Transaction | None:
        """Fetch a transaction by id, always reflecting the stored row."""
        result = await self._session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .options(
                selectinload(Transaction.family),
                selectinload(Transaction.vendor),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def recent_for_vendor(
        self,
        vendor_id: str,
        window: timedelta = timedelta(hours=1),
    ) -> Sequence[tuple[Transaction, str | None, str | None]]:
        """Transactions a vendor submitted within the window, newest first.

        Returns (transaction, family_number, surname) tuples.
        """
        since = datetime.now(timezone.utc) - window
        result = await self._session.execute(
            select(Transaction, Family.number, Family.surname)
            .outerjoin(Family, Transaction.family_id == Family.id)
            .where(
                Transaction.vendor_id == vendor_id,
                Transaction.created_at >= since,
            )
            .order_by(Transaction.created_at.desc())
        )
        return [tuple(row) for row in result.all()]

    async def recent_for_family(
        self,
        family_id: UUID,
        limit: int = 50,
    ) -> Sequence[tuple[Transaction, str | None]]:
        """A family's transactions with vendor names, newest first."""
        result = await self._session.execute(
            select(Transaction, Vendor.name)
            .outerjoin(Vendor, Transaction.vendor_id == Vendor.id)
            .where(Transaction.family_id == family_id)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )
        return [tuple(row) for row in result.all()]

    async def stale_pending_ids(self, older_than: timedelta) -> list[UUID]:
        """Ids of transactions still pending after the given age."""
        cutoff = datetime.now(timezone.utc) - older_than
        result = await self._session.execute(
            select(Transaction.id).where(
                Transaction.status == TransactionStatus.PENDING,
                Transaction.created_at < cutoff,
            )
        )
        return list(result.scalars().all())
