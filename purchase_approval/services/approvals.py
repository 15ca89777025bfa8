"""
Approval Resolution Coordinator: the purchase state machine.

    submit ──> approved (within limit, never pending)
      │
      └──> pending ──> approved       (parent)
                  ├──> declined       (parent)
                  └──> auto_approved  (timeout)

Three channels can try to resolve a pending transaction: a parent
response, the scheduled timeout and the stale sweep. Exactly one wins,
because every channel goes through the ledger's conditional resolve.
Order of a resolution:

1. Conditional resolve on the ledger, committed. Losers stop here, so
   they never send a duplicate result notification.
2. Best-effort removal of the pending-store entry.
3. Result notification to the family, skipped when the family or the
   vendor no longer exists.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..models import ResolutionSource, Transaction, TransactionStatus
from .errors import NotFoundError, StorageConflictError, ValidationError
from .families import FamilyService
from .ledger import TransactionLedger
from .notifications import NotificationDispatcher
from .pending_store import PendingApprovalRecord, PendingApprovalStore
from .spending import evaluate_purchase
from .vendors import VendorService

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Transaction not found or already processed"

ACTION_OUTCOMES = {
    "approve": TransactionStatus.APPROVED,
    "decline": TransactionStatus.DECLINED,
}


class TimeoutScheduler(Protocol):
    """Arms the delayed auto-approval for a pending transaction."""

    def arm(self, transaction_id: UUID) -> None:
        ...


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class PurchaseInput:
    number: str
    surname: str
    amount: Decimal
    vendor_id: str
    child_name: str | None = None
    description: str | None = None


@dataclass
class SubmissionResult:
    status: TransactionStatus
    transaction_id: UUID
    message: str
    applicable_limit: Decimal
    approval_timeout: int | None = None
    notified: bool = False


@dataclass
class ResolutionResult:
    status: str  # approved | declined | auto_approved
    transaction_id: UUID
    message: str


# =============================================================================
# COORDINATOR
# =============================================================================


class ApprovalCoordinator:
    """Drives a purchase from submission to exactly one terminal status."""

    def __init__(
        self,
        session: AsyncSession,
        pending_store: PendingApprovalStore,
        dispatcher: NotificationDispatcher,
        scheduler: TimeoutScheduler | None = None,
    ):
        self._session = session
        self._ledger = TransactionLedger(session)
        self._families = FamilyService(session)
        self._vendors = VendorService(session)
        self._pending = pending_store
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._settings = get_settings()

    @property
    def ledger(self) -> TransactionLedger:
        return self._ledger

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit_purchase(self, data: PurchaseInput) -> SubmissionResult:
        """Classify a purchase and either approve it or open an approval window."""
        family = await self._families.find(data.number, data.surname)
        if family is None:
            raise NotFoundError("Invalid family number or surname")

        vendor = await self._vendors.get(data.vendor_id)
        if vendor is None:
            raise NotFoundError(f"Vendor '{data.vendor_id}' not found")

        vendor_limit = await self._families.vendor_limit(family.id, vendor.id)
        decision = evaluate_purchase(
            family, vendor, data.amount, vendor_limit,
            fallback=self._settings.default_spending_limit,
        )

        if not decision.requires_approval:
            transaction = await self._ledger.create_approved(
                family.id, vendor.id, data.amount, data.description, data.child_name
            )
            await self._session.commit()
            return SubmissionResult(
                status=TransactionStatus.APPROVED,
                transaction_id=transaction.id,
                message="Payment approved automatically",
                applicable_limit=decision.applicable_limit,
            )

        transaction = await self._ledger.create_pending(
            family.id, vendor.id, data.amount, data.description, data.child_name
        )
        # The row must be visible to other resolvers before anything can reference it
        await self._session.commit()
        logger.info(f"Transaction {transaction.id} needs approval ({decision.reason})")

        # A committed pending row gets its timer even when Redis is down
        if self._scheduler is not None:
            self._scheduler.arm(transaction.id)

        record = PendingApprovalRecord.build(
            transaction_id=transaction.id,
            family_id=family.id,
            family_key=family.family_key,
            amount=data.amount,
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            created_at=transaction.created_at,
            child_name=data.child_name,
            description=data.description,
        )
        try:
            await self._pending.put(transaction.id, record, self._settings.pending_ttl_seconds)
        except RedisError as e:
            # Parent responses will miss, the timeout still resolves the row
            logger.error(f"Could not store pending record {transaction.id}: {e}")

        notified = False
        try:
            report = await self._dispatcher.send_approval_request(
                family.id,
                transaction.id,
                vendor.name,
                data.amount,
                child_name=data.child_name,
                description=data.description,
            )
            notified = report.delivered
            await self._session.commit()
        except Exception:
            # The timeout is the safety net; the request still succeeds
            await self._session.rollback()
            logger.error(f"Approval request dispatch failed for {transaction.id}", exc_info=True)

        return SubmissionResult(
            status=TransactionStatus.PENDING,
            transaction_id=transaction.id,
            message="Payment request submitted, awaiting approval",
            applicable_limit=decision.applicable_limit,
            approval_timeout=self._settings.approval_timeout_seconds,
            notified=notified,
        )

    # =========================================================================
    # RESOLUTION CHANNELS
    # =========================================================================

    async def respond(
        self,
        transaction_id: UUID,
        action: str,
        responder_id: UUID | None = None,
        reason: str | None = None,
        family_id: UUID | None = None,
    ) -> ResolutionResult:
        """Apply a parent's approve/decline.

        A missing pending record (expired or already resolved) is a 404;
        losing the race on the ledger raises StorageConflictError. When
        family_id is given the transaction must belong to that family.
        """
        outcome = ACTION_OUTCOMES.get(action)
        if outcome is None:
            raise ValidationError('Action must be either "approve" or "decline"', field="action")

        record = await self._pending.get(transaction_id)
        if record is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if family_id is not None and record.family_id != str(family_id):
            raise NotFoundError(NOT_FOUND_MESSAGE)

        won = await self._ledger.resolve(
            transaction_id,
            outcome,
            ResolutionSource.PARENT,
            responder_id=responder_id,
            reason=reason if outcome == TransactionStatus.DECLINED else None,
        )
        if not won:
            await self._session.rollback()
            await self._forget_pending(transaction_id)
            raise StorageConflictError("Transaction already processed")

        if responder_id is not None:
            await self._dispatcher.mark_responded(transaction_id, responder_id, action)
        await self._session.commit()

        transaction = await self._finalize(transaction_id, outcome, reason)
        past = "approved" if outcome == TransactionStatus.APPROVED else "declined"
        return ResolutionResult(
            status=outcome.value,
            transaction_id=transaction.id if transaction else transaction_id,
            message=f"Transaction {past} successfully",
        )

    async def auto_approve(self, transaction_id: UUID) -> bool:
        """Timeout channel; a silent no-op unless the transaction is still pending.

        Safe to call any number of times for the same id.
        """
        transaction = await self._ledger.get(transaction_id)
        if transaction is None:
            logger.warning(f"Timeout fired for unknown transaction {transaction_id}")
            return False
        if transaction.status != TransactionStatus.PENDING:
            logger.debug(f"Timeout for {transaction_id} ignored, already {transaction.status.value}")
            await self._forget_pending(transaction_id)
            return False

        won = await self._ledger.resolve(
            transaction_id, TransactionStatus.AUTO_APPROVED, ResolutionSource.TIMEOUT
        )
        if not won:
            await self._session.rollback()
            return False
        await self._session.commit()

        await self._finalize(transaction_id, TransactionStatus.AUTO_APPROVED)
        return True

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _finalize(
        self,
        transaction_id: UUID,
        outcome: TransactionStatus,
        reason: str | None = None,
    ) -> Transaction | None:
        """Post-commit steps of a won resolution."""
        await self._forget_pending(transaction_id)

        transaction = await self._ledger.get(transaction_id)
        if transaction is None:
            return None

        if transaction.family is None or transaction.vendor is None:
            logger.info(f"Result notification for {transaction_id} skipped, family or vendor is gone")
            return transaction

        try:
            await self._dispatcher.send_result(
                transaction.family.id,
                transaction.id,
                outcome,
                transaction.vendor.name,
                transaction.amount,
                reason=reason,
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            logger.error(f"Result notification failed for {transaction_id}", exc_info=True)
        return transaction

    async def _forget_pending(self, transaction_id: UUID) -> None:
        try:
            await self._pending.delete(transaction_id)
        except RedisError as e:
            # The TTL removes it eventually
            logger.warning(f"Could not delete pending record {transaction_id}: {e}")
