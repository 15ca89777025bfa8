"""
Delayed Auto-Approval Scheduler.

When a transaction becomes pending a one-shot job is armed that fires
after the approval window, carrying only the transaction id. The
handler re-checks the ledger and auto-approves if nobody answered;
otherwise it is a silent no-op, so duplicate firings are harmless.

Jobs live in APScheduler's in-memory job store and do not survive a
restart. A periodic stale-pending sweep covers that gap by pushing
every ledger row still pending past the window through the same
handler.
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import get_session_context
from ..services.approvals import ApprovalCoordinator
from ..services.ledger import TransactionLedger
from ..services.notifications import NotificationDispatcher
from ..services.pending_store import PendingApprovalStore
from ..services.push import PushSender

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "stale-pending-sweep"


def job_id_for(transaction_id: UUID | str) -> str:
    return f"auto-approve:{transaction_id}"


class AutoApprovalScheduler:
    """Arms and handles the approval-window timeout for pending transactions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pending_store: PendingApprovalStore,
        sender: PushSender,
        delay_seconds: int | None = None,
        sweep_interval_seconds: int | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._pending = pending_store
        self._sender = sender
        self.delay = timedelta(seconds=delay_seconds or settings.approval_timeout_seconds)
        self._sweep_interval = sweep_interval_seconds or settings.stale_sweep_interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.sweep,
            trigger="interval",
            seconds=self._sweep_interval,
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"Auto-approval scheduler started (window {int(self.delay.total_seconds())}s, "
            f"sweep every {self._sweep_interval}s)"
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Auto-approval scheduler stopped")

    # =========================================================================
    # ARM / HANDLE
    # =========================================================================

    def arm(self, transaction_id: UUID) -> None:
        """Enqueue the timeout for a freshly pending transaction."""
        run_date = datetime.now(timezone.utc) + self.delay
        self.scheduler.add_job(
            self.handle_timeout,
            trigger=DateTrigger(run_date=run_date),
            args=[str(transaction_id)],
            id=job_id_for(transaction_id),
            name=f"Auto-approve {transaction_id}",
            replace_existing=True,
            # Run late rather than never if the loop was busy at run_date
            misfire_grace_time=None,
        )
        logger.info(f"Auto-approval armed for {transaction_id} at {run_date.isoformat()}")

    async def handle_timeout(self, transaction_id: str) -> bool:
        """Auto-approve the transaction if it is still pending."""
        try:
            async with get_session_context(self._session_factory) as session:
                coordinator = ApprovalCoordinator(
                    session,
                    self._pending,
                    NotificationDispatcher(session, self._sender),
                )
                resolved = await coordinator.auto_approve(UUID(transaction_id))
        except Exception:
            # The next sweep picks it up again
            logger.error(f"Auto-approval of {transaction_id} failed", exc_info=True)
            return False

        if resolved:
            logger.info(f"Transaction {transaction_id} auto-approved after timeout")
        return resolved

    async def sweep(self) -> int:
        """Auto-approve every transaction left pending past the window."""
        async with get_session_context(self._session_factory) as session:
            stale_ids = await TransactionLedger(session).stale_pending_ids(self.delay)

        resolved = 0
        for transaction_id in stale_ids:
            if await self.handle_timeout(str(transaction_id)):
                resolved += 1

        if stale_ids:
            logger.warning(f"Stale sweep found {len(stale_ids)} pending transaction(s), resolved {resolved}")
        return resolved
