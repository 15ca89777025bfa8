"""
Tests for the Delayed Auto-Approval Scheduler.

These tests verify:
1. ARM: one date-triggered job per pending transaction, carrying its id
2. HANDLE: the callback auto-approves once and no-ops afterwards
3. SWEEP: transactions left pending past the window are resolved
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import update

from purchase_approval.jobs import AutoApprovalScheduler, job_id_for
from purchase_approval.jobs.auto_approval import SWEEP_JOB_ID
from purchase_approval.models import Transaction, TransactionStatus, utcnow
from purchase_approval.services import (
    ApprovalCoordinator,
    NotificationDispatcher,
    PurchaseInput,
    TransactionLedger,
)


@pytest.fixture
def auto_approval(session_factory, pending_store, sender) -> AutoApprovalScheduler:
    return AutoApprovalScheduler(
        session_factory,
        pending_store,
        sender,
        delay_seconds=300,
        sweep_interval_seconds=60,
        scheduler=AsyncIOScheduler(timezone=timezone.utc),
    )


async def submit_pending(session, pending_store, sender, auto_approval):
    coordinator = ApprovalCoordinator(
        session, pending_store, NotificationDispatcher(session, sender), auto_approval
    )
    result = await coordinator.submit_purchase(PurchaseInput(
        number="1234", surname="Smith", amount=Decimal("75.00"), vendor_id="corner-shop"
    ))
    assert result.status == TransactionStatus.PENDING
    return result.transaction_id


async def stored_status(session_factory, transaction_id):
    async with session_factory() as session:
        return (await TransactionLedger(session).get(transaction_id)).status


class TestArm:
    async def test_submission_arms_a_job(self, session, pending_store, sender, auto_approval, family, vendor):
        before = datetime.now(timezone.utc)

        transaction_id = await submit_pending(session, pending_store, sender, auto_approval)

        job = auto_approval.scheduler.get_job(job_id_for(transaction_id))
        assert job is not None
        assert job.args == (str(transaction_id),)
        run_date = job.trigger.run_date
        assert before + timedelta(seconds=299) <= run_date <= datetime.now(timezone.utc) + timedelta(seconds=301)

    async def test_rearming_replaces_the_job(self, auto_approval):
        transaction_id = uuid4()

        auto_approval.arm(transaction_id)
        auto_approval.arm(transaction_id)
        auto_approval.scheduler.start()
        try:
            jobs = [j for j in auto_approval.scheduler.get_jobs() if j.id == job_id_for(transaction_id)]
            assert len(jobs) == 1
        finally:
            auto_approval.shutdown()

    async def test_start_registers_sweep(self, auto_approval):
        auto_approval.start()
        try:
            assert auto_approval.scheduler.running
            assert auto_approval.scheduler.get_job(SWEEP_JOB_ID) is not None
        finally:
            auto_approval.shutdown()
        assert not auto_approval.scheduler.running


class TestHandleTimeout:
    async def test_auto_approves_pending(
        self, session, session_factory, pending_store, sender, auto_approval, family, vendor, parent
    ):
        transaction_id = await submit_pending(session, pending_store, sender, auto_approval)

        assert await auto_approval.handle_timeout(str(transaction_id)) is True

        assert await stored_status(session_factory, transaction_id) == TransactionStatus.AUTO_APPROVED
        assert await pending_store.get(transaction_id) is None
        assert len(sender.of_type("transaction_result")) == 2

    async def test_repeated_firing_is_harmless(
        self, session, session_factory, pending_store, sender, auto_approval, family, vendor, parent
    ):
        transaction_id = await submit_pending(session, pending_store, sender, auto_approval)

        assert await auto_approval.handle_timeout(str(transaction_id)) is True
        assert await auto_approval.handle_timeout(str(transaction_id)) is False
        assert len(sender.of_type("transaction_result")) == 2

    async def test_no_op_after_parent_decline(
        self, session, session_factory, pending_store, sender, auto_approval, family, vendor, parent
    ):
        transaction_id = await submit_pending(session, pending_store, sender, auto_approval)
        coordinator = ApprovalCoordinator(session, pending_store, NotificationDispatcher(session, sender))
        await coordinator.respond(transaction_id, "decline", reason="too expensive")

        assert await auto_approval.handle_timeout(str(transaction_id)) is False
        assert await stored_status(session_factory, transaction_id) == TransactionStatus.DECLINED

    async def test_unknown_id(self, auto_approval):
        assert await auto_approval.handle_timeout(str(uuid4())) is False


class TestSweep:
    async def test_resolves_only_stale_pending(
        self, session, session_factory, pending_store, sender, auto_approval, family, vendor
    ):
        ledger = TransactionLedger(session)
        stale = await ledger.create_pending(family.id, vendor.id, Decimal("75.00"))
        fresh = await ledger.create_pending(family.id, vendor.id, Decimal("80.00"))
        await session.commit()
        await session.execute(
            update(Transaction)
            .where(Transaction.id == stale.id)
            .values(created_at=utcnow() - timedelta(minutes=10))
        )
        await session.commit()

        assert await auto_approval.sweep() == 1

        assert await stored_status(session_factory, stale.id) == TransactionStatus.AUTO_APPROVED
        assert await stored_status(session_factory, fresh.id) == TransactionStatus.PENDING
        assert await auto_approval.sweep() == 0
