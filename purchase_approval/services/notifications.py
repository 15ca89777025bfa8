"""
Notification Dispatcher: fan-out of push notifications to family devices.

Each active subscription is delivered to independently; one device's
failure never blocks the others. Terminal push statuses (401, 403, 404,
410) deactivate the subscription, anything else is logged and left for
the caller to retry. Approval requests bypass quiet hours and per-class
toggles, every other class honours them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    NotificationClass,
    NotificationLog,
    NotificationSetting,
    NotificationStatus,
    PushSubscription,
    TransactionStatus,
    User,
    utcnow,
)
from .errors import DeliveryError
from .push import PushSender, is_terminal_failure

logger = logging.getLogger(__name__)


# =============================================================================
# TEMPLATES
# =============================================================================


@dataclass(frozen=True)
class NotificationTemplate:
    title_template: str
    body_template: str
    icon_url: str = "/icon-192x192.png"
    badge_url: str = "/badge-72x72.png"


TEMPLATES: dict[str, NotificationTemplate] = {
    "transaction_approval": NotificationTemplate(
        title_template="Purchase approval needed",
        body_template="{{child_name}} wants to spend {{amount}} at {{vendor_name}}",
    ),
    "transaction_approved": NotificationTemplate(
        title_template="Purchase approved",
        body_template="{{amount}} at {{vendor_name}} was approved",
    ),
    "transaction_declined": NotificationTemplate(
        title_template="Purchase declined",
        body_template="{{amount}} at {{vendor_name}} was declined. {{reason}}",
    ),
    "transaction_auto_approved": NotificationTemplate(
        title_template="Purchase auto-approved",
        body_template="{{amount}} at {{vendor_name}} was approved after no response",
    ),
    "test": NotificationTemplate(
        title_template="Test Notification",
        body_template="This is a test notification from Purchase Approval",
    ),
}

RESULT_TEMPLATE_KEYS = {
    TransactionStatus.APPROVED: "transaction_approved",
    TransactionStatus.DECLINED: "transaction_declined",
    TransactionStatus.AUTO_APPROVED: "transaction_auto_approved",
}


def format_amount(amount: Decimal | float) -> str:
    return f"${Decimal(amount):.2f}"


def render_template(template_key: str, variables: dict[str, Any]) -> dict[str, Any]:
    """Substitute {{name}} placeholders; missing variables render empty."""
    template = TEMPLATES[template_key]
    title = template.title_template
    body = template.body_template
    for key in ("vendor_name", "amount", "child_name", "reason"):
        value = variables.get(key)
        placeholder = "{{" + key + "}}"
        title = title.replace(placeholder, "" if value is None else str(value))
        body = body.replace(placeholder, "" if value is None else str(value))
    return {
        "title": title.strip(),
        "body": " ".join(body.split()),
        "icon": template.icon_url,
        "badge": template.badge_url,
    }


# =============================================================================
# QUIET HOURS
# =============================================================================


def parse_hhmm(value: str) -> time:
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def in_quiet_hours(now: time, start: time, end: time) -> bool:
    """Whether `now` falls in the half-open window [start, end).

    A window with start > end wraps midnight (e.g. 22:00-08:00).
    start == end is an empty window.
    """
    if start < end:
        return start <= now < end
    if start > end:
        return now >= start or now < end
    return False


def should_deliver(
    notification_class: NotificationClass,
    user_settings: dict[str, str],
    now: time,
) -> bool:
    """Apply per-user suppression rules for a notification class."""
    if notification_class == NotificationClass.APPROVAL_REQUEST:
        return True

    if user_settings.get(f"{notification_class.value}_enabled") == "false":
        return False

    start = user_settings.get("quiet_hours_start")
    end = user_settings.get("quiet_hours_end")
    if start and end:
        try:
            if in_quiet_hours(now, parse_hhmm(start), parse_hhmm(end)):
                return False
        except ValueError:
            logger.warning(f"Ignoring malformed quiet hours setting {start!r}-{end!r}")
    return True


# =============================================================================
# DISPATCHER
# =============================================================================


@dataclass
class DispatchReport:
    """Per-device outcome counts of one fan-out."""
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    deactivated: list[UUID] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.sent > 0

    @property
    def attempted(self) -> int:
        return self.sent + self.failed


class NotificationDispatcher:
    """Renders payloads and delivers them to every active device of a family or user."""

    def __init__(
        self,
        session: AsyncSession,
        sender: PushSender,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session = session
        self._sender = sender
        # Quiet hours are wall-clock times, so default to local time
        self._clock = clock or (lambda: datetime.now().astimezone())

    # =========================================================================
    # PAYLOADS
    # =========================================================================

    @staticmethod
    def approval_payload(
        transaction_id: UUID | str,
        vendor_name: str,
        amount: Decimal,
        child_name: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        payload = render_template("transaction_approval", {
            "vendor_name": vendor_name,
            "amount": format_amount(amount),
            "child_name": child_name or "Your child",
        })
        payload.update({
            "data": {
                "transactionId": str(transaction_id),
                "type": "transaction_approval",
                "amount": str(amount),
                "vendorName": vendor_name,
                "childName": child_name,
                "description": description,
            },
            "actions": [
                {"action": "approve", "title": "Approve"},
                {"action": "decline", "title": "Decline"},
            ],
            "requireInteraction": True,
            "tag": f"transaction-{transaction_id}",
        })
        return payload

    @staticmethod
    def result_payload(
        transaction_id: UUID | str,
        outcome: TransactionStatus,
        vendor_name: str,
        amount: Decimal,
        reason: str | None = None,
    ) -> dict[str, Any]:
        payload = render_template(RESULT_TEMPLATE_KEYS[outcome], {
            "vendor_name": vendor_name,
            "amount": format_amount(amount),
            "reason": reason,
        })
        payload.update({
            "data": {
                "transactionId": str(transaction_id),
                "type": "transaction_result",
                "action": outcome.value,
                "amount": str(amount),
                "reason": reason,
            },
            "tag": f"transaction-result-{transaction_id}",
        })
        return payload

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def send_approval_request(
        self,
        family_id: UUID,
        transaction_id: UUID,
        vendor_name: str,
        amount: Decimal,
        child_name: str | None = None,
        description: str | None = None,
    ) -> DispatchReport:
        """Ask every family device for a decision. Sent even during quiet hours."""
        payload = self.approval_payload(transaction_id, vendor_name, amount, child_name, description)
        subscriptions = await self._family_subscriptions(family_id)
        return await self._deliver(
            subscriptions, payload, NotificationClass.APPROVAL_REQUEST,
            transaction_id=transaction_id, urgency="high",
        )

    async def send_result(
        self,
        family_id: UUID,
        transaction_id: UUID,
        outcome: TransactionStatus,
        vendor_name: str,
        amount: Decimal,
        reason: str | None = None,
    ) -> DispatchReport:
        """Informational notice of a terminal status; no actions."""
        payload = self.result_payload(transaction_id, outcome, vendor_name, amount, reason)
        subscriptions = await self._family_subscriptions(family_id)
        return await self._deliver(
            subscriptions, payload, NotificationClass.TRANSACTION_RESULT,
            transaction_id=transaction_id,
        )

    async def send_test(self, user_id: UUID) -> DispatchReport:
        payload = render_template("test", {})
        payload["data"] = {"type": "test"}
        subscriptions = await self._user_subscriptions(user_id)
        return await self._deliver(subscriptions, payload, NotificationClass.TEST)

    async def mark_responded(
        self,
        transaction_id: UUID,
        user_id: UUID,
        action: str,
    ) -> int:
        """Stamp the approval-request log rows of the responding user's devices."""
        user_subscription_ids = select(PushSubscription.id).where(
            PushSubscription.user_id == user_id
        )
        result = await self._session.execute(
            update(NotificationLog)
            .where(
                NotificationLog.transaction_id == transaction_id,
                NotificationLog.notification_class == NotificationClass.APPROVAL_REQUEST,
                NotificationLog.subscription_id.in_(user_subscription_ids),
            )
            .values(responded_at=utcnow(), response_action=action)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _family_subscriptions(self, family_id: UUID) -> list[PushSubscription]:
        result = await self._session.execute(
            select(PushSubscription)
            .join(User, PushSubscription.user_id == User.id)
            .where(
                User.family_id == family_id,
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def _user_subscriptions(self, user_id: UUID) -> list[PushSubscription]:
        result = await self._session.execute(
            select(PushSubscription)
            .where(
                PushSubscription.user_id == user_id,
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def _settings_by_user(self, user_ids: set[UUID]) -> dict[UUID, dict[str, str]]:
        if not user_ids:
            return {}
        result = await self._session.execute(
            select(NotificationSetting).where(NotificationSetting.user_id.in_(user_ids))
        )
        by_user: dict[UUID, dict[str, str]] = {uid: {} for uid in user_ids}
        for row in result.scalars().all():
            by_user[row.user_id][row.setting_key] = row.setting_value
        return by_user

    async def _deliver(
        self,
        subscriptions: list[PushSubscription],
        payload: dict[str, Any],
        notification_class: NotificationClass,
        transaction_id: UUID | None = None,
        urgency: str = "normal",
    ) -> DispatchReport:
        report = DispatchReport()
        if not subscriptions:
            logger.info(f"No active devices for {notification_class.value} notification")
            return report

        now = self._clock().time()
        settings_by_user = await self._settings_by_user({s.user_id for s in subscriptions})

        targets: list[PushSubscription] = []
        for subscription in subscriptions:
            if should_deliver(notification_class, settings_by_user.get(subscription.user_id, {}), now):
                targets.append(subscription)
            else:
                report.skipped += 1
                self._log(subscription, notification_class, NotificationStatus.SKIPPED, transaction_id)

        # Sends are independent and unordered; results are applied afterwards
        # because the session must not be shared across concurrent tasks.
        outcomes = await asyncio.gather(
            *(self._sender.send(s.subscription_info(), payload, urgency) for s in targets),
            return_exceptions=True,
        )

        for subscription, outcome in zip(targets, outcomes):
            if not isinstance(outcome, BaseException):
                subscription.last_used = utcnow()
                report.sent += 1
                self._log(subscription, notification_class, NotificationStatus.SENT, transaction_id)
                continue

            report.failed += 1
            status_code = outcome.delivery_status if isinstance(outcome, DeliveryError) else None
            if is_terminal_failure(status_code):
                subscription.is_active = False
                report.deactivated.append(subscription.id)
                logger.info(f"Deactivated push subscription {subscription.id} (status {status_code})")
            elif isinstance(outcome, DeliveryError):
                logger.warning(f"Push delivery to subscription {subscription.id} failed: {outcome.message}")
            else:
                logger.error(
                    f"Unexpected error delivering to subscription {subscription.id}",
                    exc_info=outcome,
                )
            self._log(
                subscription, notification_class, NotificationStatus.FAILED, transaction_id,
                status_code=status_code, error_message=str(outcome)[:1000],
            )

        await self._session.flush()
        logger.info(
            f"{notification_class.value} dispatch: {report.sent} sent, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        return report

    def _log(
        self,
        subscription: PushSubscription,
        notification_class: NotificationClass,
        status: NotificationStatus,
        transaction_id: UUID | None,
        status_code: int | None = None,
        error_message: str | None = None,
    ) -> None:
        self._session.add(NotificationLog(
            transaction_id=transaction_id,
            subscription_id=subscription.id,
            notification_class=notification_class,
            status=status,
            status_code=status_code,
            error_message=error_message,
        ))
