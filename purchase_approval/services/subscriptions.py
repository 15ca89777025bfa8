"""Push subscription and notification-setting management for one user."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import NotificationSetting, PushSubscription, utcnow
from .errors import NotFoundError, ValidationError
from .validation import validate_setting_value

logger = logging.getLogger(__name__)

SETTING_KEYS = frozenset({
    "quiet_hours_start",
    "quiet_hours_end",
    "transaction_result_enabled",
    "test_enabled",
})


class SubscriptionService:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def subscribe(
        self,
        user_id: UUID,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
        device_name: str | None = None,
    ) -> PushSubscription:
        """Register a device; an existing endpoint is re-activated and re-bound."""
        if not endpoint or not p256dh or not auth:
            raise ValidationError("Subscription must include endpoint and keys", field="subscription")

        result = await self._session.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        subscription = result.scalar_one_or_none()

        if subscription:
            subscription.user_id = user_id
            subscription.p256dh_key = p256dh
            subscription.auth_key = auth
            subscription.is_active = True
            subscription.user_agent = user_agent or subscription.user_agent
            subscription.device_name = device_name or subscription.device_name
            logger.info(f"Re-activated push subscription {subscription.id} for user {user_id}")
        else:
            subscription = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh_key=p256dh,
                auth_key=auth,
                user_agent=user_agent,
                device_name=device_name,
                is_active=True,
                created_at=utcnow(),
            )
            self._session.add(subscription)
            await self._session.flush()
            logger.info(f"Stored push subscription {subscription.id} for user {user_id}")

        return subscription

    async def unsubscribe(
        self,
        user_id: UUID,
        subscription_id: UUID | None = None,
        endpoint: str | None = None,
    ) -> PushSubscription:
        """Soft-deactivate one of the caller's subscriptions."""
        if subscription_id is None and not endpoint:
            raise ValidationError("Subscription id or endpoint required", field="subscriptionId")

        query = select(PushSubscription).where(PushSubscription.user_id == user_id)
        if subscription_id is not None:
            query = query.where(PushSubscription.id == subscription_id)
        else:
            query = query.where(PushSubscription.endpoint == endpoint)

        subscription = (await self._session.execute(query)).scalar_one_or_none()
        if not subscription:
            raise NotFoundError("Subscription not found")

        subscription.is_active = False
        logger.info(f"Push subscription {subscription.id} deactivated by user")
        return subscription

    async def list_active(self, user_id: UUID) -> list[PushSubscription]:
        result = await self._session.execute(
            select(PushSubscription)
            .where(
                PushSubscription.user_id == user_id,
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def get(self, subscription_id: UUID) -> PushSubscription:
        subscription = await self._session.get(PushSubscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def get_settings(self, user_id: UUID) -> dict[str, str]:
        result = await self._session.execute(
            select(NotificationSetting).where(NotificationSetting.user_id == user_id)
        )
        return {row.setting_key: row.setting_value for row in result.scalars().all()}

    async def update_setting(self, user_id: UUID, key: str, value: str) -> None:
        """Upsert one notification preference."""
        if key not in SETTING_KEYS:
            raise ValidationError(f"Unknown setting '{key}'", field="settingKey")
        try:
            value = validate_setting_value(key, value)
        except ValueError as e:
            raise ValidationError(str(e), field="settingValue")

        result = await self._session.execute(
            select(NotificationSetting).where(
                NotificationSetting.user_id == user_id,
                NotificationSetting.setting_key == key,
            )
        )
        setting = result.scalar_one_or_none()
        if setting:
            setting.setting_value = value
            setting.updated_at = utcnow()
        else:
            self._session.add(NotificationSetting(
                user_id=user_id, setting_key=key, setting_value=value
            ))
        await self._session.flush()
