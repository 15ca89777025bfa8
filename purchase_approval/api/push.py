"""Push subscription, settings and notification-response endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, status

from ..core import CurrentUserDep, FamilyMemberDep, get_settings
from ..schemas import (
    ApprovalResultResponse,
    MessageResponse,
    PublicKeyResponse,
    RespondRequest,
    SendTestResponse,
    SettingsResponse,
    SettingUpdateRequest,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionItem,
    SubscriptionListResponse,
    SubscriptionStatusResponse,
    UnsubscribeRequest,
)
from .deps import CoordinatorDep, DispatcherDep, SubscriptionServiceDep

router = APIRouter(prefix="/push", tags=["push"])
settings = get_settings()


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


@router.get("/public-key", response_model=PublicKeyResponse)
async def public_key():
    """VAPID application server key for PushManager.subscribe()."""
    return PublicKeyResponse(public_key=settings.vapid_public_key)


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    data: SubscribeRequest,
    request: Request,
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    subscription = await subscriptions.subscribe(
        current_user.id,
        endpoint=data.subscription.endpoint,
        p256dh=data.subscription.keys.p256dh,
        auth=data.subscription.keys.auth,
        user_agent=data.user_agent or request.headers.get("user-agent"),
        device_name=data.device_name,
    )
    return SubscribeResponse(
        subscription_id=subscription.id,
        message="Successfully subscribed to push notifications",
    )


@router.delete("/subscribe", response_model=MessageResponse)
async def unsubscribe(
    data: UnsubscribeRequest,
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    await subscriptions.unsubscribe(
        current_user.id,
        subscription_id=data.subscription_id,
        endpoint=data.endpoint,
    )
    return MessageResponse(message="Successfully unsubscribed from push notifications")


@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def list_subscriptions(
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    items = await subscriptions.list_active(current_user.id)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionItem.model_validate(s) for s in items]
    )


@router.get("/status/{subscription_id}", response_model=SubscriptionStatusResponse)
async def subscription_status(
    subscription_id: UUID,
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    subscription = await subscriptions.get(subscription_id)
    if subscription.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return SubscriptionStatusResponse(
        is_active=subscription.is_active,
        last_used=subscription.last_used,
    )


@router.post("/send-test", response_model=SendTestResponse)
async def send_test(
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
    dispatcher: DispatcherDep,
):
    active = await subscriptions.list_active(current_user.id)
    if not active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscriptions found")

    report = await dispatcher.send_test(current_user.id)
    return SendTestResponse(
        success=report.delivered,
        message=f"Test notification sent to {report.sent}/{len(active)} devices",
    )


# =============================================================================
# RESPOND FROM A NOTIFICATION
# =============================================================================


@router.post("/respond/{transaction_id}", response_model=ApprovalResultResponse)
async def respond(
    transaction_id: UUID,
    data: RespondRequest,
    current_user: FamilyMemberDep,
    coordinator: CoordinatorDep,
):
    """Approve or decline as the authenticated parent."""
    result = await coordinator.respond(
        transaction_id,
        data.action,
        responder_id=current_user.id,
        reason=data.reason,
        family_id=current_user.family_id,
    )
    return ApprovalResultResponse(
        status=result.status,
        message=result.message,
        transaction_id=result.transaction_id,
    )


# =============================================================================
# SETTINGS
# =============================================================================


@router.get("/settings", response_model=SettingsResponse)
async def get_notification_settings(
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    return SettingsResponse(settings=await subscriptions.get_settings(current_user.id))


@router.put("/settings", response_model=MessageResponse)
async def update_notification_setting(
    data: SettingUpdateRequest,
    current_user: CurrentUserDep,
    subscriptions: SubscriptionServiceDep,
):
    await subscriptions.update_setting(current_user.id, data.setting_key, data.setting_value)
    return MessageResponse(message="Setting updated successfully")
