"""Service dependencies shared by the routers.

Long-lived collaborators (Redis client, push sender, WebAuthn ceremony,
auto-approval scheduler) are created in the application lifespan and
kept on ``app.state``; services are built per request around the
request's database session.
"""

from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis

from ..core import SessionDep, get_settings
from ..jobs import AutoApprovalScheduler
from ..services import (
    ApprovalCoordinator,
    AuthService,
    FamilyService,
    InviteService,
    NotificationDispatcher,
    PendingApprovalStore,
    PushSender,
    SubscriptionService,
    TransactionLedger,
    VendorService,
    WebAuthnCeremony,
)

settings = get_settings()


def get_redis(request: Request) -> Redis:
    return request.app.state.redis


def get_push_sender(request: Request) -> PushSender:
    return request.app.state.push_sender


def get_ceremony(request: Request) -> WebAuthnCeremony:
    return request.app.state.webauthn


def get_scheduler(request: Request) -> AutoApprovalScheduler | None:
    return getattr(request.app.state, "auto_approval", None)


def get_pending_store(redis: Annotated[Redis, Depends(get_redis)]) -> PendingApprovalStore:
    return PendingApprovalStore(redis, settings.pending_ttl_seconds)


def get_dispatcher(
    session: SessionDep,
    sender: Annotated[PushSender, Depends(get_push_sender)],
) -> NotificationDispatcher:
    return NotificationDispatcher(session, sender)


def get_coordinator(
    session: SessionDep,
    pending_store: Annotated[PendingApprovalStore, Depends(get_pending_store)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
    scheduler: Annotated[AutoApprovalScheduler | None, Depends(get_scheduler)],
) -> ApprovalCoordinator:
    return ApprovalCoordinator(session, pending_store, dispatcher, scheduler)


def get_ledger(session: SessionDep) -> TransactionLedger:
    return TransactionLedger(session)


def get_family_service(session: SessionDep) -> FamilyService:
    return FamilyService(session)


def get_vendor_service(session: SessionDep) -> VendorService:
    return VendorService(session)


def get_subscription_service(session: SessionDep) -> SubscriptionService:
    return SubscriptionService(session)


def get_auth_service(
    session: SessionDep,
    ceremony: Annotated[WebAuthnCeremony, Depends(get_ceremony)],
) -> AuthService:
    return AuthService(session, ceremony)


def get_invite_service(
    session: SessionDep,
    ceremony: Annotated[WebAuthnCeremony, Depends(get_ceremony)],
) -> InviteService:
    return InviteService(session, ceremony)


CoordinatorDep = Annotated[ApprovalCoordinator, Depends(get_coordinator)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
LedgerDep = Annotated[TransactionLedger, Depends(get_ledger)]
FamilyServiceDep = Annotated[FamilyService, Depends(get_family_service)]
VendorServiceDep = Annotated[VendorService, Depends(get_vendor_service)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
InviteServiceDep = Annotated[InviteService, Depends(get_invite_service)]
