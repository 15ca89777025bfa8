"""Business logic services for the purchase approval service."""

from .approvals import (
    ApprovalCoordinator,
    PurchaseInput,
    ResolutionResult,
    SubmissionResult,
    TimeoutScheduler,
)
from .auth import (
    AuthService,
    CeremonyOptions,
    LoginResult,
    PyWebAuthnCeremony,
    VerifiedCredential,
    WebAuthnCeremony,
)
from .errors import (
    AuthError,
    CeremonyError,
    ConflictError,
    DeliveryError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    StorageConflictError,
    ValidationError,
)
from .families import FamilyService, VendorLimitInput
from .invites import InviteService
from .ledger import TransactionLedger
from .notifications import DispatchReport, NotificationDispatcher
from .pending_store import PendingApprovalRecord, PendingApprovalStore
from .push import PushSender, WebPushSender
from .spending import SpendDecision, evaluate_purchase
from .subscriptions import SubscriptionService
from .vendors import VendorService

__all__ = [
    # Approval workflow
    "ApprovalCoordinator",
    "PurchaseInput",
    "SubmissionResult",
    "ResolutionResult",
    "TimeoutScheduler",
    "TransactionLedger",
    "PendingApprovalStore",
    "PendingApprovalRecord",
    "SpendDecision",
    "evaluate_purchase",
    # Notifications
    "NotificationDispatcher",
    "DispatchReport",
    "PushSender",
    "WebPushSender",
    "SubscriptionService",
    # Families & vendors
    "FamilyService",
    "VendorLimitInput",
    "VendorService",
    # Auth
    "AuthService",
    "InviteService",
    "WebAuthnCeremony",
    "PyWebAuthnCeremony",
    "CeremonyOptions",
    "VerifiedCredential",
    "LoginResult",
    # Errors
    "ServiceError",
    "ValidationError",
    "AuthError",
    "CeremonyError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "DeliveryError",
    "StorageConflictError",
]
