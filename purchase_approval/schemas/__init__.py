"""Purchase Approval API Schemas.

Schemas are organized by domain:
- base: common configuration and error responses
- purchases: purchase requests, approval responses, vendor operations
- push: push subscriptions and notification settings
- accounts: auth ceremonies, invites, family settings
"""

from .accounts import (
    # Auth
    CeremonyFinishRequest,
    MeResponse,
    UsernameRequest,
    VerifiedResponse,
    # Invites
    InviteCreateResponse,
    InviteFinishRequest,
    InviteFinishResponse,
    InviteStartRequest,
    InviteUser,
    InviteValidateResponse,
    # Family
    FamilySettingsResponse,
    FamilySettingsUpdate,
    FamilyTransactionItem,
    FamilyTransactionsResponse,
    LimitsResponse,
    LimitsUpdate,
    VendorLimitItem,
    VendorLimitResponse,
)
from .base import ApprovalBaseModel, ErrorDetail, ErrorResponse, MessageResponse
from .purchases import (
    ApprovalResponseRequest,
    ApprovalResultResponse,
    FamilyInfoRequest,
    FamilyInfoResponse,
    PurchaseRequest,
    PurchaseResponse,
    RespondRequest,
    SurnameResponse,
    VendorHistoryItem,
    VendorHistoryResponse,
    VendorPaymentRequest,
    VendorPaymentResponse,
    VendorProfileRequest,
    VendorProfileResponse,
)
from .push import (
    PublicKeyResponse,
    PushKeys,
    PushSubscriptionIn,
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

__all__ = [
    # Base
    "ApprovalBaseModel",
    "ErrorDetail",
    "ErrorResponse",
    "MessageResponse",
    # Purchases
    "PurchaseRequest",
    "PurchaseResponse",
    "ApprovalResponseRequest",
    "ApprovalResultResponse",
    "RespondRequest",
    # Vendor
    "VendorPaymentRequest",
    "VendorPaymentResponse",
    "VendorHistoryItem",
    "VendorHistoryResponse",
    "FamilyInfoRequest",
    "FamilyInfoResponse",
    "SurnameResponse",
    "VendorProfileRequest",
    "VendorProfileResponse",
    # Push
    "PushKeys",
    "PushSubscriptionIn",
    "SubscribeRequest",
    "SubscribeResponse",
    "UnsubscribeRequest",
    "SubscriptionItem",
    "SubscriptionListResponse",
    "SubscriptionStatusResponse",
    "PublicKeyResponse",
    "SettingsResponse",
    "SettingUpdateRequest",
    "SendTestResponse",
    # Auth
    "UsernameRequest",
    "CeremonyFinishRequest",
    "VerifiedResponse",
    "MeResponse",
    # Invites
    "InviteCreateResponse",
    "InviteValidateResponse",
    "InviteStartRequest",
    "InviteFinishRequest",
    "InviteFinishResponse",
    "InviteUser",
    # Family
    "FamilySettingsUpdate",
    "FamilySettingsResponse",
    "VendorLimitItem",
    "LimitsUpdate",
    "VendorLimitResponse",
    "LimitsResponse",
    "FamilyTransactionItem",
    "FamilyTransactionsResponse",
]
