"""Push subscription and notification-setting schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from .base import ApprovalBaseModel


class PushKeys(ApprovalBaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionIn(ApprovalBaseModel):
    """Browser PushSubscription.toJSON() shape."""

    endpoint: str = Field(..., min_length=1)
    keys: PushKeys


class SubscribeRequest(ApprovalBaseModel):
    subscription: PushSubscriptionIn
    user_agent: str | None = Field(default=None, alias="userAgent", max_length=500)
    device_name: str | None = Field(default=None, alias="deviceName", max_length=100)


class SubscribeResponse(ApprovalBaseModel):
    success: bool = True
    subscription_id: UUID = Field(..., serialization_alias="subscriptionId")
    message: str


class UnsubscribeRequest(ApprovalBaseModel):
    subscription_id: UUID | None = Field(default=None, alias="subscriptionId")
    endpoint: str | None = None

    @model_validator(mode="after")
    def require_target(self):
        if self.subscription_id is None and not self.endpoint:
            raise ValueError("Subscription ID or endpoint required")
        return self


class SubscriptionItem(ApprovalBaseModel):
    id: UUID
    endpoint: str
    device_name: str | None = Field(default=None, serialization_alias="deviceName")
    user_agent: str | None = Field(default=None, serialization_alias="userAgent")
    last_used: datetime | None = Field(default=None, serialization_alias="lastUsed")
    created_at: datetime = Field(..., serialization_alias="createdAt")


class SubscriptionListResponse(ApprovalBaseModel):
    success: bool = True
    subscriptions: list[SubscriptionItem]


class SubscriptionStatusResponse(ApprovalBaseModel):
    success: bool = True
    is_active: bool = Field(..., serialization_alias="isActive")
    last_used: datetime | None = Field(default=None, serialization_alias="lastUsed")


class PublicKeyResponse(ApprovalBaseModel):
    public_key: str | None = Field(default=None, serialization_alias="publicKey")


class SettingsResponse(ApprovalBaseModel):
    success: bool = True
    settings: dict[str, str]


class SettingUpdateRequest(ApprovalBaseModel):
    setting_key: str = Field(..., alias="settingKey", min_length=1, max_length=64)
    setting_value: str = Field(..., alias="settingValue", max_length=255)


class SendTestResponse(ApprovalBaseModel):
    success: bool
    message: str
