"""Auth, invite and family schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from ..services.validation import validate_family_number, validate_limit, validate_surname
from .base import ApprovalBaseModel


# =============================================================================
# AUTH
# =============================================================================


class UsernameRequest(ApprovalBaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class CeremonyFinishRequest(ApprovalBaseModel):
    user_id: UUID = Field(..., alias="userId")
    response: dict[str, Any]


class VerifiedResponse(ApprovalBaseModel):
    verified: bool


class MeResponse(ApprovalBaseModel):
    id: UUID
    username: str
    family_number: str | None = None
    surname: str | None = None
    is_vendor: bool = False
    vendor_id: str | None = None


# =============================================================================
# INVITES
# =============================================================================


class InviteCreateResponse(ApprovalBaseModel):
    success: bool = True
    invite_url: str = Field(..., serialization_alias="inviteUrl")
    token: str
    expires_at: datetime = Field(..., serialization_alias="expiresAt")


class InviteValidateResponse(ApprovalBaseModel):
    valid: bool = True
    family_number: str
    surname: str
    expires_at: datetime = Field(..., serialization_alias="expiresAt")


class InviteStartRequest(ApprovalBaseModel):
    token: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=64)


class InviteFinishRequest(ApprovalBaseModel):
    token: str = Field(..., min_length=1)
    response: dict[str, Any]


class InviteUser(ApprovalBaseModel):
    id: UUID
    username: str
    family_number: str
    surname: str


class InviteFinishResponse(ApprovalBaseModel):
    success: bool = True
    user: InviteUser
    token: str


# =============================================================================
# FAMILY
# =============================================================================


class FamilySettingsUpdate(ApprovalBaseModel):
    family_number: str = Field(..., min_length=1, max_length=20)
    surname: str = Field(..., min_length=1, max_length=100)

    @field_validator("family_number")
    @classmethod
    def check_number(cls, v):
        return validate_family_number(v)

    @field_validator("surname")
    @classmethod
    def check_surname(cls, v):
        return validate_surname(v)


class FamilySettingsResponse(ApprovalBaseModel):
    family_number: str | None = None
    surname: str | None = None
    default_limit: float
    message: str | None = None


class VendorLimitItem(ApprovalBaseModel):
    vendor_id: str = Field(..., min_length=1, max_length=64)
    limit_amount: Decimal | None = None
    require_approval: bool = False

    @field_validator("limit_amount", mode="before")
    @classmethod
    def check_limit(cls, v):
        return None if v is None else validate_limit(v)


class LimitsUpdate(ApprovalBaseModel):
    default_limit: Decimal
    vendor_limits: list[VendorLimitItem] | None = None

    @field_validator("default_limit", mode="before")
    @classmethod
    def check_default_limit(cls, v):
        return validate_limit(v)


class VendorLimitResponse(ApprovalBaseModel):
    vendor_id: str
    vendor_name: str | None = None
    limit_amount: float | None = None
    require_approval: bool


class LimitsResponse(ApprovalBaseModel):
    message: str
    default_limit: float
    vendor_limits: list[VendorLimitResponse] = []


class FamilyTransactionItem(ApprovalBaseModel):
    id: UUID
    amount: float
    status: str
    vendor_id: str | None = None
    vendor_name: str | None = None
    child_name: str | None = None
    description: str | None = None
    created_at: datetime
    approved_at: datetime | None = None
    declined_at: datetime | None = None
    decline_reason: str | None = None
    resolution_source: str | None = None


class FamilyTransactionsResponse(ApprovalBaseModel):
    transactions: list[FamilyTransactionItem]
