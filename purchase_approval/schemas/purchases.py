"""Purchase, approval and vendor schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator

from ..services.validation import (
    MAX_DESCRIPTION_LENGTH,
    MAX_REASON_LENGTH,
    validate_amount,
    validate_category,
    validate_child_name,
    validate_family_number,
    validate_surname,
    validate_vendor_id,
    validate_vendor_name,
)
from .base import ApprovalBaseModel


# =============================================================================
# PURCHASE REQUEST (PUBLIC)
# =============================================================================


class PurchaseFields(ApprovalBaseModel):
    """Fields shared by every way of submitting a purchase."""

    amount: Decimal
    child_name: str | None = Field(default=None, alias="childName", max_length=100)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, v):
        return validate_amount(v)

    @field_validator("child_name")
    @classmethod
    def check_child_name(cls, v):
        return validate_child_name(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v):
        if v is None:
            return None
        return v.strip() or None


class PurchaseRequest(PurchaseFields):
    """A purchase submitted for a family, identified by number and surname."""

    number: str = Field(..., min_length=1, max_length=20)
    surname: str = Field(..., min_length=1, max_length=100)
    vendor_id: str = Field(..., alias="vendorId", min_length=1, max_length=64)

    @field_validator("number")
    @classmethod
    def check_number(cls, v):
        return validate_family_number(v)

    @field_validator("surname")
    @classmethod
    def check_surname(cls, v):
        return validate_surname(v)

    @field_validator("vendor_id")
    @classmethod
    def check_vendor_id(cls, v):
        return validate_vendor_id(v)


class PurchaseResponse(ApprovalBaseModel):
    status: Literal["approved", "pending", "error"]
    transaction_id: UUID | None = None
    message: str
    approval_timeout: int | None = None


# =============================================================================
# APPROVAL RESPONSE
# =============================================================================


class ApprovalResponseRequest(ApprovalBaseModel):
    transaction_id: UUID = Field(..., alias="transactionId")
    action: Literal["approve", "decline"]
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class RespondRequest(ApprovalBaseModel):
    """Approve/decline sent from a notification by an authenticated parent."""

    action: Literal["approve", "decline"]
    reason: str | None = Field(default=None, max_length=MAX_REASON_LENGTH)


class ApprovalResultResponse(ApprovalBaseModel):
    status: str
    message: str
    transaction_id: UUID | None = None


# =============================================================================
# VENDOR OPERATIONS
# =============================================================================


class VendorPaymentRequest(PurchaseFields):
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


class VendorPaymentResponse(ApprovalBaseModel):
    success: bool = True
    transaction_id: UUID
    message: str
    requires_approval: bool
    approval_timeout: int | None = None


class VendorHistoryItem(ApprovalBaseModel):
    id: UUID
    time: datetime
    family_number: str | None = None
    surname: str | None = None
    amount: float
    status: str
    description: str | None = None
    child_name: str | None = None


class VendorHistoryResponse(ApprovalBaseModel):
    transactions: list[VendorHistoryItem]


class FamilyInfoRequest(ApprovalBaseModel):
    family_number: str = Field(..., min_length=1, max_length=20)

    @field_validator("family_number")
    @classmethod
    def check_number(cls, v):
        return validate_family_number(v)


class FamilyInfoResponse(ApprovalBaseModel):
    surname: str | None = None
    limit: float | None = None


class SurnameResponse(ApprovalBaseModel):
    surname: str | None = None


class VendorProfileRequest(ApprovalBaseModel):
    vendor_id: str | None = Field(default=None, alias="vendorId", max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    category: str = "other"
    requires_approval: bool = Field(default=False, alias="requiresApproval")

    @field_validator("vendor_id")
    @classmethod
    def check_vendor_id(cls, v):
        return validate_vendor_id(v) if v else None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        return validate_vendor_name(v)

    @field_validator("category")
    @classmethod
    def check_category(cls, v):
        return validate_category(v)


class VendorProfileResponse(ApprovalBaseModel):
    id: str
    name: str
    category: str
    requires_approval: bool
