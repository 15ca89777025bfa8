"""Vendor-authenticated endpoints."""

from datetime import timedelta

from fastapi import APIRouter, HTTPException, Query, status

from ..core import CurrentUserDep, VendorDep, get_settings
from ..models import TransactionStatus
from ..schemas import (
    FamilyInfoRequest,
    FamilyInfoResponse,
    SurnameResponse,
    VendorHistoryItem,
    VendorHistoryResponse,
    VendorPaymentRequest,
    VendorPaymentResponse,
    VendorProfileRequest,
    VendorProfileResponse,
)
from ..services import PermissionDeniedError, PurchaseInput
from ..services.spending import applicable_limit
from .deps import CoordinatorDep, FamilyServiceDep, LedgerDep, VendorServiceDep

router = APIRouter(prefix="/vendor", tags=["vendor"])
settings = get_settings()


# =============================================================================
# PROFILE
# =============================================================================


@router.get("/profile", response_model=VendorProfileResponse)
async def get_profile(current_user: VendorDep):
    return VendorProfileResponse.model_validate(current_user.user.vendor)


@router.post("/profile", response_model=VendorProfileResponse)
async def upsert_profile(
    data: VendorProfileRequest,
    current_user: CurrentUserDep,
    vendors: VendorServiceDep,
):
    """Register the caller as a vendor or update their profile."""
    vendor = await vendors.upsert_profile(
        current_user.user,
        name=data.name,
        category=data.category,
        requires_approval=data.requires_approval,
        vendor_id=data.vendor_id,
    )
    return VendorProfileResponse.model_validate(vendor)


# =============================================================================
# PAYMENTS
# =============================================================================


@router.post("/payment-request", response_model=VendorPaymentResponse)
async def payment_request(
    data: VendorPaymentRequest,
    current_user: VendorDep,
    coordinator: CoordinatorDep,
    vendors: VendorServiceDep,
):
    """Submit a purchase on behalf of a family, as the calling vendor."""
    vendor = current_user.user.vendor
    result = await coordinator.submit_purchase(PurchaseInput(
        number=data.family_number,
        surname=data.surname,
        amount=data.amount,
        vendor_id=vendor.id,
        child_name=data.child_name,
        description=data.description,
    ))
    await vendors.remember_surname(vendor.id, data.family_number, data.surname)

    requires_approval = result.status == TransactionStatus.PENDING
    return VendorPaymentResponse(
        transaction_id=result.transaction_id,
        message=result.message,
        requires_approval=requires_approval,
        approval_timeout=result.approval_timeout if requires_approval else None,
    )


@router.get("/history", response_model=VendorHistoryResponse)
async def history(
    current_user: VendorDep,
    ledger: LedgerDep,
    vendor_id: str | None = Query(None, alias="vendorId"),
):
    """The calling vendor's transactions within the recent window."""
    vendor = current_user.user.vendor
    if vendor_id is not None and vendor_id != vendor.id:
        raise PermissionDeniedError("Vendors can only view their own history")

    rows = await ledger.recent_for_vendor(
        vendor.id, timedelta(minutes=settings.vendor_history_window_minutes)
    )
    return VendorHistoryResponse(transactions=[
        VendorHistoryItem(
            id=transaction.id,
            time=transaction.created_at,
            family_number=number,
            surname=surname,
            amount=float(transaction.amount),
            status=transaction.status.value,
            description=transaction.description,
            child_name=transaction.child_name,
        )
        for transaction, number, surname in rows
    ])


# =============================================================================
# FAMILY LOOKUP / AUTOFILL
# =============================================================================


@router.post("/family-info", response_model=FamilyInfoResponse)
async def family_info(
    data: FamilyInfoRequest,
    current_user: VendorDep,
    families: FamilyServiceDep,
    vendors: VendorServiceDep,
):
    """Surname autofill plus the limit that applies to this vendor."""
    vendor = current_user.user.vendor
    cached = await vendors.cached_surname(vendor.id, data.family_number)

    matches = await families.find_by_number(data.family_number)
    family = None
    if cached:
        family = next((f for f in matches if f.surname.lower() == cached.lower()), None)
    if family is None and matches:
        family = matches[0]
    if family is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Family not found")

    override = await families.vendor_limit(family.id, vendor.id)
    limit = applicable_limit(family, override, settings.default_spending_limit)
    return FamilyInfoResponse(surname=cached or family.surname, limit=float(limit))


@router.get("/surname/{family_number}", response_model=SurnameResponse)
async def cached_surname(
    family_number: str,
    current_user: VendorDep,
    vendors: VendorServiceDep,
):
    vendor = current_user.user.vendor
    return SurnameResponse(surname=await vendors.cached_surname(vendor.id, family_number))
