"""Family settings, spending limits and transaction history."""

from fastapi import APIRouter, Query

from ..core import CurrentUserDep, FamilyMemberDep, get_settings
from ..schemas import (
    FamilySettingsResponse,
    FamilySettingsUpdate,
    FamilyTransactionItem,
    FamilyTransactionsResponse,
    LimitsResponse,
    LimitsUpdate,
    VendorLimitResponse,
)
from ..services import VendorLimitInput
from .deps import FamilyServiceDep, LedgerDep

router = APIRouter(prefix="/family", tags=["family"])
settings = get_settings()


async def _limits_response(families, family, message: str) -> LimitsResponse:
    overrides = await families.list_vendor_limits(family.id)
    return LimitsResponse(
        message=message,
        default_limit=float(family.default_limit if family.default_limit is not None
                            else settings.default_spending_limit),
        vendor_limits=[
            VendorLimitResponse(
                vendor_id=o.vendor_id,
                vendor_name=o.vendor.name if o.vendor else None,
                limit_amount=float(o.limit_amount) if o.limit_amount is not None else None,
                require_approval=o.require_approval,
            )
            for o in overrides
        ],
    )


@router.get("/settings", response_model=FamilySettingsResponse)
async def get_family_settings(current_user: CurrentUserDep, families: FamilyServiceDep):
    family = await families.get_for_user(current_user.user)
    if family is None:
        return FamilySettingsResponse(default_limit=float(settings.default_spending_limit))
    return FamilySettingsResponse(
        family_number=family.number,
        surname=family.surname,
        default_limit=float(family.default_limit if family.default_limit is not None
                            else settings.default_spending_limit),
    )


@router.put("/settings", response_model=FamilySettingsResponse)
async def update_family_settings(
    data: FamilySettingsUpdate,
    current_user: CurrentUserDep,
    families: FamilyServiceDep,
):
    """Create the caller's family or rename it; 409 if the pair belongs to another family."""
    family = await families.update_settings(current_user.user, data.family_number, data.surname)
    return FamilySettingsResponse(
        family_number=family.number,
        surname=family.surname,
        default_limit=float(family.default_limit if family.default_limit is not None
                            else settings.default_spending_limit),
        message="Family settings updated successfully",
    )


@router.get("/limits", response_model=LimitsResponse)
async def get_limits(current_user: FamilyMemberDep, families: FamilyServiceDep):
    family = await families.require_for_user(current_user.user)
    return await _limits_response(families, family, "Current spending limits")


@router.put("/limits", response_model=LimitsResponse)
async def update_limits(
    data: LimitsUpdate,
    current_user: FamilyMemberDep,
    families: FamilyServiceDep,
):
    family = await families.update_limits(
        current_user.user,
        data.default_limit,
        [
            VendorLimitInput(
                vendor_id=item.vendor_id,
                limit_amount=item.limit_amount,
                require_approval=item.require_approval,
            )
            for item in data.vendor_limits
        ] if data.vendor_limits is not None else None,
    )
    return await _limits_response(families, family, "Spending limit updated successfully")


@router.get("/transactions", response_model=FamilyTransactionsResponse)
async def family_transactions(
    current_user: FamilyMemberDep,
    ledger: LedgerDep,
    limit: int = Query(50, ge=1, le=200),
):
    rows = await ledger.recent_for_family(current_user.family_id, limit=limit)
    return FamilyTransactionsResponse(transactions=[
        FamilyTransactionItem(
            id=transaction.id,
            amount=float(transaction.amount),
            status=transaction.status.value,
            vendor_id=transaction.vendor_id,
            vendor_name=vendor_name,
            child_name=transaction.child_name,
            description=transaction.description,
            created_at=transaction.created_at,
            approved_at=transaction.approved_at,
            declined_at=transaction.declined_at,
            decline_reason=transaction.decline_reason,
            resolution_source=(
                transaction.resolution_source.value if transaction.resolution_source else None
            ),
        )
        for transaction, vendor_name in rows
    ])
