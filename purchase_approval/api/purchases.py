"""Public purchase endpoints: submit a purchase, answer an approval."""

import logging

from fastapi import APIRouter

from ..models import TransactionStatus
from ..schemas import (
    ApprovalResponseRequest,
    ApprovalResultResponse,
    PurchaseRequest,
    PurchaseResponse,
)
from ..services import PurchaseInput
from .deps import CoordinatorDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["purchases"])


@router.post("/purchase-request", response_model=PurchaseResponse)
async def purchase_request(data: PurchaseRequest, coordinator: CoordinatorDep):
    """Submit a purchase; approved at once when within the family's limit."""
    result = await coordinator.submit_purchase(PurchaseInput(
        number=data.number,
        surname=data.surname,
        amount=data.amount,
        vendor_id=data.vendor_id,
        child_name=data.child_name,
        description=data.description,
    ))

    if result.status == TransactionStatus.APPROVED:
        return PurchaseResponse(
            status="approved",
            transaction_id=result.transaction_id,
            message=result.message,
        )
    return PurchaseResponse(
        status="pending",
        transaction_id=result.transaction_id,
        message=result.message,
        approval_timeout=result.approval_timeout,
    )


@router.post("/approval-response", response_model=ApprovalResultResponse)
async def approval_response(data: ApprovalResponseRequest, coordinator: CoordinatorDep):
    """Approve or decline a pending transaction.

    404 when the pending record is gone (expired or already processed).
    """
    result = await coordinator.respond(
        data.transaction_id,
        data.action,
        reason=data.reason,
    )
    return ApprovalResultResponse(
        status=result.status,
        message=result.message,
        transaction_id=result.transaction_id,
    )
