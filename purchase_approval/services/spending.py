"""
Spend-Limit Evaluator: decides whether a purchase needs a parent decision.

Decision order:
1. Vendor flagged "always requires approval" -> approval
2. Family forces approval for this vendor -> approval
3. Compare the single purchase amount against the applicable limit
   (vendor override, else family default, else the configured fallback)

Pure function over a snapshot; callers load the rows.
"""

from dataclasses import dataclass
from decimal import Decimal

from ..core.config import get_settings
from ..models import Family, Vendor, VendorLimit


@dataclass(frozen=True)
class SpendDecision:
    """Outcome of a spend-limit evaluation."""
    requires_approval: bool
    applicable_limit: Decimal
    reason: str  # vendor_flag | family_vendor_flag | over_limit | within_limit


def applicable_limit(
    family: Family,
    vendor_limit: VendorLimit | None = None,
    fallback: Decimal | None = None,
) -> Decimal:
    """Vendor override, else family default, else the hard fallback."""
    if vendor_limit is not None and vendor_limit.limit_amount is not None:
        return Decimal(vendor_limit.limit_amount)
    if family.default_limit is not None:
        return Decimal(family.default_limit)
    if fallback is None:
        fallback = get_settings().default_spending_limit
    return Decimal(fallback)


def evaluate_purchase(
    family: Family,
    vendor: Vendor,
    amount: Decimal,
    vendor_limit: VendorLimit | None = None,
    fallback: Decimal | None = None,
) -> SpendDecision:
    """Classify a purchase as auto-approvable or requiring approval.

    The always-approval flags win over any limit, even one higher than
    the amount.
    """
    limit = applicable_limit(family, vendor_limit, fallback)

    if vendor.requires_approval:
        return SpendDecision(True, limit, "vendor_flag")

    if vendor_limit is not None and vendor_limit.require_approval:
        return SpendDecision(True, limit, "family_vendor_flag")

    if Decimal(amount) > limit:
        return SpendDecision(True, limit, "over_limit")

    return SpendDecision(False, limit, "within_limit")
