"""Input validation rules shared by request schemas and services.

Validators raise ValueError so they can be used directly inside Pydantic
field validators; services wrap them where they validate on their own.
"""

import re
from decimal import Decimal, InvalidOperation

from ..core.config import get_settings

FAMILY_NUMBER_RE = re.compile(r"^\d+$")
PERSON_NAME_RE = re.compile(r"^[A-Za-z\s\-']+$")
VENDOR_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
VENDOR_NAME_RE = re.compile(r"^[A-Za-z0-9\s\-'&.]+$")
HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

VENDOR_CATEGORIES = (
    "grocery",
    "pharmacy",
    "bakery",
    "toys",
    "books",
    "clothing",
    "electronics",
    "other",
)

MAX_DESCRIPTION_LENGTH = 200
MAX_REASON_LENGTH = 500


def normalize_key(value: str) -> str:
    """Trim, lower-case and collapse whitespace (surname lookups)."""
    return " ".join(value.strip().lower().split())


def validate_family_number(value: str) -> str:
    value = value.strip()
    if not FAMILY_NUMBER_RE.match(value):
        raise ValueError("Number must contain only digits")
    return value


def validate_surname(value: str) -> str:
    value = value.strip()
    if not value or not PERSON_NAME_RE.match(value):
        raise ValueError("Surname contains invalid characters")
    return value


def validate_child_name(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    value = value.strip()
    if not PERSON_NAME_RE.match(value):
        raise ValueError("Child name contains invalid characters")
    return value


def validate_vendor_id(value: str) -> str:
    value = value.strip()
    if not VENDOR_ID_RE.match(value):
        raise ValueError("Invalid vendor ID format")
    return value


def validate_vendor_name(value: str) -> str:
    value = value.strip()
    if not value or not VENDOR_NAME_RE.match(value):
        raise ValueError("Vendor name contains invalid characters")
    return value


def validate_category(value: str) -> str:
    value = value.strip().lower()
    if value not in VENDOR_CATEGORIES:
        raise ValueError(f"Invalid category. Must be one of: {', '.join(VENDOR_CATEGORIES)}")
    return value


def validate_amount(value: Decimal | float | str, maximum: Decimal | None = None) -> Decimal:
    """Positive, at most two decimals, not above the configured maximum."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError("Amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValueError("Amount must be a positive number")
    if amount.as_tuple().exponent < -2:
        raise ValueError("Amount must have at most two decimal places")
    if maximum is None:
        maximum = get_settings().max_purchase_amount
    if amount > maximum:
        raise ValueError(f"Amount too large (maximum {maximum})")
    return amount


def validate_limit(value: Decimal | float | str) -> Decimal:
    """Spending limits may be zero (always ask) but never negative."""
    try:
        limit = Decimal(str(value))
    except InvalidOperation:
        raise ValueError("Limit must be a number")
    if not limit.is_finite() or limit < 0:
        raise ValueError("Limit must not be negative")
    return limit.quantize(Decimal("0.01"))


def validate_setting_value(key: str, value: str) -> str:
    value = value.strip()
    if key in ("quiet_hours_start", "quiet_hours_end"):
        if value and not HHMM_RE.match(value):
            raise ValueError("Quiet hours must be HH:MM")
        return value
    if key.endswith("_enabled"):
        if value not in ("true", "false"):
            raise ValueError("Value must be 'true' or 'false'")
    return value
