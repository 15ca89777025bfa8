"""SQLAlchemy ORM Models for the purchase approval service."""

from .base import Base, TimestampMixin, UUIDMixin, utcnow
from .models import (
    # Enums
    NotificationClass,
    NotificationStatus,
    ResolutionSource,
    TransactionStatus,
    # Family & User
    Authenticator,
    Family,
    OneTimeLink,
    User,
    # Vendors
    Vendor,
    VendorLimit,
    VendorSurnameCache,
    # Ledger
    Transaction,
    # Notifications
    NotificationLog,
    NotificationSetting,
    PushSubscription,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "utcnow",
    # Enums
    "TransactionStatus",
    "ResolutionSource",
    "NotificationClass",
    "NotificationStatus",
    # Family & User
    "Family",
    "User",
    "Authenticator",
    "OneTimeLink",
    # Vendors
    "Vendor",
    "VendorLimit",
    "VendorSurnameCache",
    # Ledger
    "Transaction",
    # Notifications
    "PushSubscription",
    "NotificationSetting",
    "NotificationLog",
]
