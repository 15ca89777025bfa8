"""SQLAlchemy ORM Models for the purchase approval service.

The relational store holds families and their users, vendors and
per-family vendor overrides, the transaction ledger, push subscriptions
and their delivery log, and one-time invite links.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


class TransactionStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    AUTO_APPROVED = "auto_approved"  # Approval window elapsed without a response

    @property
    def is_terminal(self) -> bool:
        return self != TransactionStatus.PENDING


class ResolutionSource(str, PyEnum):
    """Which channel produced the terminal status."""
    LIMIT = "limit"  # Within the spending limit at submission
    PARENT = "parent"  # A family member approved or declined
    TIMEOUT = "timeout"  # Scheduled auto-approval or stale sweep


class NotificationClass(str, PyEnum):
    APPROVAL_REQUEST = "approval_request"
    TRANSACTION_RESULT = "transaction_result"
    TEST = "test"


class NotificationStatus(str, PyEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Suppressed by user settings (quiet hours, disabled class)


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# FAMILY & USER MODELS
# =============================================================================


class Family(Base, UUIDMixin, TimestampMixin):
    """The approving unit, identified by (number, surname)."""

    __tablename__ = "families"

    number: Mapped[str] = mapped_column(String(20), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    surname_key: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Normalised surname used for lookups"
    )
    default_limit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    members: Mapped[list["User"]] = relationship(back_populates="family")
    vendor_limits: Mapped[list["VendorLimit"]] = relationship(
        back_populates="family", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("number", "surname_key", name="uq_families_number_surname"),
        Index("idx_families_number", "number"),
    )

    @property
    def family_key(self) -> str:
        return f"{self.number}-{self.surname_key}"


class User(Base, UUIDMixin, TimestampMixin):
    """An account authenticated by passkeys; parents belong to a family."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    current_challenge: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="Outstanding WebAuthn challenge (base64url), one per user"
    )
    family_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("families.id"), nullable=True
    )

    family: Mapped["Family | None"] = relationship(back_populates="members")
    authenticators: Mapped[list["Authenticator"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    push_subscriptions: Mapped[list["PushSubscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    vendor: Mapped["Vendor | None"] = relationship(back_populates="user", uselist=False)

    __table_args__ = (
        Index("idx_users_family", "family_id"),
    )


class Authenticator(Base, UUIDMixin):
    """A registered WebAuthn credential."""

    __tablename__ = "authenticators"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    credential_id: Mapped[str] = mapped_column(
        String(512), unique=True, nullable=False,
        comment="base64url credential id"
    )
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    sign_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transports: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="authenticators")


class OneTimeLink(Base, UUIDMixin):
    """Single-use invite letting another device join a family."""

    __tablename__ = "one_time_links"

    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False,
        comment="Inviting user"
    )
    new_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True,
        comment="User created by the invite ceremony"
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    inviter: Mapped["User"] = relationship(foreign_keys=[user_id])


# =============================================================================
# VENDOR MODELS
# =============================================================================


class Vendor(Base):
    """The requesting unit; owned by a user acting in the vendor role."""

    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), default="other", nullable=False)
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Every purchase at this vendor needs a parent decision"
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    user: Mapped["User | None"] = relationship(back_populates="vendor")


class VendorLimit(Base, UUIDMixin, TimestampMixin):
    """Per (family, vendor) override of the default spending limit."""

    __tablename__ = "vendor_limits"

    family_id: Mapped[UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id: Mapped[str] = mapped_column(
        ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    limit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    family: Mapped["Family"] = relationship(back_populates="vendor_limits")
    vendor: Mapped["Vendor"] = relationship()

    __table_args__ = (
        UniqueConstraint("family_id", "vendor_id", name="uq_vendor_limits_family_vendor"),
    )


class VendorSurnameCache(Base, UUIDMixin):
    """Last surname a vendor used for a family number (autofill)."""

    __tablename__ = "vendor_surname_cache"

    vendor_id: Mapped[str] = mapped_column(
        ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    family_number: Mapped[str] = mapped_column(String(20), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("vendor_id", "family_number", name="uq_vendor_surname_cache_vendor_number"),
    )


# =============================================================================
# TRANSACTION LEDGER
# =============================================================================


class Transaction(Base, UUIDMixin):
    """A purchase attempt and its terminal status.

    Status only moves pending -> approved | declined | auto_approved,
    and the move is a conditional update guarded by status = pending.
    """

    __tablename__ = "transactions"

    family_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("families.id", ondelete="SET NULL"), nullable=True
    )
    vendor_id: Mapped[str | None] = mapped_column(
        ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(200))
    child_name: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[TransactionStatus] = mapped_column(
        _enum(TransactionStatus, "transaction_status"),
        default=TransactionStatus.PENDING,
        nullable=False,
    )
    resolution_source: Mapped[ResolutionSource | None] = mapped_column(
        _enum(ResolutionSource, "resolution_source"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    approved_at: Mapped[datetime | None] = mapped_column()
    declined_at: Mapped[datetime | None] = mapped_column()
    responded_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    decline_reason: Mapped[str | None] = mapped_column(String(500))

    family: Mapped["Family | None"] = relationship()
    vendor: Mapped["Vendor | None"] = relationship()

    __table_args__ = (
        Index("idx_transactions_vendor_created", "vendor_id", "created_at"),
        Index("idx_transactions_family_created", "family_id", "created_at"),
        Index("idx_transactions_status_created", "status", "created_at"),
    )


# =============================================================================
# PUSH NOTIFICATION MODELS
# =============================================================================


class PushSubscription(Base, UUIDMixin):
    """A device registration; deactivated rather than deleted when it breaks."""

    __tablename__ = "push_subscriptions"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    endpoint: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    p256dh_key: Mapped[str] = mapped_column(String(255), nullable=False)
    auth_key: Mapped[str] = mapped_column(String(255), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(500))
    device_name: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    last_used: Mapped[datetime | None] = mapped_column()

    user: Mapped["User"] = relationship(back_populates="push_subscriptions")

    __table_args__ = (
        Index("idx_push_subscriptions_user_active", "user_id", "is_active"),
    )

    def subscription_info(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh_key, "auth": self.auth_key},
        }


class NotificationSetting(Base, UUIDMixin):
    """Per-user notification preference (key/value)."""

    __tablename__ = "push_notification_settings"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    setting_key: Mapped[str] = mapped_column(String(64), nullable=False)
    setting_value: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "setting_key", name="uq_push_notification_settings_user_key"),
    )


class NotificationLog(Base, UUIDMixin):
    """One row per (transaction, subscription) delivery attempt."""

    __tablename__ = "notification_log"

    transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=True
    )
    subscription_id: Mapped[UUID] = mapped_column(
        ForeignKey("push_subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    notification_class: Mapped[NotificationClass] = mapped_column(
        _enum(NotificationClass, "notification_class"), nullable=False
    )
    status: Mapped[NotificationStatus] = mapped_column(
        _enum(NotificationStatus, "notification_status"), nullable=False
    )
    status_code: Mapped[int | None] = mapped_column(Integer)
    error_message: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column()
    response_action: Mapped[str | None] = mapped_column(String(20))

    subscription: Mapped["PushSubscription"] = relationship()

    __table_args__ = (
        Index("idx_notification_log_transaction", "transaction_id", "sent_at"),
        Index("idx_notification_log_subscription", "subscription_id"),
    )
