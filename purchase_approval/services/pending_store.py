"""
Pending-Approval Store: ephemeral shadow of pending ledger rows.

Records live in Redis under ``pending:<transaction id>`` with a hard TTL
enforced by Redis itself. The store is a fast lookup of in-flight
approvals, never the source of truth for final status: a miss means
"not found or already processed", whether the key expired or was
deleted.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "pending:"


@dataclass
class PendingApprovalRecord:
    """Enough denormalised data to render a notification without the ledger."""
    transaction_id: str
    family_id: str
    family_key: str
    amount: str  # Decimal as string
    vendor_id: str
    vendor_name: str
    created_at: str  # ISO-8601
    child_name: str | None = None
    description: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "PendingApprovalRecord":
        data = json.loads(raw)
        return cls(
            transaction_id=data["transaction_id"],
            family_id=data["family_id"],
            family_key=data["family_key"],
            amount=data["amount"],
            vendor_id=data["vendor_id"],
            vendor_name=data["vendor_name"],
            created_at=data["created_at"],
            child_name=data.get("child_name"),
            description=data.get("description"),
        )

    @classmethod
    def build(
        cls,
        transaction_id: UUID,
        family_id: UUID,
        family_key: str,
        amount: Decimal,
        vendor_id: str,
        vendor_name: str,
        created_at: datetime,
        child_name: str | None = None,
        description: str | None = None,
    ) -> "PendingApprovalRecord":
        return cls(
            transaction_id=str(transaction_id),
            family_id=str(family_id),
            family_key=family_key,
            amount=str(amount),
            vendor_id=vendor_id,
            vendor_name=vendor_name,
            created_at=created_at.isoformat(),
            child_name=child_name,
            description=description,
        )


class PendingApprovalStore:
    """Key-value store of pending approvals with a built-in expiry."""

    def __init__(self, redis: Redis, default_ttl_seconds: int = 600):
        self._redis = redis
        self._default_ttl = default_ttl_seconds

    @staticmethod
    def _key(transaction_id: UUID | str) -> str:
        return f"{KEY_PREFIX}{transaction_id}"

    async def put(
        self,
        transaction_id: UUID | str,
        record: PendingApprovalRecord,
        ttl_seconds: int | None = None,
    ) -> None:
        ttl = ttl_seconds or self._default_ttl
        await self._redis.set(self._key(transaction_id), record.to_json(), ex=ttl)
        logger.debug(f"Pending record stored for {transaction_id} (ttl={ttl}s)")

    async def get(self, transaction_id: UUID | str) -> PendingApprovalRecord | None:
        raw = await self._redis.get(self._key(transaction_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return PendingApprovalRecord.from_json(raw)

    async def delete(self, transaction_id: UUID | str) -> bool:
        """Remove a record; returns whether anything was removed."""
        removed = await self._redis.delete(self._key(transaction_id))
        return bool(removed)
