"""
Shared fixtures: a per-test SQLite database, fake Redis, and recording
doubles for the push transport, the WebAuthn ceremony and the
auto-approval scheduler.
"""

import os

# Settings are read once at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-session-tokens")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("VAPID_PUBLIC_KEY", "test-vapid-public-key")

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient

from purchase_approval.core import (
    build_engine,
    build_session_factory,
    create_session_token,
    get_session,
    init_db,
)
from purchase_approval.models import (
    Family,
    PushSubscription,
    User,
    Vendor,
    VendorLimit,
    utcnow,
)
from purchase_approval.services import (
    ApprovalCoordinator,
    CeremonyError,
    CeremonyOptions,
    DeliveryError,
    NotificationDispatcher,
    PendingApprovalStore,
    VerifiedCredential,
)
from purchase_approval.services.validation import normalize_key


# =============================================================================
# DOUBLES
# =============================================================================


@dataclass
class SentPush:
    endpoint: str
    payload: dict[str, Any]
    urgency: str


@dataclass
class RecordingSender:
    """Push sender that records deliveries; endpoints in `failures` raise."""

    sent: list[SentPush] = field(default_factory=list)
    failures: dict[str, int | None] = field(default_factory=dict)

    async def send(self, subscription_info, payload, urgency="normal"):
        endpoint = subscription_info["endpoint"]
        if endpoint in self.failures:
            raise DeliveryError("Push service rejected message", self.failures[endpoint])
        self.sent.append(SentPush(endpoint, payload, urgency))

    def of_type(self, kind: str) -> list[SentPush]:
        return [p for p in self.sent if p.payload.get("data", {}).get("type") == kind]


class FakeCeremony:
    """Accepts any credential that echoes the outstanding challenge."""

    def __init__(self):
        self._counter = 0

    def _challenge(self) -> str:
        self._counter += 1
        return f"challenge-{self._counter}"

    def registration_options(self, user_id, username, exclude_credential_ids):
        challenge = self._challenge()
        return CeremonyOptions(
            options={"challenge": challenge, "user": {"id": str(user_id), "name": username}},
            challenge=challenge,
        )

    def verify_registration(self, credential, expected_challenge):
        if credential.get("challenge") != expected_challenge:
            raise CeremonyError("Registration verification failed: challenge mismatch")
        return VerifiedCredential(
            credential_id=credential["id"],
            public_key=b"fake-public-key",
            sign_count=0,
            transports=["internal"],
        )

    def authentication_options(self, authenticators):
        challenge = self._challenge()
        return CeremonyOptions(
            options={
                "challenge": challenge,
                "allowCredentials": [{"id": a.credential_id} for a in authenticators],
            },
            challenge=challenge,
        )

    def verify_authentication(self, credential, expected_challenge, public_key, sign_count):
        if credential.get("challenge") != expected_challenge:
            raise CeremonyError("Authentication failed: challenge mismatch")
        return sign_count + 1


class RecordingScheduler:
    def __init__(self):
        self.armed: list[UUID] = []

    def arm(self, transaction_id: UUID) -> None:
        self.armed.append(transaction_id)


# =============================================================================
# INFRASTRUCTURE FIXTURES
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    # A file database so separate sessions see each other's commits
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def pending_store(redis) -> PendingApprovalStore:
    return PendingApprovalStore(redis, default_ttl_seconds=600)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def ceremony() -> FakeCeremony:
    return FakeCeremony()


@pytest.fixture
def timeout_scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def dispatcher(session, sender) -> NotificationDispatcher:
    return NotificationDispatcher(session, sender)


@pytest.fixture
def coordinator(session, pending_store, dispatcher, timeout_scheduler) -> ApprovalCoordinator:
    return ApprovalCoordinator(session, pending_store, dispatcher, timeout_scheduler)


# =============================================================================
# DATA HELPERS
# =============================================================================


async def make_family(
    session,
    number: str = "1234",
    surname: str = "Smith",
    default_limit: Decimal | None = Decimal("50.00"),
) -> Family:
    family = Family(
        number=number,
        surname=surname,
        surname_key=normalize_key(surname),
        default_limit=default_limit,
    )
    session.add(family)
    await session.commit()
    return family


async def make_vendor(
    session,
    vendor_id: str = "corner-shop",
    name: str = "Corner Shop",
    requires_approval: bool = False,
    user: User | None = None,
) -> Vendor:
    vendor = Vendor(
        id=vendor_id,
        name=name,
        category="grocery",
        requires_approval=requires_approval,
        user_id=user.id if user else None,
        created_at=utcnow(),
    )
    session.add(vendor)
    await session.commit()
    return vendor


async def make_user(session, username: str, family: Family | None = None) -> User:
    user = User(username=username, family_id=family.id if family else None)
    session.add(user)
    await session.commit()
    return user


async def add_device(session, user: User, endpoint: str, active: bool = True) -> PushSubscription:
    subscription = PushSubscription(
        user_id=user.id,
        endpoint=endpoint,
        p256dh_key="p256dh-key",
        auth_key="auth-key",
        is_active=active,
        created_at=utcnow(),
    )
    session.add(subscription)
    await session.commit()
    return subscription


async def set_vendor_limit(
    session,
    family: Family,
    vendor: Vendor,
    limit_amount: Decimal | None = None,
    require_approval: bool = False,
) -> VendorLimit:
    override = VendorLimit(
        family_id=family.id,
        vendor_id=vendor.id,
        limit_amount=limit_amount,
        require_approval=require_approval,
    )
    session.add(override)
    await session.commit()
    return override


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user.id, user.username)}"}


@pytest.fixture
async def family(session) -> Family:
    return await make_family(session)


@pytest.fixture
async def vendor(session) -> Vendor:
    return await make_vendor(session)


@pytest.fixture
async def parent(session, family) -> User:
    """A family member with two active devices."""
    user = await make_user(session, "parent", family)
    await add_device(session, user, "https://push.example.com/parent-phone")
    await add_device(session, user, "https://push.example.com/parent-laptop")
    return user


# =============================================================================
# API FIXTURES
# =============================================================================


@pytest.fixture
async def app(session_factory, redis, sender, ceremony, timeout_scheduler):
    from purchase_approval.main import app as fastapi_app

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = override_get_session
    fastapi_app.state.redis = redis
    fastapi_app.state.push_sender = sender
    fastapi_app.state.webauthn = ceremony
    fastapi_app.state.auto_approval = timeout_scheduler
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
