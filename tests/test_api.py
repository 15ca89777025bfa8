"""
End-to-end tests through the HTTP API.

Requests go through the real FastAPI app with the database session,
Redis client, push sender, WebAuthn ceremony and scheduler swapped for
test doubles.
"""

from decimal import Decimal

from sqlalchemy import select

from purchase_approval.models import (
    Authenticator,
    ResolutionSource,
    Transaction,
    TransactionStatus,
    Vendor,
)
from purchase_approval.services import TransactionLedger

from conftest import add_device, auth_headers, make_family, make_user, make_vendor


def purchase_body(amount, **overrides):
    body = {
        "number": "1234",
        "surname": "Smith",
        "amount": amount,
        "vendorId": "corner-shop",
        "childName": "Alex",
    }
    body.update(overrides)
    return body


async def fetch_transaction(session_factory, transaction_id) -> Transaction:
    async with session_factory() as session:
        return await TransactionLedger(session).get(transaction_id)


# =============================================================================
# TEST: PUBLIC PURCHASE FLOW
# =============================================================================


class TestPurchaseFlow:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_within_limit_is_approved(
        self, client, session_factory, redis, sender, family, vendor, parent
    ):
        response = await client.post("/purchase-request", json=purchase_body(30.00))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["approval_timeout"] is None

        stored = await fetch_transaction(session_factory, data["transaction_id"])
        assert stored.status == TransactionStatus.APPROVED
        assert stored.approved_at is not None
        assert await redis.keys("pending:*") == []
        assert sender.sent == []

    async def test_over_limit_goes_pending_and_notifies(
        self, client, session_factory, timeout_scheduler, sender, family, vendor, parent
    ):
        response = await client.post("/purchase-request", json=purchase_body(75.00))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["approval_timeout"] == 300

        stored = await fetch_transaction(session_factory, data["transaction_id"])
        assert stored.status == TransactionStatus.PENDING
        assert [str(t) for t in timeout_scheduler.armed] == [data["transaction_id"]]
        assert len(sender.of_type("transaction_approval")) == 2

    async def test_decline_then_not_found(self, client, session_factory, family, vendor, parent):
        submitted = (await client.post("/purchase-request", json=purchase_body(75.00))).json()

        response = await client.post("/approval-response", json={
            "transactionId": submitted["transaction_id"],
            "action": "decline",
            "reason": "too expensive",
        })
        assert response.status_code == 200
        assert response.json()["status"] == "declined"

        stored = await fetch_transaction(session_factory, submitted["transaction_id"])
        assert stored.status == TransactionStatus.DECLINED
        assert stored.decline_reason == "too expensive"

        again = await client.post("/approval-response", json={
            "transactionId": submitted["transaction_id"],
            "action": "approve",
        })
        assert again.status_code == 404
        assert again.json()["message"] == "Transaction not found or already processed"

    async def test_lost_race_reports_already_processed(
        self, client, session, family, vendor, parent
    ):
        submitted = (await client.post("/purchase-request", json=purchase_body(75.00))).json()
        # The timeout won on the ledger but the pending record is still there
        await TransactionLedger(session).resolve(
            submitted["transaction_id"], TransactionStatus.AUTO_APPROVED, ResolutionSource.TIMEOUT
        )
        await session.commit()

        response = await client.post("/approval-response", json={
            "transactionId": submitted["transaction_id"],
            "action": "approve",
        })

        assert response.status_code == 200
        assert response.json()["status"] == "already_processed"

    async def test_unknown_family(self, client, vendor):
        response = await client.post("/purchase-request", json=purchase_body(10.00))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_invalid_amount(self, client, family, vendor):
        response = await client.post("/purchase-request", json=purchase_body(-5))

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_too_many_decimals(self, client, family, vendor):
        response = await client.post("/purchase-request", json=purchase_body("10.005"))
        assert response.status_code == 400

    async def test_invalid_action(self, client):
        response = await client.post("/approval-response", json={
            "transactionId": "00000000-0000-0000-0000-000000000000",
            "action": "maybe",
        })
        assert response.status_code == 400

    async def test_non_uuid_transaction_id(self, client):
        response = await client.post("/approval-response", json={
            "transactionId": "not-a-uuid",
            "action": "approve",
        })
        assert response.status_code == 400


# =============================================================================
# TEST: AUTH
# =============================================================================


class TestAuthApi:
    async def test_register_login_me_logout(self, client):
        start = await client.post("/api/register/start", json={"username": "alice"})
        assert start.status_code == 200
        options = start.json()

        finish = await client.post("/api/register/finish", json={
            "userId": options["userId"],
            "response": {"id": "cred-1", "challenge": options["challenge"]},
        })
        assert finish.json() == {"verified": True}

        login_start = (await client.post("/api/login/start", json={"username": "alice"})).json()
        login = await client.post("/api/login/finish", json={
            "userId": login_start["userId"],
            "response": {"id": "cred-1", "challenge": login_start["challenge"]},
        })
        assert login.status_code == 200
        assert login.json()["verified"] is True

        set_cookie = login.headers["set-cookie"]
        assert set_cookie.startswith("session=")
        assert "HttpOnly" in set_cookie
        token = set_cookie.split(";", 1)[0].split("=", 1)[1]

        me = await client.get("/api/me", headers={"Cookie": f"session={token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "alice"
        assert me.json()["is_vendor"] is False

        logout = await client.post("/api/logout")
        assert logout.status_code == 200
        assert "Max-Age=0" in logout.headers["set-cookie"]

    async def test_duplicate_username(self, client, session):
        user = await make_user(session, "alice")
        session.add(Authenticator(user_id=user.id, credential_id="c", public_key=b"k", sign_count=0))
        await session.commit()

        response = await client.post("/api/register/start", json={"username": "alice"})
        assert response.status_code == 409

    async def test_me_requires_session(self, client):
        response = await client.get("/api/me")
        assert response.status_code == 401

    async def test_garbage_token(self, client):
        response = await client.get("/api/me", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401


# =============================================================================
# TEST: FAMILY
# =============================================================================


class TestFamilyApi:
    async def test_create_and_read_settings(self, client, session):
        user = await make_user(session, "newparent")

        created = await client.put(
            "/api/family/settings",
            json={"family_number": "555", "surname": "Brown"},
            headers=auth_headers(user),
        )
        assert created.status_code == 200
        assert created.json()["default_limit"] == 50.0

        read = await client.get("/api/family/settings", headers=auth_headers(user))
        assert read.json()["family_number"] == "555"
        assert read.json()["surname"] == "Brown"

    async def test_pair_owned_by_other_family_conflicts(self, client, session, family):
        user = await make_user(session, "stranger")

        response = await client.put(
            "/api/family/settings",
            json={"family_number": "1234", "surname": "smith"},
            headers=auth_headers(user),
        )
        assert response.status_code == 409

    async def test_limits_require_family(self, client, session):
        user = await make_user(session, "nofamily")

        response = await client.put(
            "/api/family/limits", json={"default_limit": 20}, headers=auth_headers(user)
        )
        assert response.status_code == 400

    async def test_update_limits_and_overrides(self, client, session, family, vendor, parent):
        response = await client.put(
            "/api/family/limits",
            json={
                "default_limit": 25,
                "vendor_limits": [
                    {"vendor_id": "corner-shop", "limit_amount": 5, "require_approval": False},
                ],
            },
            headers=auth_headers(parent),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["default_limit"] == 25.0
        assert data["vendor_limits"][0]["limit_amount"] == 5.0
        assert data["vendor_limits"][0]["vendor_name"] == "Corner Shop"

        purchase = await client.post("/purchase-request", json=purchase_body(6.00))
        assert purchase.json()["status"] == "pending"

        removed = await client.put(
            "/api/family/limits",
            json={
                "default_limit": 25,
                "vendor_limits": [
                    {"vendor_id": "corner-shop", "limit_amount": None, "require_approval": False},
                ],
            },
            headers=auth_headers(parent),
        )
        assert removed.json()["vendor_limits"] == []

    async def test_negative_limit_rejected(self, client, family, parent):
        response = await client.put(
            "/api/family/limits", json={"default_limit": -1}, headers=auth_headers(parent)
        )
        assert response.status_code == 400

    async def test_transactions(self, client, family, vendor, parent):
        await client.post("/purchase-request", json=purchase_body(10.00))
        await client.post("/purchase-request", json=purchase_body(90.00))

        response = await client.get("/api/family/transactions", headers=auth_headers(parent))

        assert response.status_code == 200
        transactions = response.json()["transactions"]
        assert len(transactions) == 2
        assert {t["status"] for t in transactions} == {"approved", "pending"}
        assert all(t["vendor_name"] == "Corner Shop" for t in transactions)


# =============================================================================
# TEST: INVITES
# =============================================================================


class TestInviteApi:
    async def test_invite_adds_device_to_family(self, client, family, parent):
        created = await client.post("/api/invite/create", headers=auth_headers(parent))
        assert created.status_code == 200
        token = created.json()["token"]
        assert created.json()["inviteUrl"].endswith(f"/invite?token={token}")

        validated = await client.get(f"/api/invite/validate/{token}")
        assert validated.json()["surname"] == "Smith"

        start = (await client.post("/api/invite/start", json={"token": token, "username": "grandpa"})).json()
        finish = await client.post("/api/invite/finish", json={
            "token": token,
            "response": {"id": "grandpa-cred", "challenge": start["challenge"]},
        })
        assert finish.status_code == 200
        assert finish.json()["user"]["family_number"] == "1234"
        assert "session=" in finish.headers["set-cookie"]

        me = await client.get("/api/me", headers={"Authorization": f"Bearer {finish.json()['token']}"})
        assert me.json()["surname"] == "Smith"

        reused = await client.get(f"/api/invite/validate/{token}")
        assert reused.status_code == 400


# =============================================================================
# TEST: VENDOR
# =============================================================================


class TestVendorApi:
    async def test_vendor_payment_flow(self, client, session, session_factory, family, parent):
        shopkeeper = await make_user(session, "shopkeeper")

        profile = await client.post(
            "/api/vendor/profile",
            json={"vendorId": "the-bakery", "name": "The Bakery", "category": "bakery"},
            headers=auth_headers(shopkeeper),
        )
        assert profile.status_code == 200
        assert profile.json()["id"] == "the-bakery"

        payment = await client.post(
            "/api/vendor/payment-request",
            json={"family_number": "1234", "surname": "Smith", "amount": 80, "childName": "Alex"},
            headers=auth_headers(shopkeeper),
        )
        assert payment.status_code == 200
        assert payment.json()["requires_approval"] is True

        history = await client.get(
            "/api/vendor/history", params={"vendorId": "the-bakery"}, headers=auth_headers(shopkeeper)
        )
        assert [t["status"] for t in history.json()["transactions"]] == ["pending"]
        assert history.json()["transactions"][0]["surname"] == "Smith"

        surname = await client.get("/api/vendor/surname/1234", headers=auth_headers(shopkeeper))
        assert surname.json()["surname"] == "Smith"

        info = await client.post(
            "/api/vendor/family-info", json={"family_number": "1234"}, headers=auth_headers(shopkeeper)
        )
        assert info.json() == {"surname": "Smith", "limit": 50.0}

    async def test_history_of_other_vendor_forbidden(self, client, session):
        shopkeeper = await make_user(session, "shopkeeper")
        await make_vendor(session, vendor_id="mine", name="Mine", user=shopkeeper)

        response = await client.get(
            "/api/vendor/history", params={"vendorId": "theirs"}, headers=auth_headers(shopkeeper)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_non_vendor_forbidden(self, client, parent):
        response = await client.get("/api/vendor/history", headers=auth_headers(parent))
        assert response.status_code == 403

    async def test_vendor_id_taken(self, client, session, vendor):
        user = await make_user(session, "copycat")

        response = await client.post(
            "/api/vendor/profile",
            json={"vendorId": "corner-shop", "name": "Another Shop"},
            headers=auth_headers(user),
        )
        assert response.status_code == 409

        taken = (await session.execute(select(Vendor).where(Vendor.id == "corner-shop"))).scalar_one()
        assert taken.name == "Corner Shop"

    async def test_family_info_unknown_number(self, client, session):
        shopkeeper = await make_user(session, "shopkeeper")
        await make_vendor(session, vendor_id="mine", name="Mine", user=shopkeeper)

        response = await client.post(
            "/api/vendor/family-info", json={"family_number": "4321"}, headers=auth_headers(shopkeeper)
        )
        assert response.status_code == 404


# =============================================================================
# TEST: PUSH
# =============================================================================


class TestPushApi:
    async def test_public_key(self, client):
        response = await client.get("/api/push/public-key")
        assert response.json() == {"publicKey": "test-vapid-public-key"}

    async def test_subscription_lifecycle(self, client, session):
        user = await make_user(session, "device-owner")
        subscription = {
            "endpoint": "https://push.example.com/new-device",
            "keys": {"p256dh": "p", "auth": "a"},
        }

        created = await client.post(
            "/api/push/subscribe",
            json={"subscription": subscription, "deviceName": "Phone"},
            headers=auth_headers(user),
        )
        assert created.status_code == 200
        subscription_id = created.json()["subscriptionId"]

        # Same endpoint again re-uses the row
        again = await client.post(
            "/api/push/subscribe", json={"subscription": subscription}, headers=auth_headers(user)
        )
        assert again.json()["subscriptionId"] == subscription_id

        listed = await client.get("/api/push/subscriptions", headers=auth_headers(user))
        assert [s["deviceName"] for s in listed.json()["subscriptions"]] == ["Phone"]

        removed = await client.request(
            "DELETE", "/api/push/subscribe",
            json={"subscriptionId": subscription_id}, headers=auth_headers(user),
        )
        assert removed.status_code == 200

        status = await client.get(f"/api/push/status/{subscription_id}", headers=auth_headers(user))
        assert status.json()["isActive"] is False

    async def test_subscription_requires_keys(self, client, session):
        user = await make_user(session, "device-owner")

        response = await client.post(
            "/api/push/subscribe",
            json={"subscription": {"endpoint": "https://push.example.com/x"}},
            headers=auth_headers(user),
        )
        assert response.status_code == 400

    async def test_status_of_someone_elses_subscription(self, client, session, parent):
        other = await make_user(session, "other")
        device = await add_device(session, parent, "https://push.example.com/private")

        response = await client.get(f"/api/push/status/{device.id}", headers=auth_headers(other))
        assert response.status_code == 404

    async def test_settings_round_trip(self, client, session):
        user = await make_user(session, "sleeper")

        for key, value in (("quiet_hours_start", "22:00"), ("quiet_hours_end", "08:00")):
            response = await client.put(
                "/api/push/settings",
                json={"settingKey": key, "settingValue": value},
                headers=auth_headers(user),
            )
            assert response.status_code == 200

        settings = await client.get("/api/push/settings", headers=auth_headers(user))
        assert settings.json()["settings"] == {"quiet_hours_start": "22:00", "quiet_hours_end": "08:00"}

    async def test_invalid_setting(self, client, session):
        user = await make_user(session, "sleeper")

        bad_time = await client.put(
            "/api/push/settings",
            json={"settingKey": "quiet_hours_start", "settingValue": "25:00"},
            headers=auth_headers(user),
        )
        unknown = await client.put(
            "/api/push/settings",
            json={"settingKey": "volume", "settingValue": "11"},
            headers=auth_headers(user),
        )
        assert bad_time.status_code == 400
        assert unknown.status_code == 400

    async def test_send_test(self, client, sender, parent):
        response = await client.post("/api/push/send-test", headers=auth_headers(parent))

        assert response.json() == {"success": True, "message": "Test notification sent to 2/2 devices"}
        assert len(sender.of_type("test")) == 2

    async def test_send_test_without_devices(self, client, session):
        user = await make_user(session, "deviceless")

        response = await client.post("/api/push/send-test", headers=auth_headers(user))
        assert response.status_code == 404

    async def test_respond_from_notification(
        self, client, session_factory, sender, family, vendor, parent
    ):
        submitted = (await client.post("/purchase-request", json=purchase_body(75.00))).json()

        response = await client.post(
            f"/api/push/respond/{submitted['transaction_id']}",
            json={"action": "approve"},
            headers=auth_headers(parent),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        stored = await fetch_transaction(session_factory, submitted["transaction_id"])
        assert stored.status == TransactionStatus.APPROVED
        assert stored.responded_by_user_id == parent.id
        assert len(sender.of_type("transaction_result")) == 2

    async def test_respond_for_other_family_is_not_found(self, client, session, family, vendor):
        other_family = await make_family(session, number="777", surname="Other", default_limit=Decimal("5.00"))
        outsider = await make_user(session, "outsider", other_family)
        submitted = (await client.post("/purchase-request", json=purchase_body(75.00))).json()

        response = await client.post(
            f"/api/push/respond/{submitted['transaction_id']}",
            json={"action": "approve"},
            headers=auth_headers(outsider),
        )
        assert response.status_code == 404
