"""
Тесты HTTP API: аккаунты, выплаты, админка, cron и health
"""
from datetime import datetime, timedelta

import pytest

from shared.database import Account, Product, Vendor
from referral_api import health

ADMIN_HEADERS = {"X-Admin-Key": "admin-key"}


async def register(api_client, account_id, full_name, referral_code=None):
    return await api_client.post("/accounts", json={
        "account_id": account_id,
        "full_name": full_name,
        "email": f"{account_id}@example.com",
        "referral_code": referral_code,
    })


class TestAccounts:

    @pytest.mark.asyncio
    async def test_register_and_stats(self, api_client):
        response = await register(api_client, "rita", "Rita")
        assert response.status_code == 201
        code = response.json()["referral_code"]

        response = await register(api_client, "alice", "Alice", referral_code=code)
        assert response.status_code == 201
        assert response.json()["referred_by_code"] == code

        response = await api_client.get("/accounts/rita/referrals")
        assert response.status_code == 200
        stats = response.json()
        assert stats["pending_referrals"] == [
            {"referred_account_id": "alice", "referred_full_name": "Alice"}
        ]
        assert stats["successful_referrals"] == []
        assert stats["referral_link"].endswith(f"?ref={code}")

    @pytest.mark.asyncio
    async def test_register_twice(self, api_client):
        await register(api_client, "rita", "Rita")
        response = await register(api_client, "rita", "Rita")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_register_validation(self, api_client):
        response = await api_client.post("/accounts", json={"account_id": "", "full_name": "X"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_account(self, api_client):
        assert (await api_client.get("/accounts/nobody/referrals")).status_code == 404
        assert (await api_client.post("/accounts/nobody/login")).status_code == 404

    @pytest.mark.asyncio
    async def test_login(self, api_client):
        await register(api_client, "rita", "Rita")
        response = await api_client.post("/accounts/rita/login")
        assert response.status_code == 204


class TestPayoutRoutes:

    async def seed(self, session_factory, balance=6000):
        async with session_factory() as session:
            session.add(Account(id="rita", full_name="Rita", referral_code="RITA0001", balance=balance))
            await session.commit()

    @pytest.mark.asyncio
    async def test_full_payout_flow(self, api_client, session_factory):
        await self.seed(session_factory)

        response = await api_client.put("/accounts/rita/bank-details", json={
            "bank_name": "GTBank", "account_number": "0123456789", "account_name": "Rita"
        })
        assert response.status_code == 200

        response = await api_client.post("/accounts/rita/payouts")
        assert response.status_code == 201
        payout = response.json()
        assert payout["amount"] == 6000
        assert payout["status"] == "pending"

        response = await api_client.get("/admin/payouts", params={"status_filter": "pending"}, headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [payout["id"]]

        response = await api_client.post(
            f"/admin/payouts/{payout['id']}/decision",
            json={"decision": "rejected", "reason": "Wrong account name"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

        response = await api_client.get("/accounts/rita/referrals")
        assert response.json()["balance"] == 6000

        response = await api_client.post(
            f"/admin/payouts/{payout['id']}/decision",
            json={"decision": "paid"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_bank_details(self, api_client, session_factory):
        await self.seed(session_factory)

        response = await api_client.put("/accounts/rita/bank-details", json={
            "bank_name": "GTBank", "account_number": "123", "account_name": "Rita"
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_payout_errors(self, api_client, session_factory):
        await self.seed(session_factory, balance=100)

        assert (await api_client.post("/accounts/rita/payouts")).status_code == 400
        assert (await api_client.post("/accounts/nobody/payouts")).status_code == 404

    @pytest.mark.asyncio
    async def test_admin_key_required(self, api_client):
        assert (await api_client.get("/admin/payouts")).status_code == 401
        response = await api_client.get("/admin/payouts", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_decision_for_unknown_request(self, api_client):
        response = await api_client.post(
            "/admin/payouts/missing/decision", json={"decision": "paid"}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 404


class TestCron:

    @pytest.mark.asyncio
    async def test_wrong_secret(self, api_client):
        response = await api_client.get("/api/cron", params={"secret": "nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_deletes_inactive_vendors(self, api_client, session_factory):
        stale = datetime.now() - timedelta(days=120)
        async with session_factory() as session:
            session.add_all([
                Account(id="old-vendor", full_name="Old", last_login=stale),
                Account(id="fresh", full_name="Fresh", last_login=datetime.now()),
            ])
            await session.flush()
            vendor = Vendor(account_id="old-vendor", name="Old Shop")
            session.add(vendor)
            await session.flush()
            session.add(Product(vendor_id=vendor.id, name="Lamp"))
            await session.commit()

        response = await api_client.get("/api/cron", params={"secret": "cron-secret"})

        assert response.status_code == 200
        assert response.json() == {
            "message": "Cron job executed successfully.",
            "deletedCount": 1,
            "errorCount": 0,
        }

        async with session_factory() as session:
            assert await session.get(Account, "old-vendor") is None
            assert await session.get(Account, "fresh") is not None


class TestHealth:

    @pytest.mark.asyncio
    async def test_basic(self, api_client):
        response = await api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_all_reports_unhealthy_service(self, api_client, monkeypatch):
        async def ok():
            return None

        async def down():
            raise ConnectionError("redis is down")

        monkeypatch.setattr(health, "_check_db", ok)
        monkeypatch.setattr(health, "_check_redis", down)

        response = await api_client.get("/health/all")

        assert response.status_code == 503
        body = response.json()
        assert body["services"]["postgresql"] == "healthy"
        assert body["services"]["redis"].startswith("unhealthy")

    @pytest.mark.asyncio
    async def test_redis_reports_retry_queue_depth(self, api_client, monkeypatch, fake_queue):
        async def ok():
            return None

        await fake_queue.enqueue({"recipient_id": "rita", "attempt": 2})
        monkeypatch.setattr(health, "_check_redis", ok)
        monkeypatch.setattr(health, "notification_retry_queue", fake_queue)

        response = await api_client.get("/health/redis")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "redis",
            "notification_retry_queue": 1,
        }
