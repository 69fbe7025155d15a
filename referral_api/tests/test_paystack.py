"""
Тесты интеграции с Paystack: подпись, проверка транзакции, webhook
"""
import hashlib
import hmac
import json

import httpx
import pytest
from sqlalchemy import func, select

from shared.database import Account, Notification, Payment
from referral_api.services.payment_service import (
    PaymentService,
    PaystackClient,
    PaystackError,
    extract_account_id,
)

SECRET = "sk_test_secret"


def sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


def charge(reference="ref-1", account_id="alice", status="success"):
    return {
        "reference": reference,
        "status": status,
        "amount": 500000,
        "currency": "NGN",
        "gateway_response": "Successful" if status == "success" else "Declined",
        "metadata": {"account_id": account_id},
    }


async def seed_referral(session_factory):
    async with session_factory() as session:
        session.add_all([
            Account(id="rita", full_name="Rita", referral_code="RITA0001"),
            Account(id="alice", full_name="Alice", referral_code="ALICE001", referred_by_code="RITA0001"),
        ])
        await session.commit()


async def balance_of(session_factory, account_id):
    async with session_factory() as session:
        account = await session.get(Account, account_id)
        return account.balance


class TestPaystackClient:

    def test_signature(self):
        client = PaystackClient(secret_key=SECRET)
        body = b'{"event":"charge.success"}'

        assert client.verify_signature(body, sign(body)) is True
        assert client.verify_signature(body, sign(b"tampered")) is False
        assert client.verify_signature(body, None) is False

    def test_signature_without_secret(self):
        client = PaystackClient(secret_key="")
        body = b"{}"
        assert client.verify_signature(body, sign(body)) is False

    @pytest.mark.asyncio
    async def test_verify_transaction(self, paystack_client, paystack_transactions):
        paystack_transactions["ref-1"] = charge()

        data = await paystack_client.verify_transaction("ref-1")

        assert data["status"] == "success"
        assert data["metadata"]["account_id"] == "alice"

    @pytest.mark.asyncio
    async def test_verify_unknown_reference(self, paystack_client):
        with pytest.raises(PaystackError, match="not found"):
            await paystack_client.verify_transaction("missing")

    @pytest.mark.asyncio
    async def test_verify_sends_secret_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": True, "data": {"status": "success"}})

        client = PaystackClient(
            secret_key=SECRET,
            base_url="https://api.paystack.test",
            transport=httpx.MockTransport(handler)
        )
        await client.verify_transaction("ref/with space")

        assert seen["auth"] == f"Bearer {SECRET}"
        assert seen["path"].startswith("/transaction/verify/")

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = PaystackClient(
            secret_key=SECRET,
            base_url="https://api.paystack.test",
            transport=httpx.MockTransport(handler)
        )
        with pytest.raises(PaystackError):
            await client.verify_transaction("ref-1")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = PaystackClient(
            secret_key=SECRET,
            base_url="https://api.paystack.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway"))
        )
        with pytest.raises(PaystackError, match="Invalid JSON"):
            await client.verify_transaction("ref-1")


class TestExtractAccountId:

    def test_dict_metadata(self):
        assert extract_account_id({"metadata": {"account_id": "alice"}}) == "alice"
        assert extract_account_id({"metadata": {"uid": "bob"}}) == "bob"

    def test_string_metadata(self):
        assert extract_account_id({"metadata": json.dumps({"uid": "bob"})}) == "bob"
        assert extract_account_id({"metadata": "not json"}) is None

    def test_missing(self):
        assert extract_account_id({}) is None
        assert extract_account_id({"metadata": {"plan": "gold"}}) is None


class TestRecordPayment:

    @pytest.mark.asyncio
    async def test_record_is_idempotent(self, session):
        payment, processed_now = await PaymentService.record_verified_payment(session, "alice", charge())
        again, processed_again = await PaymentService.record_verified_payment(session, "alice", charge())

        assert processed_now is True
        assert processed_again is False
        assert again.id == payment.id
        assert payment.amount == 500000
        assert payment.raw_payload["reference"] == "ref-1"


class TestPaystackWebhook:

    async def post_event(self, api_client, payload, signature=None):
        body = json.dumps(payload).encode()
        return await api_client.post(
            "/webhook/paystack",
            content=body,
            headers={
                "content-type": "application/json",
                "x-paystack-signature": signature if signature is not None else sign(body),
            }
        )

    @pytest.mark.asyncio
    async def test_charge_success_credits_referral(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge()

        response = await self.post_event(api_client, {"event": "charge.success", "data": {"reference": "ref-1"}})

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert await balance_of(session_factory, "rita") == 1000
        assert await balance_of(session_factory, "alice") == 1000

        async with session_factory() as session:
            payments = await session.scalar(select(func.count()).select_from(Payment))
            notifications = await session.scalar(select(func.count()).select_from(Notification))
        assert payments == 1
        assert notifications == 2

    @pytest.mark.asyncio
    async def test_redelivery_does_not_double_credit(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge()
        event = {"event": "charge.success", "data": {"reference": "ref-1"}}

        await self.post_event(api_client, event)
        await self.post_event(api_client, event)

        assert await balance_of(session_factory, "rita") == 1000
        assert await balance_of(session_factory, "alice") == 1000

    @pytest.mark.asyncio
    async def test_bad_signature_is_ignored(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge()

        response = await self.post_event(
            api_client, {"event": "charge.success", "data": {"reference": "ref-1"}}, signature="forged"
        )

        assert response.status_code == 200
        assert await balance_of(session_factory, "rita") == 0

    @pytest.mark.asyncio
    async def test_other_events_are_ignored(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge()

        response = await self.post_event(api_client, {"event": "transfer.success", "data": {"reference": "ref-1"}})

        assert response.status_code == 200
        assert await balance_of(session_factory, "alice") == 0

    @pytest.mark.asyncio
    async def test_unverified_charge_is_not_credited(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge(status="failed")

        response = await self.post_event(api_client, {"event": "charge.success", "data": {"reference": "ref-1"}})

        assert response.status_code == 200
        assert response.json()["message"] == "verification_failed"
        assert await balance_of(session_factory, "alice") == 0


class TestVerifyEndpoint:

    @pytest.mark.asyncio
    async def test_reference_required(self, api_client):
        response = await api_client.get("/api/paystack/verify")

        assert response.status_code == 400
        assert response.json() == {"error": "Reference is required"}

    @pytest.mark.asyncio
    async def test_successful_payment(self, api_client, session_factory, paystack_transactions):
        await seed_referral(session_factory)
        paystack_transactions["ref-1"] = charge()

        response = await api_client.get("/api/paystack/verify", params={"reference": "ref-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["reference"] == "ref-1"
        assert body["referral"]["outcome"] == "credited"
        assert body["referral"]["referrer_id"] == "rita"
        assert await balance_of(session_factory, "alice") == 1000

    @pytest.mark.asyncio
    async def test_declined_payment(self, api_client, paystack_transactions):
        paystack_transactions["ref-2"] = charge(reference="ref-2", status="failed")

        response = await api_client.get("/api/paystack/verify", params={"reference": "ref-2"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Declined"}

    @pytest.mark.asyncio
    async def test_gateway_error(self, api_client):
        response = await api_client.get("/api/paystack/verify", params={"reference": "missing"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to verify transaction"}
