"""Tests for API endpoints."""

import os
import time
import pytest
import jwt
from unittest.mock import patch
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from donations_sdk.api import app, get_connectors, get_db, get_secret_codec
from donations_sdk.database import Donation, EventLog
from donations_sdk.errors import ProviderError

from conftest import CHURCH_ID, OTHER_CHURCH_ID, SECRET_KEY, card_charge, make_event, sign_payload


def token(**claims) -> str:
    payload = {"church_id": CHURCH_ID, "person_id": "person-1", "permissions": ["donations.edit"]}
    payload.update(claims)
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
async def client(session_factory, codec, connector):
    """Async client with the database, codec and connectors overridden."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_secret_codec] = lambda: codec
    app.dependency_overrides[get_connectors] = lambda: {"stripe": connector}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {token()}"}


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestWebhookEndpoint:
    """Tests for POST /donate/webhook/{provider}."""

    async def test_accepted_event(self, client, church, session_factory):
        payload = make_event("evt_1", "charge.succeeded", card_charge())

        response = await client.post(
            f"/donate/webhook/stripe?churchId={CHURCH_ID}",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload)},
        )

        assert response.status_code == 200
        assert response.json() == {}
        assert await count(session_factory, Donation) == 1

    async def test_duplicate_event_is_acknowledged(self, client, church, session_factory):
        payload = make_event("evt_1", "charge.succeeded", card_charge())
        for _ in range(2):
            response = await client.post(
                f"/donate/webhook/stripe?churchId={CHURCH_ID}",
                content=payload,
                headers={"Stripe-Signature": sign_payload(payload)},
            )
            assert response.status_code == 200

        assert await count(session_factory, Donation) == 1
        assert await count(session_factory, EventLog) == 1

    async def test_ignored_event_is_acknowledged(self, client, church, session_factory):
        payload = make_event("evt_2", "payout.paid", {"id": "po_1", "created": 1700000000})

        response = await client.post(
            f"/donate/webhook/stripe?churchId={CHURCH_ID}",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload)},
        )

        assert response.status_code == 200
        assert await count(session_factory, EventLog) == 0

    async def test_bad_signature(self, client, church, session_factory):
        payload = make_event("evt_1", "charge.succeeded", card_charge())

        response = await client.post(
            f"/donate/webhook/stripe?churchId={CHURCH_ID}",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret="whsec_wrong")},
        )

        assert response.status_code == 401
        assert await count(session_factory, EventLog) == 0
        assert await count(session_factory, Donation) == 0

    async def test_church_without_gateway(self, client, church):
        payload = make_event("evt_1", "charge.succeeded", card_charge())

        response = await client.post(
            f"/donate/webhook/stripe?churchId={OTHER_CHURCH_ID}",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload)},
        )

        assert response.status_code == 401

    async def test_unsupported_provider(self, client, church):
        response = await client.post(
            f"/donate/webhook/paypal?churchId={CHURCH_ID}",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=x"},
        )

        assert response.status_code == 400

    async def test_failure_after_logging_rolls_back(self, client, church, session_factory):
        payload = make_event("evt_3", "charge.succeeded", card_charge(metadata={"funds": "not json"}))

        response = await client.post(
            f"/donate/webhook/stripe?churchId={CHURCH_ID}",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload)},
        )

        assert response.status_code == 500
        assert response.json() == {"detail": "Webhook processing failed"}
        assert "4242" not in response.text
        assert await count(session_factory, EventLog) == 0
        assert await count(session_factory, Donation) == 0

    async def test_failed_commit_is_not_acknowledged(self, client, church, session_factory):
        payload = make_event("evt_4", "charge.succeeded", card_charge())
        error = OperationalError("COMMIT", {}, Exception("disk I/O error"))

        with patch.object(AsyncSession, "commit", side_effect=error):
            response = await client.post(
                f"/donate/webhook/stripe?churchId={CHURCH_ID}",
                content=payload,
                headers={"Stripe-Signature": sign_payload(payload)},
            )

        assert response.status_code == 500
        assert response.json() == {"detail": "Webhook processing failed"}
        assert await count(session_factory, EventLog) == 0
        assert await count(session_factory, Donation) == 0


class TestLogEndpoint:
    """Tests for POST /donate/log."""

    def _body(self, amount="20.00"):
        return {
            "donation": {
                "church_id": CHURCH_ID,
                "amount": "20.00",
                "donation_date": "2024-03-10T15:00:00+00:00",
                "person_id": "person-1",
                "method": "Check",
                "method_details": "1001",
            },
            "fundData": {"id": "fund-general", "amount": amount},
        }

    async def test_log_donation(self, client, church, session_factory):
        response = await client.post(
            "/donate/log", json=self._body(), headers={"X-Gateway-Secret": SECRET_KEY}
        )

        assert response.status_code == 200
        funds = response.json()
        assert funds[0]["fund_id"] == "fund-general"
        assert funds[0]["amount"] == "20.00"
        assert await count(session_factory, Donation) == 1

    async def test_wrong_secret(self, client, church, session_factory):
        response = await client.post(
            "/donate/log", json=self._body(), headers={"X-Gateway-Secret": "sk_test_wrong"}
        )

        assert response.status_code == 401
        assert await count(session_factory, Donation) == 0

    async def test_mismatched_fund(self, client, church):
        response = await client.post(
            "/donate/log", json=self._body(amount="5.00"), headers={"X-Gateway-Secret": SECRET_KEY}
        )

        assert response.status_code == 400


class TestChargeEndpoint:
    """Tests for POST /donate/charge."""

    def _body(self):
        return {
            "id": "pm_1",
            "type": "card",
            "amount": "50.00",
            "customer_id": "cus_1",
            "funds": [{"id": "fund-general", "amount": "50.00"}],
        }

    async def test_charge(self, client, church, connector, auth_headers):
        response = await client.post("/donate/charge", json=self._body(), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["id"] == "pi_1"
        assert connector.charge_requests[0].amount == 5000

    async def test_missing_token(self, client, church, connector):
        response = await client.post("/donate/charge", json=self._body())

        assert response.status_code == 401
        assert connector.charge_requests == []

    async def test_missing_permission(self, client, church, connector):
        headers = {"Authorization": f"Bearer {token(permissions=[])}"}

        response = await client.post("/donate/charge", json=self._body(), headers=headers)

        assert response.status_code == 401

    async def test_expired_token(self, client, church):
        headers = {"Authorization": f"Bearer {token(exp=int(time.time()) - 60)}"}

        response = await client.post("/donate/charge", json=self._body(), headers=headers)

        assert response.status_code == 401

    async def test_token_signed_with_other_secret(self, client, church):
        forged = jwt.encode({"church_id": CHURCH_ID, "permissions": ["donations.edit"]}, "not_the_secret", algorithm="HS256")

        response = await client.post(
            "/donate/charge", json=self._body(), headers={"Authorization": f"Bearer {forged}"}
        )

        assert response.status_code == 401

    async def test_provider_error(self, client, church, connector, auth_headers):
        connector.error = ProviderError("Your card was declined.", code="card_declined")

        response = await client.post("/donate/charge", json=self._body(), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Your card was declined."

    async def test_church_without_gateway(self, client, church):
        headers = {"Authorization": f"Bearer {token(church_id=OTHER_CHURCH_ID)}"}

        response = await client.post("/donate/charge", json=self._body(), headers=headers)

        assert response.status_code == 401


class TestSubscribeEndpoint:
    """Tests for POST /donate/subscribe."""

    async def test_subscribe_defaults_person_to_principal(self, client, church, auth_headers):
        response = await client.post(
            "/donate/subscribe",
            json={
                "id": "pm_1",
                "amount": "25",
                "customer_id": "cus_1",
                "funds": [{"id": "fund-general", "amount": "25"}],
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["subscription"]["id"] == "sub_1"
        assert data["subscription"]["person_id"] == "person-1"
        assert data["funds"][0]["amount"] == "25.00"

    async def test_mismatched_funds(self, client, church, auth_headers):
        response = await client.post(
            "/donate/subscribe",
            json={
                "id": "pm_1",
                "amount": "25",
                "customer_id": "cus_1",
                "funds": [{"id": "fund-general", "amount": "20"}],
            },
            headers=auth_headers,
        )

        assert response.status_code == 400


class TestHealthEndpoint:
    """Tests for GET /health."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "connectors": [{"ok": True, "provider": "stripe"}]}
