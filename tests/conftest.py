"""Shared test fixtures and configuration."""

import os
import hmac
import json
import time
import hashlib
import pytest
from typing import Dict, Any, List, Optional

from cryptography.fernet import Fernet

# Set up test environment variables before importing modules
os.environ.setdefault("GATEWAY_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from donations_sdk.connectors import StripeConnector
from donations_sdk.connectors.base import (
    ChargeDetail,
    ChargeRequest,
    ChargeResult,
    SubscriptionRequest,
    SubscriptionResult,
)
from donations_sdk.database import (
    Base,
    Customer,
    Gateway,
    create_async_engine,
    get_async_session_factory,
)
from donations_sdk.encryption import SecretCodec

CHURCH_ID = "church-1"
OTHER_CHURCH_ID = "church-2"
SECRET_KEY = "sk_test_church_1"
WEBHOOK_SECRET = "whsec_church_1"
PRODUCT_ID = "prod_giving"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_event(event_id: str, event_type: str, data_object: Dict[str, Any]) -> bytes:
    """Serialize a Stripe-shaped event envelope."""
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1700000000,
        "data": {"object": data_object},
    }).encode("utf-8")


def card_charge(**overrides) -> Dict[str, Any]:
    charge = {
        "id": "ch_1",
        "object": "charge",
        "amount": 5000,
        "created": 1700000000,
        "customer": "cus_1",
        "status": "succeeded",
        "description": None,
        "metadata": {"funds": json.dumps([{"id": "fund-general", "amount": 30}, {"id": "fund-missions", "amount": 20}])},
        "failure_message": None,
        "outcome": {"seller_message": "Payment complete."},
        "payment_method_details": {"type": "card", "card": {"last4": "4242", "brand": "visa"}},
    }
    charge.update(overrides)
    return charge


def paid_invoice(**overrides) -> Dict[str, Any]:
    invoice = {
        "id": "in_1",
        "object": "invoice",
        "amount_paid": 2500,
        "created": 1700000500,
        "customer": "cus_1",
        "status": "paid",
        "billing_reason": "subscription_cycle",
        "subscription": "sub_1",
        "charge": "ch_sub_1",
        "metadata": {},
    }
    invoice.update(overrides)
    return invoice


class FakeConnector(StripeConnector):
    """StripeConnector with real signature checks and canned provider calls."""

    def __init__(self):
        super().__init__(tolerance=300)
        self.charges: Dict[str, ChargeDetail] = {}
        self.charge_requests: List[ChargeRequest] = []
        self.subscription_requests: List[SubscriptionRequest] = []
        self.subscription_id = "sub_1"
        self.error: Optional[Exception] = None

    def get_charge(self, secret_key: str, charge_id: str) -> ChargeDetail:
        assert secret_key == SECRET_KEY
        return self.charges[charge_id]

    def create_charge(self, secret_key: str, request: ChargeRequest) -> ChargeResult:
        if self.error:
            raise self.error
        self.charge_requests.append(request)
        return ChargeResult(id="pi_1", status="succeeded", amount=request.amount)

    def create_subscription(self, secret_key: str, request: SubscriptionRequest) -> SubscriptionResult:
        if self.error:
            raise self.error
        self.subscription_requests.append(request)
        return SubscriptionResult(id=self.subscription_id, status="active", customer=request.customer)


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return get_async_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def church(db_session, codec):
    """A church with a Stripe gateway and one known customer."""
    db_session.add(Gateway(
        church_id=CHURCH_ID,
        provider="stripe",
        private_key=codec.encrypt(SECRET_KEY),
        webhook_key=codec.encrypt(WEBHOOK_SECRET),
        public_key=codec.encrypt("pk_test_church_1"),
        product_id=PRODUCT_ID,
    ))
    db_session.add(Customer(id="cus_1", church_id=CHURCH_ID, person_id="person-1"))
    await db_session.commit()
    return CHURCH_ID


@pytest.fixture
async def file_session_factory(tmp_path):
    """Session factory over a SQLite file, where each session has its own connection."""
    engine = create_async_engine(database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_async_session_factory(engine)
    await engine.dispose()
