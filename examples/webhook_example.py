"""
Local walkthrough of the webhook pipeline. Signs a sample charge.succeeded
event the way Stripe does and feeds it through WebhookService against an
in-memory database. No network calls are made: the card details are inline,
so no charge lookup is needed.
"""
import hashlib
import hmac
import json
import time
import asyncio

from donations_sdk.connectors import StripeConnector
from donations_sdk.database import (
    Base,
    Gateway,
    Customer,
    DonationRepository,
    GatewayRepository,
    CustomerRepository,
    create_async_engine,
    get_async_session_factory,
)
from donations_sdk.encryption import SecretCodec
from donations_sdk.webhooks import WebhookService

CHURCH_ID = "church-1"
WEBHOOK_SECRET = "whsec_example"


def sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def run():
    codec = SecretCodec(SecretCodec.generate_key())
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = get_async_session_factory(engine)

    async with session_factory() as session:
        await GatewayRepository(session).save(Gateway(
            church_id=CHURCH_ID,
            private_key=codec.encrypt("sk_test_example"),
            webhook_key=codec.encrypt(WEBHOOK_SECRET),
        ))
        await CustomerRepository(session).save(Customer(id="cus_1", church_id=CHURCH_ID, person_id="person-1"))
        await session.commit()

    payload = json.dumps({
        "id": "evt_example_1",
        "type": "charge.succeeded",
        "created": int(time.time()),
        "data": {"object": {
            "id": "ch_example_1",
            "amount": 5000,
            "created": int(time.time()),
            "customer": "cus_1",
            "status": "succeeded",
            "metadata": {"funds": json.dumps([{"id": "general", "amount": 30}, {"id": "missions", "amount": 20}])},
            "outcome": {"seller_message": "Payment complete."},
            "payment_method_details": {"type": "card", "card": {"last4": "4242"}},
        }},
    }).encode()

    async with session_factory() as session:
        service = WebhookService(session, StripeConnector(), codec)
        # Delivered twice: the second delivery is recognised as a duplicate
        for _ in range(2):
            result = await service.process(CHURCH_ID, payload, sign(payload, WEBHOOK_SECRET))
            print(f"Result: {result.model_dump_json()}")
        await session.commit()

        for donation in await DonationRepository(session).load_all(CHURCH_ID):
            print("Donation:", donation.to_dict())

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(run())
