import os
import json
import logging
from typing import Dict, Any, Optional

import stripe

from ..errors import InvalidSignature, ProviderError, UnrecognizedEventShape
from .base import (
    ConnectorBase,
    ProviderEvent,
    ChargeDetail,
    ChargeRequest,
    ChargeResult,
    SubscriptionRequest,
    SubscriptionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TOLERANCE = 300


def _provider_error(e: stripe.StripeError) -> ProviderError:
    message = getattr(e, "user_message", None) or str(e) or "Payment provider error"
    return ProviderError(message, code=getattr(e, "code", None))


class StripeConnector(ConnectorBase):
    """
    Stripe connector built on stripe-python. Tenants bring their own Stripe
    accounts, so the secret key is passed on every request instead of being
    set globally on the SDK.
    """

    name = "stripe"

    def __init__(self, tolerance: Optional[int] = None):
        self.tolerance = tolerance or int(
            os.getenv("STRIPE_WEBHOOK_TOLERANCE", str(DEFAULT_WEBHOOK_TOLERANCE))
        )

    def verify_signature(
        self,
        secret_key: str,
        payload: bytes,
        signature_header: Optional[str],
        webhook_secret: str,
    ) -> ProviderEvent:
        if not signature_header or not webhook_secret:
            raise InvalidSignature("Missing webhook signature or secret")
        try:
            # The HMAC covers the literal bytes, so verify before parsing
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature_header, webhook_secret, self.tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise InvalidSignature("Invalid webhook signature") from e

        try:
            data = json.loads(payload)
            return ProviderEvent(
                id=data["id"],
                type=data["type"],
                created=data["created"],
                data_object=data["data"]["object"],
            )
        except (ValueError, KeyError, TypeError) as e:
            raise UnrecognizedEventShape("Webhook body is not a Stripe event") from e

    def get_charge(self, secret_key: str, charge_id: str) -> ChargeDetail:
        try:
            charge = stripe.Charge.retrieve(charge_id, api_key=secret_key)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve charge {charge_id}: {e}")
            raise _provider_error(e) from e
        data: Dict[str, Any] = charge.to_dict()
        return ChargeDetail(
            id=data.get("id", charge_id),
            amount=data.get("amount"),
            status=data.get("status"),
            payment_method_details=data.get("payment_method_details"),
        )

    def create_charge(self, secret_key: str, request: ChargeRequest) -> ChargeResult:
        try:
            if request.payment_method:
                # Saved card, charged immediately without the donor present
                result = stripe.PaymentIntent.create(
                    amount=request.amount,
                    currency=request.currency.lower(),
                    customer=request.customer,
                    payment_method=request.payment_method,
                    confirm=request.confirm,
                    off_session=request.off_session,
                    metadata=request.metadata,
                    api_key=secret_key,
                )
            else:
                result = stripe.Charge.create(
                    amount=request.amount,
                    currency=request.currency.lower(),
                    customer=request.customer,
                    source=request.source,
                    metadata=request.metadata,
                    api_key=secret_key,
                )
        except stripe.StripeError as e:
            logger.warning(f"Stripe rejected charge for customer {request.customer}: {e}")
            raise _provider_error(e) from e

        return ChargeResult(
            id=result.id,
            status=result.status,
            amount=request.amount,
            raw_provider_response=result.to_dict(),
        )

    def create_subscription(self, secret_key: str, request: SubscriptionRequest) -> SubscriptionResult:
        params: Dict[str, Any] = {
            "customer": request.customer,
            "items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "product": request.product_id,
                        "unit_amount": request.amount,
                        "recurring": {
                            "interval": request.interval,
                            "interval_count": request.interval_count,
                        },
                    }
                }
            ],
            "metadata": request.metadata,
        }
        if request.payment_type == "card":
            params["default_payment_method"] = request.payment_method_id
        else:
            params["default_source"] = request.payment_method_id
        if request.proration_behavior:
            params["proration_behavior"] = request.proration_behavior
        if request.billing_cycle_anchor:
            params["billing_cycle_anchor"] = request.billing_cycle_anchor

        try:
            sub = stripe.Subscription.create(api_key=secret_key, **params)
        except stripe.StripeError as e:
            logger.warning(f"Stripe rejected subscription for customer {request.customer}: {e}")
            raise _provider_error(e) from e

        return SubscriptionResult(
            id=sub.id,
            status=sub.status,
            customer=request.customer,
            raw_provider_response=sub.to_dict(),
        )
