"""Payment method extraction from provider event payloads."""

import asyncio
import logging
from typing import Optional, Dict, Any

from ..connectors.base import ConnectorBase
from ..errors import UnrecognizedEventShape, UnsupportedPaymentMethod
from .models import ClassifiedEvent, PaymentDetails, PaymentMethodType

logger = logging.getLogger(__name__)


def parse_payment_method_details(details: Optional[Dict[str, Any]]) -> PaymentDetails:
    """Map a provider ``payment_method_details`` object to a ledger method.

    Raises:
        UnsupportedPaymentMethod: The type has no ledger label.
        UnrecognizedEventShape: The details or the type's last4 are missing.
    """
    if not details:
        raise UnrecognizedEventShape("Payment method details are missing")

    payment_type = details.get("type")
    try:
        method_type = PaymentMethodType(payment_type)
    except ValueError as e:
        raise UnsupportedPaymentMethod(payment_type) from e

    last4 = (details.get(method_type.value) or {}).get("last4")
    if not last4:
        raise UnrecognizedEventShape(f"Payment method details for {payment_type} have no last4")
    return PaymentDetails(method_type=method_type, method_details=str(last4))


class PaymentDetailExtractor:
    """Resolves how a donation was paid.

    Invoice events carry a charge reference instead of payment method
    details, so the charge is fetched from the provider.
    """

    def __init__(self, connector: ConnectorBase):
        self.connector = connector

    async def extract(self, event: ClassifiedEvent, secret_key: str) -> PaymentDetails:
        details = event.payment_method_details
        if event.charge_id:
            logger.debug(f"Fetching charge {event.charge_id} for event {event.event_id}")
            charge = await asyncio.to_thread(self.connector.get_charge, secret_key, event.charge_id)
            details = charge.payment_method_details
        return parse_payment_method_details(details)
