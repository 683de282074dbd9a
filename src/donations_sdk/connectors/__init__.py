"""Payment provider connectors."""

from typing import Dict

from .base import (
    ConnectorBase,
    ProviderEvent,
    ChargeDetail,
    ChargeRequest,
    ChargeResult,
    SubscriptionRequest,
    SubscriptionResult,
)
from .stripe_connector import StripeConnector

# Registry keyed by the provider segment of the webhook URL
CONNECTORS: Dict[str, ConnectorBase] = {
    "stripe": StripeConnector(),
}

__all__ = [
    "ConnectorBase",
    "ProviderEvent",
    "ChargeDetail",
    "ChargeRequest",
    "ChargeResult",
    "SubscriptionRequest",
    "SubscriptionResult",
    "StripeConnector",
    "CONNECTORS",
]
