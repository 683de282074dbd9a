"""Provider webhook reconciliation.

Turns verified provider events into donations:
- classify the event and normalize its amount, time and message
- resolve the payment method, fetching the charge when the event omits it
- record the event once in the event log
- write the donation and its fund split into the current batch
"""

from .models import (
    EventType,
    EventDisposition,
    PaymentMethodType,
    PAYMENT_METHOD_LABELS,
    ClassifiedEvent,
    PaymentDetails,
    WebhookResult,
)
from .classifier import classify_event, build_event_message, is_subscription_charge
from .extractor import PaymentDetailExtractor, parse_payment_method_details
from .service import WebhookService

__all__ = [
    # Models
    "EventType",
    "EventDisposition",
    "PaymentMethodType",
    "PAYMENT_METHOD_LABELS",
    "ClassifiedEvent",
    "PaymentDetails",
    "WebhookResult",
    # Classification and extraction
    "classify_event",
    "build_event_message",
    "is_subscription_charge",
    "PaymentDetailExtractor",
    "parse_payment_method_details",
    # Service
    "WebhookService",
]
