"""Models for classified provider webhook events."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


class EventType(str, enum.Enum):
    """Provider event types the pipeline acts on."""
    CHARGE_SUCCEEDED = "charge.succeeded"
    INVOICE_PAID = "invoice.paid"

    @classmethod
    def parse(cls, value: str) -> Optional["EventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class EventDisposition(str, enum.Enum):
    """What the pipeline does with a verified event."""
    IGNORE = "ignore"
    LOG_ONLY = "log_only"
    LOG_AND_DONATE = "log_and_donate"


class PaymentMethodType(str, enum.Enum):
    """Provider payment method type codes with a ledger label."""
    CARD = "card"
    ACH_DEBIT = "ach_debit"

    @property
    def label(self) -> str:
        return PAYMENT_METHOD_LABELS[self]


PAYMENT_METHOD_LABELS: Dict[PaymentMethodType, str] = {
    PaymentMethodType.CARD: "Card",
    PaymentMethodType.ACH_DEBIT: "ACH Debit",
}


class ClassifiedEvent(BaseModel):
    """A verified event reduced to the fields the ledger needs."""
    event_id: str
    event_type: str
    recognized_type: Optional[EventType] = None
    disposition: EventDisposition
    occurred_at: datetime
    amount: Optional[Decimal] = Field(None, description="Major currency units")
    customer_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    subscription_id: Optional[str] = None
    charge_id: Optional[str] = None
    funds_metadata: Optional[str] = Field(None, description="JSON list of {id, amount}")
    payment_method_details: Optional[Dict[str, Any]] = None


class PaymentDetails(BaseModel):
    """Normalized payment method of a donation."""
    method_type: PaymentMethodType
    method_details: str

    @property
    def method(self) -> str:
        return self.method_type.label


class WebhookResult(BaseModel):
    """Outcome of processing one webhook delivery."""
    event_id: str
    event_type: str
    disposition: EventDisposition
    logged: bool = False
    duplicate: bool = False
    donation_id: Optional[str] = None
