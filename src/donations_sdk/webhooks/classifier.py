"""Classification and normalization of verified provider events."""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ..connectors.base import ProviderEvent
from ..errors import UnrecognizedEventShape
from ..schemas import to_major_units
from .models import ClassifiedEvent, EventDisposition, EventType

logger = logging.getLogger(__name__)


def _object_id(value: Any) -> Optional[str]:
    """Return the id of a reference that may be a bare id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def is_subscription_charge(data: Dict[str, Any]) -> bool:
    """Whether a charge was made by a subscription renewal.

    Renewals fire both ``charge.succeeded`` and ``invoice.paid``; only the
    invoice carries the subscription id, so the charge is the one to drop.
    """
    if data.get("subscription"):
        return True
    description = data.get("description") or ""
    return "subscription" in description.lower()


def build_event_message(data: Dict[str, Any]) -> Optional[str]:
    """Human-readable summary stored on the event log entry."""
    billing_reason = data.get("billing_reason")
    if billing_reason:
        return f"{billing_reason} {data.get('status')}"
    seller_message = (data.get("outcome") or {}).get("seller_message")
    failure_message = data.get("failure_message")
    if failure_message:
        return f"{failure_message} {seller_message}"
    return seller_message


def classify_event(event: ProviderEvent) -> ClassifiedEvent:
    """Decide what the ledger does with an event and normalize its fields.

    Raises:
        UnrecognizedEventShape: A recognized event lacks its amount or
            timestamp.
    """
    data = event.data_object
    event_type = EventType.parse(event.type)

    if event_type is None:
        disposition = EventDisposition.IGNORE
    elif event_type is EventType.CHARGE_SUCCEEDED and is_subscription_charge(data):
        disposition = EventDisposition.LOG_ONLY
    else:
        disposition = EventDisposition.LOG_AND_DONATE

    amount = None
    if event_type is not None:
        amount_field = "amount" if event_type is EventType.CHARGE_SUCCEEDED else "amount_paid"
        minor = data.get(amount_field)
        if minor is None:
            raise UnrecognizedEventShape(f"{event.type} event {event.id} has no {amount_field}")
        amount = to_major_units(minor)

    # Prefer the object's own creation time, falling back to the event's
    created = data.get("created") or event.created
    try:
        occurred_at = datetime.fromtimestamp(int(created), tz=timezone.utc)
    except (TypeError, ValueError) as e:
        raise UnrecognizedEventShape(f"Event {event.id} has an invalid timestamp") from e

    classified = ClassifiedEvent(
        event_id=event.id,
        event_type=event.type,
        recognized_type=event_type,
        disposition=disposition,
        occurred_at=occurred_at,
        amount=amount,
        customer_id=_object_id(data.get("customer")),
        status=data.get("status"),
        message=build_event_message(data),
        subscription_id=_object_id(data.get("subscription")),
        charge_id=_object_id(data.get("charge")),
        funds_metadata=(data.get("metadata") or {}).get("funds"),
        payment_method_details=data.get("payment_method_details"),
    )
    logger.debug(f"Classified {event.type} event {event.id} as {disposition.value}")
    return classified
