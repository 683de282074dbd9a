"""Webhook processing: from a raw provider delivery to at most one donation."""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..connectors.base import ConnectorBase
from ..credentials import CredentialService
from ..database import CustomerRepository, EventLogRepository, DEFAULT_PROVIDER
from ..encryption import SecretCodec
from ..errors import Unauthenticated
from ..schemas import DonationCreate
from ..services import DonationService
from .classifier import classify_event
from .extractor import PaymentDetailExtractor
from .models import EventDisposition, WebhookResult

logger = logging.getLogger(__name__)


class WebhookService:
    """Applies provider webhook deliveries to the donation ledger.

    Providers deliver at least once and in any order. The event log is the
    only deduplication: an event id already in the log is never applied
    again.
    """

    def __init__(self, session: AsyncSession, connector: ConnectorBase, codec: SecretCodec):
        self.session = session
        self.connector = connector
        self.credentials = CredentialService(session, codec)
        self.extractor = PaymentDetailExtractor(connector)
        self.event_log_repo = EventLogRepository(session)
        self.customer_repo = CustomerRepository(session)
        self.donations = DonationService(session)

    async def process(
        self,
        church_id: str,
        payload: bytes,
        signature_header: Optional[str],
    ) -> WebhookResult:
        """Verify, classify and apply one webhook delivery.

        Args:
            church_id: Church the webhook endpoint was registered for.
            payload: Raw request body, exactly as received.
            signature_header: Value of the provider signature header.

        Returns:
            WebhookResult describing what was done.

        Raises:
            Unauthenticated: The church has no gateway credentials.
            InvalidSignature: The payload failed verification.
            UnrecognizedEventShape: The event is missing data the ledger needs.
            ProviderError: A supplementary provider lookup failed.
        """
        keys = await self.credentials.resolve(church_id)
        if keys is None:
            raise Unauthenticated(f"Church {church_id} has no payment gateway")

        event = await asyncio.to_thread(
            self.connector.verify_signature,
            keys.secret_key,
            payload,
            signature_header,
            keys.webhook_key,
        )
        classified = classify_event(event)
        result = WebhookResult(
            event_id=event.id,
            event_type=event.type,
            disposition=classified.disposition,
        )

        if classified.disposition is EventDisposition.IGNORE:
            logger.info(f"Ignoring {event.type} event {event.id} for church {church_id}")
            return result

        if await self.event_log_repo.load(church_id, event.id) is not None:
            logger.warning(f"Duplicate delivery of event {event.id} for church {church_id}")
            result.duplicate = True
            return result

        # Extract before logging so a malformed event stays unlogged and the
        # provider's redelivery can retry it
        details = None
        if classified.disposition is EventDisposition.LOG_AND_DONATE:
            details = await self.extractor.extract(classified, keys.secret_key)

        _, created = await self.event_log_repo.record_if_new(
            church_id=church_id,
            provider_event_id=event.id,
            event_type=event.type,
            created=classified.occurred_at,
            customer_id=classified.customer_id,
            status=classified.status,
            message=classified.message,
            provider=DEFAULT_PROVIDER,
        )
        if not created:
            logger.warning(f"Duplicate delivery of event {event.id} for church {church_id}")
            result.duplicate = True
            return result
        result.logged = True

        if details is None:
            logger.info(f"Logged subscription charge event {event.id} without a donation")
            return result

        customer = await self.customer_repo.load(church_id, classified.customer_id)
        if customer is None:
            logger.warning(
                f"No person found for customer {classified.customer_id} in church {church_id}"
            )

        funds = await self.donations.resolve_funds(
            church_id, classified.funds_metadata, classified.subscription_id
        )
        donation, _ = await self.donations.log_donation(
            DonationCreate(
                church_id=church_id,
                amount=classified.amount,
                donation_date=classified.occurred_at,
                person_id=customer.person_id if customer else None,
                method=details.method,
                method_details=details.method_details,
            ),
            funds,
            enforce_total=False,
        )
        result.donation_id = donation.id
        return result
