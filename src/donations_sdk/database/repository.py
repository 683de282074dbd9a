"""Repository layer for the donation ledger.

Every query is scoped by ``church_id``; no method reads or writes rows that
belong to another church.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple, Iterable

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import PersistenceFailure
from .models import (
    DEFAULT_PROVIDER,
    Gateway,
    Customer,
    EventLog,
    DonationBatch,
    Donation,
    FundDonation,
    Subscription,
    SubscriptionFund,
)

logger = logging.getLogger(__name__)

ONLINE_BATCH_NAME = "Online Donations"


class _Repository:
    """Shared session handling for the ledger repositories."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def _flush(self, what: str) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist {what}: {e}")
            raise PersistenceFailure(f"Failed to persist {what}") from e


class GatewayRepository(_Repository):
    """Repository for tenant payment gateway credentials."""

    async def load_all(self, church_id: str) -> List[Gateway]:
        """Load a church's gateways, oldest first.

        Callers use the first entry as the authoritative credential set.
        """
        result = await self.session.execute(
            select(Gateway)
            .where(Gateway.church_id == church_id)
            .order_by(Gateway.created_at.asc(), Gateway.id.asc())
        )
        return list(result.scalars().all())

    async def save(self, gateway: Gateway) -> Gateway:
        self.session.add(gateway)
        await self._flush("gateway")
        logger.info(f"Saved {gateway.provider} gateway for church {gateway.church_id}")
        return gateway


class CustomerRepository(_Repository):
    """Repository for provider customer to person mappings."""

    async def load(self, church_id: str, customer_id: Optional[str]) -> Optional[Customer]:
        if not customer_id:
            return None
        result = await self.session.execute(
            select(Customer).where(
                and_(Customer.church_id == church_id, Customer.id == customer_id)
            )
        )
        return result.scalar_one_or_none()

    async def save(self, customer: Customer) -> Customer:
        self.session.add(customer)
        await self._flush("customer")
        return customer


class EventLogRepository(_Repository):
    """Idempotency ledger of provider webhook events."""

    async def load(self, church_id: str, provider_event_id: str) -> Optional[EventLog]:
        result = await self.session.execute(
            select(EventLog).where(
                and_(
                    EventLog.church_id == church_id,
                    EventLog.provider_event_id == provider_event_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def load_all(self, church_id: str) -> List[EventLog]:
        result = await self.session.execute(
            select(EventLog)
            .where(EventLog.church_id == church_id)
            .order_by(EventLog.created.desc())
        )
        return list(result.scalars().all())

    async def record_if_new(
        self,
        church_id: str,
        provider_event_id: str,
        event_type: str,
        created: datetime,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        message: Optional[str] = None,
        provider: str = DEFAULT_PROVIDER,
    ) -> Tuple[EventLog, bool]:
        """Insert an event log entry unless one already exists for the event id.

        Args:
            church_id: Owning church.
            provider_event_id: Provider-assigned event id.
            event_type: Provider event type, e.g. ``invoice.paid``.
            created: When the event occurred.
            customer_id: Provider customer id, if any.
            status: Provider status of the underlying object.
            message: Human-readable summary.
            provider: Provider name.

        Returns:
            Tuple of (EventLog, created). ``created`` is False when the event
            had already been recorded, including when a concurrent request
            inserted it first.
        """
        existing = await self.load(church_id, provider_event_id)
        if existing is not None:
            logger.info(f"Event {provider_event_id} already recorded for church {church_id}")
            return existing, False

        entry = EventLog(
            provider_event_id=provider_event_id,
            church_id=church_id,
            customer_id=customer_id,
            provider=provider,
            event_type=event_type,
            status=status,
            message=message,
            created=created,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
                await self.session.flush()
        except IntegrityError:
            existing = await self.load(church_id, provider_event_id)
            if existing is None:
                raise
            logger.info(f"Event {provider_event_id} recorded concurrently for church {church_id}")
            return existing, False
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to record event {provider_event_id}") from e

        logger.info(f"Recorded {event_type} event {provider_event_id} for church {church_id}")
        return entry, True


class DonationBatchRepository(_Repository):
    """Repository for donation batches."""

    async def load(self, church_id: str, batch_id: str) -> Optional[DonationBatch]:
        result = await self.session.execute(
            select(DonationBatch).where(
                and_(DonationBatch.church_id == church_id, DonationBatch.id == batch_id)
            )
        )
        return result.scalar_one_or_none()

    async def load_current(self, church_id: str) -> Optional[DonationBatch]:
        result = await self.session.execute(
            select(DonationBatch).where(
                and_(
                    DonationBatch.church_id == church_id,
                    DonationBatch.current_key == church_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_current(self, church_id: str) -> DonationBatch:
        """Return the church's current batch, opening one if none exists.

        The insert relies on the unique ``current_key`` column: when a
        concurrent request opens the batch first, the insert fails and the
        winner's batch is returned instead.
        """
        batch = await self.load_current(church_id)
        if batch is not None:
            return batch

        now = datetime.now(timezone.utc)
        batch = DonationBatch(
            church_id=church_id,
            name=f"{ONLINE_BATCH_NAME} {now.date().isoformat()}",
            batch_date=now,
            current_key=church_id,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(batch)
                await self.session.flush()
        except IntegrityError:
            winner = await self.load_current(church_id)
            if winner is None:
                raise
            logger.info(f"Using batch {winner.id} opened concurrently for church {church_id}")
            return winner
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to open a donation batch for church {church_id}") from e

        logger.info(f"Opened donation batch {batch.id} for church {church_id}")
        return batch

    async def close_current(self, church_id: str) -> Optional[DonationBatch]:
        """Close the church's current batch, if any."""
        batch = await self.load_current(church_id)
        if batch is None:
            return None
        batch.current_key = None
        batch.closed_at = datetime.now(timezone.utc)
        await self._flush("donation batch")
        logger.info(f"Closed donation batch {batch.id} for church {church_id}")
        return batch


class DonationRepository(_Repository):
    """Repository for donations."""

    async def save(self, donation: Donation) -> Donation:
        self.session.add(donation)
        await self._flush("donation")
        logger.info(
            f"Recorded donation {donation.id} of {donation.amount} "
            f"in batch {donation.batch_id} for church {donation.church_id}"
        )
        return donation

    async def load(self, church_id: str, donation_id: str) -> Optional[Donation]:
        result = await self.session.execute(
            select(Donation).where(
                and_(Donation.church_id == church_id, Donation.id == donation_id)
            )
        )
        return result.scalar_one_or_none()

    async def load_by_batch_id(self, church_id: str, batch_id: str) -> List[Donation]:
        result = await self.session.execute(
            select(Donation)
            .where(and_(Donation.church_id == church_id, Donation.batch_id == batch_id))
            .order_by(Donation.donation_date.asc())
        )
        return list(result.scalars().all())

    async def load_all(self, church_id: str) -> List[Donation]:
        result = await self.session.execute(
            select(Donation)
            .where(Donation.church_id == church_id)
            .order_by(Donation.donation_date.desc())
        )
        return list(result.scalars().all())


class FundDonationRepository(_Repository):
    """Repository for per-fund donation allocations."""

    async def save_all(
        self,
        church_id: str,
        donation_id: str,
        allocations: Iterable[Tuple[str, Decimal]],
    ) -> List[FundDonation]:
        """Persist all allocations of one donation in a single savepoint.

        Either every allocation is written or none is.
        """
        rows = [
            FundDonation(church_id=church_id, donation_id=donation_id, fund_id=fund_id, amount=amount)
            for fund_id, amount in allocations
        ]
        try:
            async with self.session.begin_nested():
                self.session.add_all(rows)
                await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist fund allocations for donation {donation_id}: {e}")
            raise PersistenceFailure(f"Failed to persist fund allocations for donation {donation_id}") from e
        return rows

    async def load_by_donation_id(self, church_id: str, donation_id: str) -> List[FundDonation]:
        result = await self.session.execute(
            select(FundDonation).where(
                and_(FundDonation.church_id == church_id, FundDonation.donation_id == donation_id)
            )
        )
        return list(result.scalars().all())


class SubscriptionRepository(_Repository):
    """Repository for recurring subscriptions."""

    async def save(self, subscription: Subscription) -> Subscription:
        self.session.add(subscription)
        await self._flush("subscription")
        logger.info(f"Saved subscription {subscription.id} for church {subscription.church_id}")
        return subscription

    async def load(self, church_id: str, subscription_id: str) -> Optional[Subscription]:
        result = await self.session.execute(
            select(Subscription).where(
                and_(Subscription.church_id == church_id, Subscription.id == subscription_id)
            )
        )
        return result.scalar_one_or_none()


class SubscriptionFundRepository(_Repository):
    """Repository for subscription fund splits."""

    async def save_all(
        self,
        church_id: str,
        subscription_id: str,
        allocations: Iterable[Tuple[str, Decimal]],
    ) -> List[SubscriptionFund]:
        rows = [
            SubscriptionFund(
                church_id=church_id,
                subscription_id=subscription_id,
                fund_id=fund_id,
                amount=amount,
            )
            for fund_id, amount in allocations
        ]
        self.session.add_all(rows)
        await self._flush(f"funds for subscription {subscription_id}")
        return rows

    async def load_by_subscription_id(
        self,
        church_id: str,
        subscription_id: Optional[str],
    ) -> List[SubscriptionFund]:
        if not subscription_id:
            return []
        result = await self.session.execute(
            select(SubscriptionFund).where(
                and_(
                    SubscriptionFund.church_id == church_id,
                    SubscriptionFund.subscription_id == subscription_id,
                )
            )
        )
        return list(result.scalars().all())
