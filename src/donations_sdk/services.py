"""Donation ledger and giving services."""

import json
import asyncio
import logging
import secrets
from collections import OrderedDict
from decimal import Decimal
from typing import Optional, List, Tuple

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from .connectors.base import ConnectorBase, ChargeRequest, ChargeResult, SubscriptionRequest
from .credentials import CredentialService, GatewayKeys
from .database import (
    Donation,
    FundDonation,
    Subscription,
    SubscriptionFund,
    DonationBatchRepository,
    DonationRepository,
    FundDonationRepository,
    SubscriptionRepository,
    SubscriptionFundRepository,
)
from .encryption import SecretCodec
from .errors import FundAllocationMismatch, Unauthenticated, UnrecognizedEventShape
from .schemas import (
    DonationCreate,
    FundAllocation,
    ChargeInstruction,
    SubscriptionInstruction,
    to_minor_units,
    total_of,
)

logger = logging.getLogger(__name__)

_fund_list = TypeAdapter(List[FundAllocation])


def merge_allocations(funds: List[FundAllocation]) -> List[FundAllocation]:
    """Combine allocations that name the same fund, keeping first-seen order."""
    merged: "OrderedDict[str, Decimal]" = OrderedDict()
    for fund in funds:
        merged[fund.id] = merged.get(fund.id, Decimal("0.00")) + fund.amount
    return [FundAllocation(id=fund_id, amount=amount) for fund_id, amount in merged.items()]


def check_allocation_total(amount: Decimal, funds: List[FundAllocation]) -> None:
    """Raise FundAllocationMismatch when non-empty allocations do not sum to amount."""
    if funds and total_of(funds) != amount:
        raise FundAllocationMismatch(
            f"Fund allocations total {total_of(funds)} but the donation is {amount}"
        )


def encode_funds_metadata(funds: List[FundAllocation]) -> str:
    """Serialize allocations into the provider metadata format read back by webhooks."""
    return json.dumps([{"id": f.id, "amount": str(f.amount)} for f in funds])


class DonationService:
    """Writes donations and their fund allocations into the current batch."""

    def __init__(self, session: AsyncSession):
        """Initialize the service with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session
        self.batch_repo = DonationBatchRepository(session)
        self.donation_repo = DonationRepository(session)
        self.fund_donation_repo = FundDonationRepository(session)
        self.subscription_fund_repo = SubscriptionFundRepository(session)

    async def log_donation(
        self,
        donation: DonationCreate,
        funds: List[FundAllocation],
        enforce_total: bool = True,
    ) -> Tuple[Donation, List[FundDonation]]:
        """Record a donation in the church's current batch.

        Args:
            donation: Donation to record; it must not carry a batch.
            funds: Fund allocations of the donation.
            enforce_total: Reject allocations that do not add up to the
                donation amount. When False a mismatch is only logged.

        Returns:
            Tuple of (Donation, persisted FundDonation rows).

        Raises:
            FundAllocationMismatch: Allocations do not add up and
                ``enforce_total`` is set.
        """
        funds = merge_allocations(funds)
        if enforce_total:
            check_allocation_total(donation.amount, funds)
        elif funds and total_of(funds) != donation.amount:
            logger.warning(
                f"Fund allocations total {total_of(funds)} for a donation of "
                f"{donation.amount} in church {donation.church_id}"
            )
        if not funds:
            logger.warning(f"Recording donation of {donation.amount} in church {donation.church_id} without fund allocations")

        batch = await self.batch_repo.get_or_create_current(donation.church_id)
        row = await self.donation_repo.save(
            Donation(
                church_id=donation.church_id,
                batch_id=batch.id,
                person_id=donation.person_id,
                donation_date=donation.donation_date,
                amount=donation.amount,
                method=donation.method,
                method_details=donation.method_details,
                notes=donation.notes,
            )
        )
        fund_rows = await self.fund_donation_repo.save_all(
            donation.church_id,
            row.id,
            [(f.id, f.amount) for f in funds],
        )
        return row, fund_rows

    async def resolve_funds(
        self,
        church_id: str,
        funds_metadata: Optional[str],
        subscription_id: Optional[str],
    ) -> List[FundAllocation]:
        """Work out how a provider payment is split across funds.

        Inline ``metadata.funds`` wins. Recurring payments carry no metadata,
        so their split is read from the stored subscription.

        Raises:
            UnrecognizedEventShape: ``funds_metadata`` is not a JSON list of
                ``{id, amount}`` objects.
        """
        if funds_metadata:
            try:
                return _fund_list.validate_python(json.loads(funds_metadata))
            except (ValueError, ValidationError) as e:
                raise UnrecognizedEventShape("Malformed funds metadata") from e

        stored = await self.subscription_fund_repo.load_by_subscription_id(church_id, subscription_id)
        if not stored and subscription_id:
            logger.warning(f"No stored funds for subscription {subscription_id} in church {church_id}")
        return [FundAllocation(id=sf.fund_id, amount=sf.amount) for sf in stored]


class GivingService:
    """Donor-initiated charges, subscriptions and offline donation logging."""

    def __init__(self, session: AsyncSession, connector: ConnectorBase, codec: SecretCodec):
        self.session = session
        self.connector = connector
        self.credentials = CredentialService(session, codec)
        self.donations = DonationService(session)
        self.subscription_repo = SubscriptionRepository(session)
        self.subscription_fund_repo = SubscriptionFundRepository(session)

    async def _require_keys(self, church_id: str) -> GatewayKeys:
        keys = await self.credentials.resolve(church_id)
        if keys is None:
            raise Unauthenticated(f"Church {church_id} has no payment gateway")
        return keys

    async def charge(self, church_id: str, instruction: ChargeInstruction) -> ChargeResult:
        """Charge a donor once.

        Nothing is written here: the provider's ``charge.succeeded`` webhook
        records the donation, using the funds carried in the charge metadata.
        """
        keys = await self._require_keys(church_id)
        check_allocation_total(instruction.amount, instruction.funds)

        request = ChargeRequest(
            amount=to_minor_units(instruction.amount),
            currency=instruction.currency,
            customer=instruction.customer_id,
            metadata={"funds": encode_funds_metadata(instruction.funds)},
        )
        if instruction.type == "card":
            request.payment_method = instruction.id
            request.confirm = True
            request.off_session = True
        else:
            request.source = instruction.id

        result = await asyncio.to_thread(self.connector.create_charge, keys.secret_key, request)
        logger.info(f"Created {instruction.type} charge {result.id} for church {church_id}")
        return result

    async def subscribe(
        self,
        church_id: str,
        instruction: SubscriptionInstruction,
    ) -> Tuple[Subscription, List[SubscriptionFund]]:
        """Create a recurring gift and store its fund split.

        The split is what later ``invoice.paid`` webhooks use to allocate
        each renewal.
        """
        keys = await self._require_keys(church_id)
        check_allocation_total(instruction.amount, instruction.funds)

        request = SubscriptionRequest(
            customer=instruction.customer_id,
            amount=to_minor_units(instruction.amount),
            currency=instruction.currency,
            product_id=keys.product_id,
            interval=instruction.interval.interval,
            interval_count=instruction.interval.interval_count,
            payment_method_id=instruction.id,
            payment_type=instruction.type,
            proration_behavior=instruction.proration_behavior,
            billing_cycle_anchor=instruction.billing_cycle_anchor,
        )
        result = await asyncio.to_thread(self.connector.create_subscription, keys.secret_key, request)

        subscription = await self.subscription_repo.save(
            Subscription(
                id=result.id,
                church_id=church_id,
                person_id=instruction.person_id,
                customer_id=instruction.customer_id,
            )
        )
        funds = await self.subscription_fund_repo.save_all(
            church_id,
            subscription.id,
            [(f.id, f.amount) for f in merge_allocations(instruction.funds)],
        )
        return subscription, funds

    async def log(
        self,
        presented_secret: Optional[str],
        donation: DonationCreate,
        fund: FundAllocation,
    ) -> Tuple[Donation, List[FundDonation]]:
        """Record a donation reported by an offline source.

        The caller authenticates by presenting the church's gateway secret key.
        """
        keys = await self.credentials.resolve(donation.church_id)
        if keys is None or not presented_secret or not secrets.compare_digest(
            presented_secret, keys.secret_key
        ):
            raise Unauthenticated(f"Invalid gateway secret for church {donation.church_id}")
        return await self.donations.log_donation(donation, [fund])
