"""SQLAlchemy models for the donation ledger and webhook event log."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column


# Provider name stored on gateway, customer and event log rows
DEFAULT_PROVIDER = "stripe"


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Gateway(Base):
    """Payment provider credentials for a church. Keys are stored encrypted."""
    __tablename__ = "gateways"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_PROVIDER)
    public_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    private_key: Mapped[str] = mapped_column(Text, nullable=False)
    webhook_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("church_id", "provider", name="uq_gateways_church_provider"),
    )


class Customer(Base):
    """Maps a provider customer id to a person in the church directory."""
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_PROVIDER)


class EventLog(Base):
    """Append-only record of provider webhook events, one row per event id."""
    __tablename__ = "event_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_PROVIDER)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("church_id", "provider_event_id", name="uq_event_logs_church_event"),
        Index("ix_event_logs_church_created", "church_id", "created"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.provider_event_id,
            "church_id": self.church_id,
            "customer_id": self.customer_id,
            "provider": self.provider,
            "event_type": self.event_type,
            "status": self.status,
            "message": self.message,
            "created": _iso(self.created),
        }


class DonationBatch(Base):
    """Bucket that donations are attached to while it is open.

    ``current_key`` holds the church id while the batch is the church's
    current one and is cleared on close. The unique constraint on it allows
    at most one current batch per church.
    """
    __tablename__ = "donation_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    current_key: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    donations: Mapped[List["Donation"]] = relationship("Donation", back_populates="batch")

    @property
    def is_current(self) -> bool:
        return self.current_key is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "name": self.name,
            "batch_date": _iso(self.batch_date),
            "is_current": self.is_current,
            "closed_at": _iso(self.closed_at),
        }


class Donation(Base):
    """A single gift, in major currency units."""
    __tablename__ = "donations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("donation_batches.id"), nullable=False, index=True)
    person_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    donation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    method_details: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    batch: Mapped["DonationBatch"] = relationship("DonationBatch", back_populates="donations")
    fund_donations: Mapped[List["FundDonation"]] = relationship(
        "FundDonation",
        back_populates="donation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_donations_church_date", "church_id", "donation_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "batch_id": self.batch_id,
            "person_id": self.person_id,
            "donation_date": _iso(self.donation_date),
            "amount": _money(self.amount),
            "method": self.method,
            "method_details": self.method_details,
            "notes": self.notes,
        }


class FundDonation(Base):
    """Portion of a donation attributed to one fund."""
    __tablename__ = "fund_donations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False)
    donation_id: Mapped[str] = mapped_column(String(36), ForeignKey("donations.id"), nullable=False, index=True)
    fund_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    donation: Mapped["Donation"] = relationship("Donation", back_populates="fund_donations")

    __table_args__ = (
        UniqueConstraint("donation_id", "fund_id", name="uq_fund_donations_donation_fund"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "donation_id": self.donation_id,
            "fund_id": self.fund_id,
            "amount": _money(self.amount),
        }


class Subscription(Base):
    """Recurring gift created through the provider; id is the provider's."""
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    funds: Mapped[List["SubscriptionFund"]] = relationship(
        "SubscriptionFund",
        back_populates="subscription",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "person_id": self.person_id,
            "customer_id": self.customer_id,
        }


class SubscriptionFund(Base):
    """Per-fund split of each recurring subscription payment."""
    __tablename__ = "subscription_funds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    church_id: Mapped[str] = mapped_column(String(36), nullable=False)
    subscription_id: Mapped[str] = mapped_column(String(255), ForeignKey("subscriptions.id"), nullable=False, index=True)
    fund_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    subscription: Mapped["Subscription"] = relationship("Subscription", back_populates="funds")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "subscription_id": self.subscription_id,
            "fund_id": self.fund_id,
            "amount": _money(self.amount),
        }
