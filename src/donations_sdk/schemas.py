"""Pydantic models for donations entering the ledger."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Any, Literal

from pydantic import BaseModel, Field, field_validator

CENTS = Decimal("0.01")


def to_major_units(minor: int) -> Decimal:
    """Convert provider minor units (cents) to a currency amount."""
    return (Decimal(minor) / Decimal(100)).quantize(CENTS)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to provider minor units, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_money(value: Any) -> Any:
    # floats go through str() so 12.1 becomes Decimal("12.1"), not its binary expansion
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class FundAllocation(BaseModel):
    """Portion of a gift designated to one fund. ``id`` is the fund id."""
    id: str
    amount: Decimal

    @field_validator("id", mode="before")
    @classmethod
    def _fund_id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_money(cls, value: Any) -> Any:
        return _as_money(value)

    @field_validator("amount")
    @classmethod
    def _quantize(cls, value: Decimal) -> Decimal:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class DonationCreate(BaseModel):
    """A donation before it is attached to a batch."""
    church_id: str
    amount: Decimal = Field(..., gt=0)
    donation_date: datetime
    person_id: Optional[str] = None
    method: Optional[str] = None
    method_details: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_money(cls, value: Any) -> Any:
        return _as_money(value)

    @field_validator("amount")
    @classmethod
    def _quantize(cls, value: Decimal) -> Decimal:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class ChargeInstruction(BaseModel):
    """A one-time gift initiated by the church's own giving page."""
    id: str = Field(..., description="Payment method id (card) or source id (bank)")
    type: Literal["card", "bank"]
    amount: Decimal = Field(..., gt=0)
    customer_id: str
    currency: str = "usd"
    funds: List[FundAllocation] = Field(default_factory=list)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_money(cls, value: Any) -> Any:
        return _as_money(value)


class SubscriptionInterval(BaseModel):
    interval: Literal["day", "week", "month", "year"] = "month"
    interval_count: int = Field(1, ge=1)


class SubscriptionInstruction(BaseModel):
    """A recurring gift initiated by the church's own giving page."""
    id: str = Field(..., description="Payment method id (card) or source id (bank)")
    type: Literal["card", "bank"] = "card"
    amount: Decimal = Field(..., gt=0)
    customer_id: str
    person_id: Optional[str] = None
    currency: str = "usd"
    interval: SubscriptionInterval = Field(default_factory=SubscriptionInterval)
    proration_behavior: Optional[str] = None
    billing_cycle_anchor: Optional[int] = None
    funds: List[FundAllocation] = Field(default_factory=list)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_money(cls, value: Any) -> Any:
        return _as_money(value)


def total_of(funds: List[FundAllocation]) -> Decimal:
    return sum((f.amount for f in funds), Decimal("0.00"))
