from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Literal
from pydantic import BaseModel, Field

# Canonical models exchanged with provider connectors. Amounts are integer
# minor units (cents), as providers report them.


class ProviderEvent(BaseModel):
    id: str
    type: str
    created: int  # unix seconds
    data_object: Dict[str, Any] = Field(default_factory=dict)


class ChargeDetail(BaseModel):
    id: str
    amount: Optional[int] = None
    status: Optional[str] = None
    payment_method_details: Optional[Dict[str, Any]] = None


class ChargeRequest(BaseModel):
    amount: int  # minor units
    currency: str = "usd"
    customer: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    # card payments
    payment_method: Optional[str] = None
    confirm: bool = False
    off_session: bool = False
    # bank payments
    source: Optional[str] = None


class ChargeResult(BaseModel):
    id: str
    status: str
    amount: Optional[int] = None
    raw_provider_response: Optional[Dict[str, Any]] = None


class SubscriptionRequest(BaseModel):
    customer: str
    amount: int  # minor units per interval
    currency: str = "usd"
    product_id: Optional[str] = None
    interval: Literal["day", "week", "month", "year"] = "month"
    interval_count: int = 1
    payment_method_id: str
    payment_type: Literal["card", "bank"] = "card"
    proration_behavior: Optional[str] = None
    billing_cycle_anchor: Optional[int] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class SubscriptionResult(BaseModel):
    id: str
    status: Optional[str] = None
    customer: Optional[str] = None
    raw_provider_response: Optional[Dict[str, Any]] = None


class ConnectorBase(ABC):
    """
    Provider connector interface. Every call takes the tenant's secret key
    explicitly; connectors hold no per-tenant state.
    """

    name: str = "base"

    @abstractmethod
    def verify_signature(
        self,
        secret_key: str,
        payload: bytes,
        signature_header: Optional[str],
        webhook_secret: str,
    ) -> ProviderEvent:
        """
        Verify a webhook over the exact raw bytes and return the parsed event.
        Raises InvalidSignature on any verification failure.
        """
        raise NotImplementedError

    @abstractmethod
    def get_charge(self, secret_key: str, charge_id: str) -> ChargeDetail:
        raise NotImplementedError

    @abstractmethod
    def create_charge(self, secret_key: str, request: ChargeRequest) -> ChargeResult:
        raise NotImplementedError

    @abstractmethod
    def create_subscription(self, secret_key: str, request: SubscriptionRequest) -> SubscriptionResult:
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": self.name}
