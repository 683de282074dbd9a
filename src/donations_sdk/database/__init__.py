"""Database module for donation ledger persistence."""

from .models import (
    DEFAULT_PROVIDER,
    Base,
    Gateway,
    Customer,
    EventLog,
    DonationBatch,
    Donation,
    FundDonation,
    Subscription,
    SubscriptionFund,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    get_db_context,
)
from .repository import (
    ONLINE_BATCH_NAME,
    GatewayRepository,
    CustomerRepository,
    EventLogRepository,
    DonationBatchRepository,
    DonationRepository,
    FundDonationRepository,
    SubscriptionRepository,
    SubscriptionFundRepository,
)

__all__ = [
    # Models
    "DEFAULT_PROVIDER",
    "Base",
    "Gateway",
    "Customer",
    "EventLog",
    "DonationBatch",
    "Donation",
    "FundDonation",
    "Subscription",
    "SubscriptionFund",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "get_db_context",
    # Repositories
    "ONLINE_BATCH_NAME",
    "GatewayRepository",
    "CustomerRepository",
    "EventLogRepository",
    "DonationBatchRepository",
    "DonationRepository",
    "FundDonationRepository",
    "SubscriptionRepository",
    "SubscriptionFundRepository",
]
