# donations_sdk package
__version__ = "0.1.0"

from .database import (
    Gateway,
    Customer,
    EventLog,
    DonationBatch,
    Donation,
    FundDonation,
    Subscription,
    SubscriptionFund,
    init_db,
    close_db,
    get_db,
)
from .encryption import SecretCodec
from .errors import (
    DonationError,
    Unauthenticated,
    InvalidSignature,
    UnrecognizedEventShape,
    UnsupportedPaymentMethod,
    FundAllocationMismatch,
    ProviderError,
    PersistenceFailure,
)
from .schemas import DonationCreate, FundAllocation, ChargeInstruction, SubscriptionInstruction
from .services import DonationService, GivingService

# Webhook reconciliation exports
from .webhooks import (
    WebhookService,
    WebhookResult,
    EventType,
    EventDisposition,
    PaymentMethodType,
    classify_event,
)
