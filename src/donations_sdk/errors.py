"""Exception hierarchy for the donation reconciliation pipeline."""

from typing import Optional


class DonationError(Exception):
    """Base class for all donation pipeline errors."""


class Unauthenticated(DonationError):
    """Tenant credentials are missing or the caller could not be authenticated."""


class InvalidSignature(Unauthenticated):
    """A webhook body failed provider signature verification."""


class UnrecognizedEventShape(DonationError):
    """A provider event is missing a field the pipeline depends on."""


class UnsupportedPaymentMethod(UnrecognizedEventShape):
    """The provider reported a payment method type with no display label."""

    def __init__(self, payment_type: Optional[str]):
        self.payment_type = payment_type
        super().__init__(f"Unsupported payment method type: {payment_type!r}")


class FundAllocationMismatch(DonationError):
    """Fund allocations do not add up to the donation amount."""


class ProviderError(DonationError):
    """The payment provider rejected a request.

    ``message`` is the provider's user-facing text and is only ever returned
    to the authenticated caller that initiated the request.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class PersistenceFailure(DonationError):
    """A repository write failed."""
