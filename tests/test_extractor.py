"""Tests for payment method extraction."""

import pytest

from donations_sdk.connectors.base import ChargeDetail, ProviderEvent
from donations_sdk.errors import UnrecognizedEventShape, UnsupportedPaymentMethod
from donations_sdk.webhooks import (
    PAYMENT_METHOD_LABELS,
    PaymentDetailExtractor,
    PaymentMethodType,
    classify_event,
    parse_payment_method_details,
)

from conftest import SECRET_KEY, card_charge, paid_invoice


class TestParsePaymentMethodDetails:
    """Tests for mapping provider details to ledger methods."""

    def test_card(self):
        details = parse_payment_method_details({"type": "card", "card": {"last4": "4242"}})

        assert details.method == "Card"
        assert details.method_details == "4242"

    def test_ach_debit(self):
        details = parse_payment_method_details({"type": "ach_debit", "ach_debit": {"last4": "6789"}})

        assert details.method_type == PaymentMethodType.ACH_DEBIT
        assert details.method == "ACH Debit"
        assert details.method_details == "6789"

    def test_every_method_type_has_a_label(self):
        assert set(PAYMENT_METHOD_LABELS) == set(PaymentMethodType)

    @pytest.mark.parametrize("payment_type", ["sepa_debit", "us_bank_account", None])
    def test_unsupported_type(self, payment_type):
        with pytest.raises(UnsupportedPaymentMethod) as exc_info:
            parse_payment_method_details({"type": payment_type})
        assert exc_info.value.payment_type == payment_type

    def test_unsupported_is_an_unrecognized_shape(self):
        with pytest.raises(UnrecognizedEventShape):
            parse_payment_method_details({"type": "klarna", "klarna": {}})

    def test_missing_details(self):
        with pytest.raises(UnrecognizedEventShape):
            parse_payment_method_details(None)

    def test_missing_last4(self):
        with pytest.raises(UnrecognizedEventShape):
            parse_payment_method_details({"type": "card", "card": {"brand": "visa"}})


class TestPaymentDetailExtractor:
    """Tests for resolving details, fetching charges when needed."""

    async def test_uses_inline_details(self, connector):
        classified = classify_event(ProviderEvent(
            id="evt_1", type="charge.succeeded", created=1700000000, data_object=card_charge(),
        ))

        details = await PaymentDetailExtractor(connector).extract(classified, SECRET_KEY)

        assert details.method == "Card"
        assert details.method_details == "4242"

    async def test_fetches_charge_for_invoice(self, connector):
        connector.charges["ch_sub_1"] = ChargeDetail(
            id="ch_sub_1",
            payment_method_details={"type": "ach_debit", "ach_debit": {"last4": "6789"}},
        )
        classified = classify_event(ProviderEvent(
            id="evt_2", type="invoice.paid", created=1700000000, data_object=paid_invoice(),
        ))

        details = await PaymentDetailExtractor(connector).extract(classified, SECRET_KEY)

        assert details.method == "ACH Debit"
        assert details.method_details == "6789"

    async def test_invoice_without_charge_or_details(self, connector):
        classified = classify_event(ProviderEvent(
            id="evt_3", type="invoice.paid", created=1700000000, data_object=paid_invoice(charge=None),
        ))

        with pytest.raises(UnrecognizedEventShape):
            await PaymentDetailExtractor(connector).extract(classified, SECRET_KEY)
