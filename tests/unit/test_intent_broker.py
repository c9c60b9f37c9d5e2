"""Unit tests for idempotent intent creation."""
from decimal import Decimal

import pytest
import stripe

from common.errors import ConfigurationError, UpstreamError, ValidationError
from common.payments import (
    IntentBroker,
    StripeProcessor,
    _translate_stripe_error,
    from_minor_units,
    idempotency_key_for,
)
from common.tokens import verify_capability_token
from conftest import FakeProcessor


class TestIntentBroker:
    def test_create_returns_handle_and_scoped_token(self):
        processor = FakeProcessor()

        result = IntentBroker(processor).create("B1", 10000, "USD", {"source": "web"}, "guest@example.com")

        assert result.intent_id == "pi_0001"
        assert result.processor_handle == "pi_0001_secret_abc"
        assert verify_capability_token(result.capability_token, "B1").valid is True
        call = processor.calls[0]
        assert call["key"] == "booking:B1"
        assert call["currency"] == "usd"
        assert call["metadata"] == {"source": "web", "bookingId": "B1"}
        assert call["email"] == "guest@example.com"

    def test_repeated_creation_reuses_the_same_intent(self):
        processor = FakeProcessor()
        broker = IntentBroker(processor)

        first = broker.create("B1", 10000)
        second = broker.create("B1", 10000)

        assert first.intent_id == second.intent_id
        assert first.processor_handle == second.processor_handle
        assert len(processor.intents) == 1

    def test_caller_metadata_cannot_rebind_booking(self):
        processor = FakeProcessor()

        IntentBroker(processor).create("B1", 500, metadata={"bookingId": "B2"})

        assert processor.calls[0]["metadata"]["bookingId"] == "B1"

    def test_default_currency(self):
        processor = FakeProcessor()

        IntentBroker(processor, default_currency="eur").create("B1", 500)

        assert processor.calls[0]["currency"] == "eur"

    @pytest.mark.parametrize("amount", [0, -100, 10.5, "100", True, None])
    def test_rejects_invalid_amounts(self, amount):
        processor = FakeProcessor()

        with pytest.raises(ValidationError):
            IntentBroker(processor).create("B1", amount)
        assert processor.calls == []

    @pytest.mark.parametrize("booking_id", ["", "   ", None])
    def test_rejects_missing_booking(self, booking_id):
        processor = FakeProcessor()

        with pytest.raises(ValidationError):
            IntentBroker(processor).create(booking_id, 100)
        assert processor.calls == []

    def test_processor_errors_propagate(self):
        processor = FakeProcessor()
        processor.error = UpstreamError("processor down")

        with pytest.raises(UpstreamError):
            IntentBroker(processor).create("B1", 100)


class TestStripeErrorTranslation:
    def test_transient_errors_are_retryable(self):
        error = _translate_stripe_error(stripe.APIConnectionError("connection reset"))

        assert isinstance(error, UpstreamError)
        assert error.retryable is True

    def test_credential_errors_are_configuration_errors(self):
        assert isinstance(_translate_stripe_error(stripe.AuthenticationError("bad key")), ConfigurationError)

    def test_idempotency_conflicts_are_not_retryable(self):
        error = _translate_stripe_error(stripe.IdempotencyError("params changed"))

        assert isinstance(error, UpstreamError)
        assert error.retryable is False

    def test_missing_api_key_fails_fast(self):
        with pytest.raises(ConfigurationError):
            StripeProcessor(None, timeout=5)
        with pytest.raises(ConfigurationError):
            StripeProcessor("   ", timeout=5)


class TestMinorUnits:
    def test_two_decimal_currency(self):
        assert from_minor_units(9500, "usd") == Decimal("95.00")

    def test_zero_decimal_currency(self):
        assert from_minor_units(9500, "JPY") == Decimal("9500")

    def test_idempotency_key(self):
        assert idempotency_key_for("B1") == "booking:B1"
