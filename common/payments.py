"""Payment intent creation against the processor (Stripe)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Protocol

import stripe
from circuitbreaker import CircuitBreakerError, circuit

from .config import get_settings
from .errors import ConfigurationError, UpstreamError, ValidationError
from .tokens import mint_capability_token

logger = logging.getLogger(__name__)

# Currencies Stripe expresses without a minor unit.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"}
)


def idempotency_key_for(booking_id: str) -> str:
    return f"booking:{booking_id}"


def from_minor_units(amount: int, currency: str) -> Decimal:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class ProcessorIntent:
    id: str
    client_handle: str


@dataclass(frozen=True)
class IntentResult:
    intent_id: str
    processor_handle: str
    capability_token: str


class PaymentProcessor(Protocol):
    def create_intent(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
    ) -> ProcessorIntent:
        ...


def _translate_stripe_error(exc: stripe.StripeError) -> Exception:
    """Map Stripe SDK errors onto the core error taxonomy."""

    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        return ConfigurationError("Payment processor credentials are invalid or unauthorized")
    if isinstance(exc, (stripe.RateLimitError, stripe.APIConnectionError, stripe.APIError)):
        return UpstreamError("Temporary payment processor error, please retry")
    if isinstance(exc, stripe.IdempotencyError):
        return UpstreamError("Payment intent parameters changed for this booking", retryable=False)
    return UpstreamError(exc.user_message or "Payment processor rejected the request", retryable=False)


@circuit(failure_threshold=5, recovery_timeout=30, expected_exception=stripe.APIConnectionError)
def _create_stripe_intent(client: stripe.StripeClient, params: dict, idempotency_key: str):
    return client.payment_intents.create(params=params, options={"idempotency_key": idempotency_key})


class StripeProcessor:
    def __init__(self, api_key: Optional[str], timeout: float) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise ConfigurationError("Stripe secret key is not configured")
        if not api_key.startswith(("sk_test_", "sk_live_", "rk_test_", "rk_live_")):
            logger.warning("Stripe secret key does not carry a recognised prefix")
        self._client = stripe.StripeClient(api_key, http_client=stripe.RequestsClient(timeout=timeout))

    def create_intent(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
    ) -> ProcessorIntent:
        params = {
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_email:
            params["receipt_email"] = customer_email
        try:
            intent = _create_stripe_intent(self._client, params, idempotency_key)
        except CircuitBreakerError as exc:
            raise UpstreamError("Payment processor temporarily unavailable") from exc
        except stripe.StripeError as exc:
            logger.error("Stripe intent creation failed: %s", exc)
            raise _translate_stripe_error(exc) from exc
        return ProcessorIntent(id=intent.id, client_handle=intent.client_secret)


def get_stripe_processor() -> StripeProcessor:
    settings = get_settings()
    return StripeProcessor(settings.stripe_secret_key, settings.stripe_timeout_seconds)


class IntentBroker:
    """Creates or reuses one processor intent per booking and mints its mark-paid token."""

    def __init__(self, processor: PaymentProcessor, default_currency: Optional[str] = None) -> None:
        self.processor = processor
        self.default_currency = default_currency or get_settings().default_currency

    def create(
        self,
        booking_id: str,
        amount: int,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        customer_email: Optional[str] = None,
    ) -> IntentResult:
        if not booking_id or not str(booking_id).strip():
            raise ValidationError("bookingId is required")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive integer in minor currency units")

        token = mint_capability_token(booking_id)
        intent_metadata = {**(metadata or {}), "bookingId": booking_id}
        intent = self.processor.create_intent(
            amount,
            (currency or self.default_currency).lower(),
            idempotency_key_for(booking_id),
            intent_metadata,
            customer_email,
        )
        logger.info("Payment intent %s ready for booking %s", intent.id, booking_id)
        return IntentResult(intent_id=intent.id, processor_handle=intent.client_handle, capability_token=token)
