"""Authoritative payment-state ingestion from processor webhooks."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from pydantic import ValidationError as SchemaError

from .errors import ConfigurationError, WebhookSignatureError
from .models import PaymentSource, PaymentStatus
from .payments import from_minor_units
from .reconciliation import PaymentUpdate, apply_payment_update
from .repository import BookingRepository
from .schemas import ProcessorEvent, ProcessorIntentObject

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CARD_PAYMENT_METHOD = "credit_card"


class WebhookIngestor:
    """Verifies processor events and applies them to bookings.

    Signature verification happens on the raw body before anything is parsed.
    Events that can never succeed (missing metadata, unknown booking) are
    logged and acknowledged so the processor stops redelivering them; store
    failures propagate as ``UpstreamError`` so it redelivers later.
    """

    def __init__(self, repo: BookingRepository, secret: Optional[str], tolerance: int = 300) -> None:
        self.repo = repo
        self.secret = secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature_header: Optional[str]) -> Optional[ProcessorEvent]:
        """Check the signature and parse the envelope. ``None`` means signed but unreadable."""

        if not self.secret:
            raise ConfigurationError("Webhook signing secret is not configured")
        if not signature_header:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, signature_header, self.secret, self.tolerance)
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise WebhookSignatureError("Invalid webhook signature") from exc

        try:
            return ProcessorEvent.model_validate_json(body)
        except SchemaError:
            logger.warning("Acknowledging malformed webhook envelope")
            return None

    def handle(self, event: ProcessorEvent) -> str:
        """Apply ``event``. Returns a short outcome label for logging."""

        if event.type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
            logger.debug("Ignoring webhook event %s of type %s", event.id, event.type)
            return "ignored"

        try:
            intent = ProcessorIntentObject.model_validate(event.data.object)
        except SchemaError:
            logger.warning("Acknowledging event %s with malformed payment intent", event.id)
            return "malformed"

        booking_id = intent.metadata.get("bookingId")
        if not booking_id:
            logger.warning("Event %s carries no bookingId metadata", event.id)
            return "malformed"

        booking = self.repo.get_by_id(booking_id)
        if booking is None:
            logger.warning("Event %s references unknown booking %s", event.id, booking_id)
            return "unknown_booking"

        event_at = datetime.fromtimestamp(event.created, tz=timezone.utc).replace(tzinfo=None)
        if event.type == PAYMENT_SUCCEEDED:
            captured = intent.amount_received if intent.amount_received is not None else intent.amount
            update = PaymentUpdate(
                source=PaymentSource.WEBHOOK,
                payment_status=PaymentStatus.PAID,
                paid_amount=from_minor_units(captured, intent.currency),
                payment_method=CARD_PAYMENT_METHOD,
                payment_intent_id=intent.id,
                event_at=event_at,
            )
        else:
            update = PaymentUpdate(
                source=PaymentSource.WEBHOOK,
                payment_status=PaymentStatus.FAILED,
                payment_intent_id=intent.id,
                event_at=event_at,
            )

        if not apply_payment_update(self.repo, booking, update):
            return "stale"
        logger.info("Booking %s payment_status=%s via event %s", booking.id, update.payment_status.value, event.id)
        return "applied"
