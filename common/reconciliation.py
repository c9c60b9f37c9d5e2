"""Reconciliation of the payment fields written by independent actors.

Three writers touch the same booking: the optimistic client (holding a
capability token), trusted services or staff, and the processor webhook.
Each write carries a :class:`PaymentSource` tag and is applied only if its
priority is at least that of the source that wrote last; authoritative
(webhook) writes are additionally ordered by the processor's event time.
Every write is a plain field overwrite, so replays converge.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .config import get_settings
from .dependencies import Caller
from .errors import AuthorizationError, ConfigurationError, NotFoundError, ValidationError
from .models import Booking, PaymentSource, PaymentStatus
from .repository import BookingRepository
from .tokens import verify_capability_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkPaidOutcome:
    booking: Booking
    applied: bool


@dataclass(frozen=True)
class PaymentUpdate:
    source: PaymentSource
    payment_status: PaymentStatus
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None
    event_at: Optional[datetime] = None


def should_apply(booking: Booking, update: PaymentUpdate) -> bool:
    current = booking.payment_source
    if current is None:
        return True
    if update.source.priority < current.priority:
        return False
    if (
        update.source == PaymentSource.WEBHOOK
        and current == PaymentSource.WEBHOOK
        and booking.payment_event_at is not None
        and update.event_at is not None
        and update.event_at < booking.payment_event_at
    ):
        return False
    return True


def apply_payment_update(repo: BookingRepository, booking: Booking, update: PaymentUpdate) -> bool:
    """Write ``update`` onto ``booking`` if it wins. Returns whether it was applied."""

    if not should_apply(booking, update):
        logger.info(
            "Skipping %s payment write for booking %s; last written by %s",
            update.source.value,
            booking.id,
            booking.payment_source.value if booking.payment_source else None,
        )
        return False

    fields = {"payment_status": update.payment_status, "payment_source": update.source}
    if update.paid_amount is not None:
        fields["paid_amount"] = update.paid_amount
    if update.payment_method:
        fields["payment_method"] = update.payment_method
    if update.payment_intent_id:
        fields["payment_intent_id"] = update.payment_intent_id
    if update.event_at is not None:
        fields["payment_event_at"] = update.event_at
    repo.update_fields(booking, **fields)
    return True


def _authorize_token(capability_token: str, booking_id: Optional[str]) -> str:
    """Verify the token and return the booking id it is scoped to."""

    if not get_settings().mark_paid_secret:
        raise ConfigurationError("Capability token signing secret is not configured")
    result = verify_capability_token(capability_token, booking_id)
    if not result.valid:
        logger.warning("Rejected capability token (%s)", result.reason)
        raise AuthorizationError("Invalid or expired capability token")
    return result.payload["bookingId"]


def mark_paid(
    repo: BookingRepository,
    caller: Caller,
    *,
    booking_id: Optional[str] = None,
    booking_reference: Optional[str] = None,
    paid_amount: Optional[Decimal] = None,
    payment_method: Optional[str] = None,
    capability_token: Optional[str] = None,
) -> MarkPaidOutcome:
    """Optimistically mark a booking as paid.

    Trusted callers need no token. Anyone else must present a capability
    token scoped to the booking being updated. ``booking_id`` takes
    precedence over ``booking_reference`` when both are given. The outcome
    reports whether the write won the precedence check; when it did not, the
    booking is returned unchanged.
    """

    if not booking_id and not booking_reference:
        raise ValidationError("bookingId or bookingReference is required")

    token_booking_id: Optional[str] = None
    if caller.trusted:
        source = PaymentSource.SERVICE
    elif capability_token:
        token_booking_id = _authorize_token(capability_token, booking_id or None)
        source = PaymentSource.CLIENT
    else:
        raise AuthorizationError("Capability token or trusted credentials required")

    booking = repo.find(booking_id=booking_id, booking_reference=booking_reference)
    if booking is None:
        raise NotFoundError("Booking not found")
    if token_booking_id is not None and booking.id != token_booking_id:
        raise AuthorizationError("Capability token does not match booking")

    applied = apply_payment_update(
        repo,
        booking,
        PaymentUpdate(
            source=source,
            payment_status=PaymentStatus.PAID,
            paid_amount=paid_amount,
            payment_method=payment_method,
        ),
    )
    return MarkPaidOutcome(booking=booking, applied=applied)
