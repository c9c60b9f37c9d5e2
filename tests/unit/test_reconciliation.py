"""Unit tests for the payment source-priority rule."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from common.models import Booking, PaymentSource, PaymentStatus
from common.reconciliation import PaymentUpdate, should_apply

T0 = datetime(2030, 1, 1, 12)


def _booking(source=None, event_at=None) -> Booking:
    return Booking(payment_source=source, payment_event_at=event_at, payment_status=PaymentStatus.PENDING)


def _update(source, event_at=None, status=PaymentStatus.PAID) -> PaymentUpdate:
    return PaymentUpdate(source=source, payment_status=status, paid_amount=Decimal("1"), event_at=event_at)


class TestSourcePriority:
    @pytest.mark.parametrize("source", list(PaymentSource))
    def test_first_write_always_applies(self, source):
        assert should_apply(_booking(), _update(source)) is True

    def test_webhook_overrides_client(self):
        assert should_apply(_booking(PaymentSource.CLIENT), _update(PaymentSource.WEBHOOK, T0)) is True

    def test_client_cannot_override_webhook(self):
        assert should_apply(_booking(PaymentSource.WEBHOOK, T0), _update(PaymentSource.CLIENT)) is False

    def test_service_cannot_override_webhook(self):
        assert should_apply(_booking(PaymentSource.WEBHOOK, T0), _update(PaymentSource.SERVICE)) is False

    def test_service_overrides_client(self):
        assert should_apply(_booking(PaymentSource.CLIENT), _update(PaymentSource.SERVICE)) is True

    def test_same_source_repeats_apply(self):
        assert should_apply(_booking(PaymentSource.CLIENT), _update(PaymentSource.CLIENT)) is True

    def test_older_webhook_event_is_stale(self):
        booking = _booking(PaymentSource.WEBHOOK, T0)

        assert should_apply(booking, _update(PaymentSource.WEBHOOK, T0 - timedelta(seconds=5))) is False
        assert should_apply(booking, _update(PaymentSource.WEBHOOK, T0)) is True
        assert should_apply(booking, _update(PaymentSource.WEBHOOK, T0 + timedelta(seconds=5))) is True

    def test_priorities_are_ordered(self):
        assert PaymentSource.CLIENT.priority < PaymentSource.SERVICE.priority < PaymentSource.WEBHOOK.priority
