import hashlib
import hmac
import json
import os
import time
from datetime import datetime
from decimal import Decimal
from typing import Dict, Generator, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("MARK_PAID_SECRET", "test-mark-paid-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import Booking, Room, RoomType  # noqa: E402
from common.payments import ProcessorIntent  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.payments.app import app as payments_app  # noqa: E402
from services.payments.app import get_processor  # noqa: E402

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
SERVICE_HEADERS = {"X-Service-Key": os.environ["SERVICE_API_KEY"]}


class FakeProcessor:
    """In-memory stand-in for Stripe honouring idempotency keys."""

    def __init__(self) -> None:
        self.intents: Dict[str, ProcessorIntent] = {}
        self.calls = []
        self.error: Optional[Exception] = None

    def create_intent(self, amount, currency, idempotency_key, metadata, customer_email=None):
        self.calls.append(
            {"amount": amount, "currency": currency, "key": idempotency_key, "metadata": metadata, "email": customer_email}
        )
        if self.error is not None:
            raise self.error
        if idempotency_key not in self.intents:
            intent_id = f"pi_{len(self.intents) + 1:04d}"
            self.intents[idempotency_key] = ProcessorIntent(id=intent_id, client_handle=f"{intent_id}_secret_abc")
        return self.intents[idempotency_key]


def sign_webhook(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""

    ts = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def intent_event(
    booking_id: Optional[str],
    event_type: str = "payment_intent.succeeded",
    amount_received: int = 9500,
    amount: int = 10000,
    currency: str = "usd",
    created: Optional[int] = None,
    event_id: str = "evt_1",
    intent_id: str = "pi_0001",
) -> str:
    metadata = {"bookingId": booking_id} if booking_id else {}
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "created": created if created is not None else int(time.time()),
            "data": {
                "object": {
                    "id": intent_id,
                    "object": "payment_intent",
                    "amount": amount,
                    "amount_received": amount_received,
                    "currency": currency,
                    "metadata": metadata,
                }
            },
        }
    )


def post_webhook(client: TestClient, payload: str, signature: Optional[str] = None):
    headers = {"Content-Type": "application/json", "Stripe-Signature": signature or sign_webhook(payload)}
    return client.post("/payments/webhook", content=payload, headers=headers)


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def room_type(db_session) -> RoomType:
    rt = RoomType(name="Deluxe King", slug="deluxe-king", base_price=Decimal("120.00"), max_occupancy=2)
    db_session.add(rt)
    db_session.commit()
    return rt


@pytest.fixture()
def room(db_session, room_type) -> Room:
    r = Room(number="101", room_type_id=room_type.id, floor=1)
    db_session.add(r)
    db_session.commit()
    return r


@pytest.fixture()
def make_booking(db_session):
    def factory(**overrides) -> Booking:
        fields = {
            "check_in": datetime(2030, 1, 1, 14),
            "check_out": datetime(2030, 1, 5, 11),
            "total_price": Decimal("100.00"),
        }
        fields.update(overrides)
        booking = Booking(**fields)
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking

    return factory


@pytest.fixture()
def fake_processor() -> Generator[FakeProcessor, None, None]:
    processor = FakeProcessor()
    payments_app.dependency_overrides[get_processor] = lambda: processor
    yield processor
    payments_app.dependency_overrides.pop(get_processor, None)


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def payments_client() -> Generator[TestClient, None, None]:
    with TestClient(payments_app) as client:
        yield client
