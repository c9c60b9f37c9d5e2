import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import Caller, get_caller
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.payments import IntentBroker, PaymentProcessor, get_stripe_processor
from common.rate_limit import apply_rate_limiter, limiter
from common.reconciliation import mark_paid
from common.repository import BookingRepository
from common.schemas import (
    BookingRead,
    IntentCreate,
    IntentRead,
    MarkPaidRequest,
    MarkPaidResponse,
    ServicePing,
    WebhookAck,
)
from common.webhooks import WebhookIngestor

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Payments Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "payments")
    Instrumentator(registry=CollectorRegistry()).instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def get_processor() -> PaymentProcessor:
    return get_stripe_processor()


@app.get("/payments/health", response_model=ServicePing, tags=["health"])
def health() -> ServicePing:
    return ServicePing(status="ok", service="payments")


@app.post("/payments/intent", response_model=IntentRead)
@limiter.limit("20/minute")
def create_payment_intent(
    request: Request,
    intent_in: IntentCreate,
    processor: PaymentProcessor = Depends(get_processor),
) -> IntentRead:
    result = IntentBroker(processor).create(
        intent_in.booking_id,
        intent_in.amount,
        currency=intent_in.currency,
        metadata=intent_in.metadata,
        customer_email=intent_in.customer_email,
    )
    return IntentRead(
        intent_id=result.intent_id,
        processor_handle=result.processor_handle,
        capability_token=result.capability_token,
    )


@app.post("/payments/mark-paid", response_model=MarkPaidResponse)
@limiter.limit("30/minute")
def mark_booking_paid(
    request: Request,
    body: MarkPaidRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
) -> MarkPaidResponse:
    outcome = mark_paid(
        BookingRepository(db),
        caller,
        booking_id=body.booking_id,
        booking_reference=body.booking_reference,
        paid_amount=body.paid_amount,
        payment_method=body.payment_method,
        capability_token=body.capability_token,
    )
    return MarkPaidResponse(
        success=True, applied=outcome.applied, booking=BookingRead.model_validate(outcome.booking)
    )


def _ingest(db: Session, payload: bytes, signature: Optional[str]) -> None:
    current = get_settings()
    ingestor = WebhookIngestor(BookingRepository(db), current.stripe_webhook_secret, current.webhook_tolerance_seconds)
    event = ingestor.verify(payload, signature)
    if event is None:
        return
    outcome = ingestor.handle(event)
    logger.info("Webhook event %s (%s): %s", event.id, event.type, outcome)


@app.post("/payments/webhook", response_model=WebhookAck)
@limiter.exempt
async def processor_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
) -> WebhookAck:
    payload = await request.body()
    await run_in_threadpool(_ingest, db, payload, stripe_signature)
    return WebhookAck(received=True)
