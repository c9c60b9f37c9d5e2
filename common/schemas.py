"""Pydantic schemas shared across the services.

Every request and response body derives from :class:`WireModel`, which is the
single place where camelCase wire names map onto the snake_case domain model.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from .availability import as_naive_utc
from .models import BookingStatus, PaymentSource, PaymentStatus, RoomStatus


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class StayRequest(WireModel):
    check_in: datetime
    check_out: datetime
    guests: int = Field(1, ge=1, le=16)
    guest_name: Optional[str] = Field(None, max_length=100)
    guest_email: Optional[EmailStr] = None
    special_requests: Optional[str] = Field(None, max_length=1000)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @field_validator("check_in", "check_out")
    @classmethod
    def _store_as_naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class BookingCreate(StayRequest):
    room_id: str
    services_price: Decimal = Field(Decimal("0"), ge=0)


class ServiceBookingCreate(StayRequest):
    """A booking for a hotel service (spa, tour, transfer) that holds no room."""

    service_id: str


class HotelServiceRead(WireModel):
    id: str
    name: str
    price: Decimal
    is_active: bool


class BookingStatusUpdate(WireModel):
    status: BookingStatus


class BookingRead(WireModel):
    id: str
    booking_reference: str
    room_id: Optional[str] = None
    service_id: Optional[str] = None
    check_in: datetime
    check_out: datetime
    guests: int
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    room_price: Decimal
    services_price: Decimal
    total_price: Decimal
    paid_amount: Decimal
    currency: str
    payment_method: Optional[str] = None
    status: BookingStatus
    payment_status: PaymentStatus
    payment_source: Optional[PaymentSource] = None
    created_at: datetime
    updated_at: datetime


class AvailabilityRead(WireModel):
    room_id: str
    available: bool
    nights: int


class RoomTypeRead(WireModel):
    id: str
    name: str
    slug: str
    base_price: Decimal
    max_occupancy: int


class RoomRead(WireModel):
    id: str
    number: str
    room_type_id: str
    floor: Optional[int] = None
    status: RoomStatus


class AvailableRoomRead(WireModel):
    room: RoomRead
    room_type: Optional[RoomTypeRead] = None
    nights: int
    total_price: Decimal


class IntentCreate(WireModel):
    booking_id: str
    amount: StrictInt
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    customer_email: Optional[EmailStr] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class IntentRead(WireModel):
    intent_id: str
    processor_handle: str
    capability_token: str


class MarkPaidRequest(WireModel):
    booking_id: Optional[str] = None
    booking_reference: Optional[str] = None
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[str] = Field(None, max_length=30)
    capability_token: Optional[str] = None


class MarkPaidResponse(WireModel):
    """``success`` means the request was accepted; ``applied`` whether it changed the booking."""

    success: bool
    applied: bool
    booking: BookingRead


class WebhookAck(WireModel):
    received: bool = True


class ProcessorIntentObject(BaseModel):
    """The ``data.object`` of a payment-intent event, in Stripe's own snake_case."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int = 0
    amount_received: Optional[int] = None
    currency: str = "usd"
    metadata: Dict[str, str] = Field(default_factory=dict)


class ProcessorEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: Dict[str, Any]


class ProcessorEvent(BaseModel):
    """Webhook envelope as delivered by the processor."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: int
    data: ProcessorEventData


class ServicePing(BaseModel):
    status: str
    service: str
