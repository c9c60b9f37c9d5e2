"""SQLAlchemy models shared across all services."""
from __future__ import annotations

import secrets
import string
import time
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentSource(str, Enum):
    """Who last wrote the payment fields of a booking."""

    CLIENT = "client"
    SERVICE = "service"
    WEBHOOK = "webhook"

    @property
    def priority(self) -> int:
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    PaymentSource.CLIENT: 1,
    PaymentSource.SERVICE: 2,
    PaymentSource.WEBHOOK: 3,
}


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"


def _new_id() -> str:
    return str(uuid.uuid4())


def generate_booking_reference() -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(7))
    return f"BK-{int(time.time() * 1000)}-{suffix}"


class RoomType(Base):
    __tablename__ = "room_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    max_occupancy: Mapped[int] = mapped_column(Integer, default=2)

    rooms: Mapped[List["Room"]] = relationship(back_populates="room_type")


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    number: Mapped[str] = mapped_column(String(20), unique=True)
    room_type_id: Mapped[str] = mapped_column(ForeignKey("room_types.id", ondelete="RESTRICT"), index=True)
    floor: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    status: Mapped[RoomStatus] = mapped_column(SqlEnum(RoomStatus), default=RoomStatus.AVAILABLE)

    room_type: Mapped[RoomType] = relationship(back_populates="rooms")
    bookings: Mapped[List["Booking"]] = relationship(back_populates="room")


class HotelService(Base):
    __tablename__ = "hotel_services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_room_window", "room_id", "check_in", "check_out"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    booking_reference: Mapped[str] = mapped_column(
        String(40), unique=True, index=True, default=generate_booking_reference
    )
    room_id: Mapped[Optional[str]] = mapped_column(ForeignKey("rooms.id", ondelete="SET NULL"), default=None)
    service_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("hotel_services.id", ondelete="SET NULL"), default=None
    )
    check_in: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, default=1)
    guest_name: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, default=None)

    room_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    services_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="usd")
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), default=None)

    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.PENDING)
    payment_status: Mapped[PaymentStatus] = mapped_column(SqlEnum(PaymentStatus), default=PaymentStatus.PENDING)
    payment_source: Mapped[Optional[PaymentSource]] = mapped_column(SqlEnum(PaymentSource), default=None)
    payment_event_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room: Mapped[Optional[Room]] = relationship(back_populates="bookings")
