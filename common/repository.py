"""Booking store operations used by the payment core.

Store failures are surfaced as :class:`UpstreamError` so callers can retry.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import availability
from .errors import ConflictError, NotFoundError, UpstreamError
from .models import Booking, BookingStatus, Room, RoomStatus

logger = logging.getLogger(__name__)


class BookingRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_id(self, booking_id: str) -> Optional[Booking]:
        try:
            return self.db.get(Booking, booking_id)
        except SQLAlchemyError as exc:
            raise UpstreamError("Failed to load booking") from exc

    def get_by_reference(self, booking_reference: str) -> Optional[Booking]:
        try:
            return self.db.scalars(
                select(Booking).where(Booking.booking_reference == booking_reference)
            ).first()
        except SQLAlchemyError as exc:
            raise UpstreamError("Failed to load booking") from exc

    def find(self, booking_id: Optional[str] = None, booking_reference: Optional[str] = None) -> Optional[Booking]:
        if booking_id:
            return self.get_by_id(booking_id)
        if booking_reference:
            return self.get_by_reference(booking_reference)
        return None

    def list_for_room_window(self, room_id: str, check_in: datetime, check_out: datetime) -> List[Booking]:
        """Non-cancelled bookings of ``room_id`` overlapping ``[check_in, check_out)``."""

        stmt = select(Booking).where(
            Booking.room_id == room_id,
            Booking.status != BookingStatus.CANCELLED,
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise UpstreamError("Failed to query bookings") from exc

    def list_for_window(self, check_in: datetime, check_out: datetime) -> List[Booking]:
        stmt = select(Booking).where(
            Booking.room_id.is_not(None),
            Booking.status != BookingStatus.CANCELLED,
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise UpstreamError("Failed to query bookings") from exc

    def update_fields(self, booking: Booking, **fields: Any) -> Booking:
        """Overwrite ``fields`` on ``booking`` and return the refreshed row."""

        for key, value in fields.items():
            setattr(booking, key, value)
        try:
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to update booking") from exc
        return booking

    def add(self, booking: Booking) -> Booking:
        """Insert a booking that holds no room, so no window check applies."""

        try:
            self.db.add(booking)
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to create booking") from exc
        return booking

    def reserve_room(self, booking: Booking) -> Booking:
        """Insert ``booking`` only if its room is free, inside one transaction.

        The room row is locked first so concurrent reservations for the same
        room serialize on PostgreSQL; the exclusion constraint installed by
        ``scripts/add_constraints.py`` rejects anything that still slips through.
        """

        try:
            room = self.db.scalars(
                select(Room).where(Room.id == booking.room_id).with_for_update()
            ).first()
            if room is None:
                raise NotFoundError("Room not found")
            if room.status == RoomStatus.MAINTENANCE:
                raise ConflictError("Room is under maintenance")

            existing = self.list_for_room_window(room.id, booking.check_in, booking.check_out)
            if not availability.is_room_available(room.id, booking.check_in, booking.check_out, existing):
                raise ConflictError("Room already booked for that window")

            self.db.add(booking)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info("Reservation for room %s rejected by store constraint", booking.room_id)
            raise ConflictError("Room already booked for that window") from exc
        except (NotFoundError, ConflictError, UpstreamError):
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to create booking") from exc

        self.db.refresh(booking)
        return booking
