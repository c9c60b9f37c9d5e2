"""Room availability decisions over half-open ``[check_in, check_out)`` windows.

Everything here is pure: callers load the bookings and rooms, filter out
rooms under maintenance and reject empty windows before asking.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Protocol, Sequence

from .models import BookingStatus

_ONE_DAY = timedelta(days=1)


class BookingWindow(Protocol):
    room_id: Optional[str]
    check_in: datetime
    check_out: datetime
    status: BookingStatus


class RoomLike(Protocol):
    id: str
    room_type_id: str


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC, the form bookings are stored in."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test. Touching windows (checkout == check-in) do not overlap."""

    return a_start < b_end and a_end > b_start


def calculate_nights(check_in: datetime, check_out: datetime) -> int:
    return math.ceil((check_out - check_in) / _ONE_DAY)


def _blocking(booking: BookingWindow) -> bool:
    return booking.status != BookingStatus.CANCELLED


def find_conflicts(
    room_id: str,
    check_in: datetime,
    check_out: datetime,
    bookings: Iterable[BookingWindow],
) -> List[BookingWindow]:
    return [
        booking
        for booking in bookings
        if booking.room_id == room_id
        and _blocking(booking)
        and overlaps(booking.check_in, booking.check_out, check_in, check_out)
    ]


def is_room_available(
    room_id: str,
    check_in: datetime,
    check_out: datetime,
    bookings: Iterable[BookingWindow],
) -> bool:
    return not find_conflicts(room_id, check_in, check_out, bookings)


def get_available_rooms(
    rooms: Sequence[RoomLike],
    check_in: datetime,
    check_out: datetime,
    bookings: Iterable[BookingWindow],
    room_type_id: Optional[str] = None,
) -> List[RoomLike]:
    """Return the rooms (optionally of one type) with no conflicting booking.

    An empty list means nothing qualifies.
    """

    booking_list = list(bookings)
    return [
        room
        for room in rooms
        if (room_type_id is None or room.room_type_id == room_type_id)
        and is_room_available(room.id, check_in, check_out, booking_list)
    ]
