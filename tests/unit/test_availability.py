"""Unit tests for the availability oracle."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from common.availability import (
    as_naive_utc,
    calculate_nights,
    find_conflicts,
    get_available_rooms,
    is_room_available,
    overlaps,
)
from common.models import BookingStatus


@dataclass
class Stay:
    room_id: Optional[str]
    check_in: datetime
    check_out: datetime
    status: BookingStatus = BookingStatus.CONFIRMED


@dataclass
class FakeRoom:
    id: str
    room_type_id: str


def jan(day: int) -> datetime:
    return datetime(2030, 1, day)


class TestOverlap:
    def test_same_day_turnover_is_not_a_conflict(self):
        assert overlaps(jan(1), jan(5), jan(5), jan(10)) is False
        assert overlaps(jan(5), jan(10), jan(1), jan(5)) is False

    def test_partial_overlap_is_a_conflict(self):
        assert overlaps(jan(1), jan(5), jan(4), jan(8)) is True

    def test_containment_is_a_conflict(self):
        assert overlaps(jan(1), jan(10), jan(3), jan(4)) is True
        assert overlaps(jan(3), jan(4), jan(1), jan(10)) is True


class TestRoomAvailability:
    def test_turnover_day_leaves_room_available(self):
        bookings = [Stay("r1", jan(1), jan(5))]
        assert is_room_available("r1", jan(5), jan(10), bookings) is True

    def test_overlapping_booking_blocks_room(self):
        bookings = [Stay("r1", jan(1), jan(5))]
        assert is_room_available("r1", jan(4), jan(8), bookings) is False
        assert find_conflicts("r1", jan(4), jan(8), bookings) == bookings

    def test_cancelled_bookings_are_ignored(self):
        bookings = [Stay("r1", jan(1), jan(5), BookingStatus.CANCELLED)]
        assert is_room_available("r1", jan(2), jan(3), bookings) is True

    def test_other_rooms_and_service_bookings_are_ignored(self):
        bookings = [Stay("r2", jan(1), jan(5)), Stay(None, jan(1), jan(5))]
        assert is_room_available("r1", jan(2), jan(3), bookings) is True


class TestAvailableRooms:
    def test_filters_by_type_and_conflicts(self):
        rooms = [FakeRoom("r1", "std"), FakeRoom("r2", "std"), FakeRoom("r3", "suite")]
        bookings = [Stay("r1", jan(1), jan(5))]

        available = get_available_rooms(rooms, jan(2), jan(4), bookings, room_type_id="std")

        assert [room.id for room in available] == ["r2"]

    def test_empty_result_when_nothing_qualifies(self):
        rooms = [FakeRoom("r1", "std")]
        bookings = [Stay("r1", jan(1), jan(5))]

        assert get_available_rooms(rooms, jan(2), jan(4), bookings) == []
        assert get_available_rooms([], jan(2), jan(4), bookings) == []


class TestNights:
    def test_whole_days(self):
        assert calculate_nights(jan(1), jan(5)) == 4

    def test_partial_day_rounds_up(self):
        assert calculate_nights(datetime(2030, 1, 1, 14), datetime(2030, 1, 3, 11)) == 2

    def test_empty_or_reversed_window(self):
        assert calculate_nights(jan(5), jan(5)) == 0
        assert calculate_nights(jan(5), jan(1)) <= 0


class TestNaiveUtc:
    def test_naive_values_pass_through(self):
        assert as_naive_utc(jan(1)) == jan(1)

    def test_aware_values_become_naive_utc(self):
        plus_two = timezone(timedelta(hours=2))

        converted = as_naive_utc(datetime(2030, 1, 5, 13, tzinfo=plus_two))

        assert converted == datetime(2030, 1, 5, 11)
        assert converted.tzinfo is None
