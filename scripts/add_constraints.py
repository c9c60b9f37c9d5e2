#!/usr/bin/env python3
"""Install the PostgreSQL indexes and constraints the booking core relies on.

The exclusion constraint makes the store itself refuse two non-cancelled
bookings of one room whose ``[check_in, check_out)`` windows overlap, closing
the check-then-insert race between concurrent reservations.
"""
import sys

from sqlalchemy import create_engine, text

from common.config import get_settings

STATEMENTS = [
    "CREATE EXTENSION IF NOT EXISTS btree_gist;",
    "CREATE INDEX IF NOT EXISTS idx_bookings_room_window ON bookings (room_id, check_in, check_out);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_reference ON bookings (booking_reference);",
    "CREATE INDEX IF NOT EXISTS idx_bookings_payment_intent ON bookings (payment_intent_id);",
    """
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = 'bookings_no_overlap') THEN
            ALTER TABLE bookings ADD CONSTRAINT bookings_no_overlap
            EXCLUDE USING gist (
                room_id WITH =,
                tsrange(check_in, check_out, '[)') WITH &&
            ) WHERE (room_id IS NOT NULL AND status <> 'CANCELLED');
        END IF;
    END
    $$;
    """,
]


def add_constraints(database_url: str) -> None:
    if not database_url.startswith("postgresql"):
        print("Exclusion constraints require PostgreSQL; skipping.")
        return
    engine = create_engine(database_url)
    with engine.begin() as conn:
        for statement in STATEMENTS:
            conn.execute(text(statement))
    print("Constraints added successfully.")


if __name__ == "__main__":
    url = sys.argv[1] if len(sys.argv) > 1 else get_settings().database_url
    add_constraints(url)
