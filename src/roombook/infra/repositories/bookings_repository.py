"""Bookings repository.

Uses raw SQL with psycopg2 (no ORM). All functions take a cursor that is
already inside a transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from psycopg2.extensions import cursor as PgCursor

from roombook.domain.conflicts import ExistingReservation

BOOKING_COLUMNS = (
    "id",
    "user_id",
    "room_id",
    "start_time",
    "end_time",
    "status",
    "event_description",
    "guest_count",
    "proposal_file",
    "notes",
    "is_tour",
    "tour_name",
    "tour_guide",
    "tour_meeting_point",
    "created_at",
    "updated_at",
)

_SELECT_COLUMNS = ", ".join(BOOKING_COLUMNS)

_MAX_LIST_ROWS = 500


def booking_row_to_dict(row: tuple) -> dict:
    """Map a row selected with BOOKING_COLUMNS to a JSON-ready dict."""
    data = dict(zip(BOOKING_COLUMNS, row))
    for key in ("id", "user_id", "room_id"):
        data[key] = str(data[key])
    for key in ("start_time", "end_time", "created_at", "updated_at"):
        if data[key] is not None:
            data[key] = data[key].isoformat()
    return data


def find_overlapping(
    cur: PgCursor,
    *,
    room_id: str,
    start_time: datetime,
    end_time: datetime,
    statuses: Iterable[str] | None = None,
    exclude_booking_id: str | None = None,
) -> list[ExistingReservation]:
    """Fetch bookings on ``room_id`` whose window intersects [start_time, end_time).

    Args:
        cur: Database cursor (within transaction).
        room_id: Room UUID.
        start_time / end_time: Window to intersect.
        statuses: Optional status filter; None returns every status.
        exclude_booking_id: Booking to leave out (for status re-checks).

    Returns:
        ExistingReservation list ordered by start_time.
    """
    conditions = [
        "room_id = %s",
        "start_time < %s",  # existing start < new end
        "end_time > %s",    # existing end > new start
    ]
    params: list = [room_id, end_time, start_time]

    if statuses is not None:
        conditions.append("status = ANY(%s)")
        params.append(list(statuses))

    if exclude_booking_id is not None:
        conditions.append("id != %s")
        params.append(exclude_booking_id)

    cur.execute(
        f"""
        SELECT id, start_time, end_time, status
        FROM bookings
        WHERE {" AND ".join(conditions)}
        ORDER BY start_time, id
        """,
        params,
    )
    return [
        ExistingReservation(id=str(row[0]), start=row[1], end=row[2], status=row[3])
        for row in cur.fetchall()
    ]


def insert_booking(
    cur: PgCursor,
    *,
    user_id: str,
    room_id: str,
    start_time: datetime,
    end_time: datetime,
    event_description: str | None = None,
    guest_count: int | None = None,
    proposal_file: str | None = None,
    notes: str | None = None,
    is_tour: bool = False,
    tour_name: str | None = None,
    tour_guide: str | None = None,
    tour_meeting_point: str | None = None,
) -> dict:
    """Insert a booking in 'pending' status and return it.

    Raises:
        psycopg2.errors.ExclusionViolation: If a live booking on the same
            room overlaps (no_live_booking_overlap constraint).
    """
    cur.execute(
        f"""
        INSERT INTO bookings (
            user_id, room_id, start_time, end_time, status,
            event_description, guest_count, proposal_file, notes,
            is_tour, tour_name, tour_guide, tour_meeting_point
        )
        VALUES (%s, %s, %s, %s, 'pending', %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_SELECT_COLUMNS}
        """,
        (
            user_id,
            room_id,
            start_time,
            end_time,
            event_description,
            guest_count,
            proposal_file,
            notes,
            is_tour,
            tour_name,
            tour_guide,
            tour_meeting_point,
        ),
    )
    return booking_row_to_dict(cur.fetchone())


def get_booking(cur: PgCursor, booking_id: str, *, lock: bool = False) -> dict | None:
    """Get a booking by id, optionally locking the row FOR UPDATE."""
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"SELECT {_SELECT_COLUMNS} FROM bookings WHERE id = %s{suffix}",
        (booking_id,),
    )
    row = cur.fetchone()
    return booking_row_to_dict(row) if row is not None else None


def set_status(cur: PgCursor, booking_id: str, status: str) -> dict:
    """Set a booking's status and return the updated row."""
    cur.execute(
        f"""
        UPDATE bookings
        SET status = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_SELECT_COLUMNS}
        """,
        (status, booking_id),
    )
    return booking_row_to_dict(cur.fetchone())


def list_bookings(
    cur: PgCursor,
    *,
    user_id: str | None = None,
    room_id: str | None = None,
    status: str | None = None,
    from_time: datetime | None = None,
    to_time: datetime | None = None,
    is_tour: bool | None = None,
    limit: int | None = _MAX_LIST_ROWS,
) -> list[dict]:
    """List bookings with optional filters, newest start first.

    from_time/to_time select bookings whose window intersects [from, to).
    limit=None returns every match (reports).
    """
    conditions: list[str] = []
    params: list = []

    if user_id is not None:
        conditions.append("user_id = %s")
        params.append(user_id)
    if room_id is not None:
        conditions.append("room_id = %s")
        params.append(room_id)
    if status is not None:
        conditions.append("status = %s")
        params.append(status)
    if from_time is not None:
        conditions.append("end_time > %s")
        params.append(from_time)
    if to_time is not None:
        conditions.append("start_time < %s")
        params.append(to_time)
    if is_tour is not None:
        conditions.append("is_tour = %s")
        params.append(is_tour)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    # LIMIT NULL means no limit
    params.append(limit)

    cur.execute(
        f"""
        SELECT {_SELECT_COLUMNS}
        FROM bookings
        {where}
        ORDER BY start_time DESC
        LIMIT %s
        """,
        params,
    )
    return [booking_row_to_dict(row) for row in cur.fetchall()]


def complete_ended(cur: PgCursor, *, now: datetime) -> list[dict]:
    """Move approved bookings whose window ended at or before ``now`` to completed.

    Returns:
        The bookings that changed, as updated.
    """
    cur.execute(
        f"""
        UPDATE bookings
        SET status = 'completed', updated_at = now()
        WHERE status = 'approved' AND end_time <= %s
        RETURNING {_SELECT_COLUMNS}
        """,
        (now,),
    )
    return [booking_row_to_dict(row) for row in cur.fetchall()]
