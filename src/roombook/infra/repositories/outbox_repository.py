"""Outbox repository - booking notifications written in the booking transaction.

Uses raw SQL with psycopg2 (no ORM). A separate consumer delivers the events
(e-mail to admins on creation, to the requester on approval/rejection).
"""

import json

from psycopg2.extensions import cursor as PgCursor

BOOKING_CREATED = "BOOKING_CREATED"

# Event type per status change: BOOKING_APPROVED, BOOKING_REJECTED, ...
STATUS_EVENT_PREFIX = "BOOKING_"


def emit_event(
    cur: PgCursor,
    *,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict | None = None,
    correlation_id: str | None = None,
) -> int:
    """Emit an event to the outbox.

    Args:
        cur: Database cursor (within transaction).
        event_type: Event type (e.g., BOOKING_CREATED).
        aggregate_type: Aggregate type (e.g., booking).
        aggregate_id: Aggregate ID (e.g., booking UUID).
        payload: Optional JSON payload (no PII).
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The generated event ID.
    """
    cur.execute(
        """
        INSERT INTO outbox_events (
            event_type, aggregate_type, aggregate_id, payload, correlation_id
        )
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            event_type,
            aggregate_type,
            aggregate_id,
            json.dumps(payload) if payload else None,
            correlation_id,
        ),
    )
    return cur.fetchone()[0]


def emit_booking_created(
    cur: PgCursor,
    *,
    booking: dict,
    correlation_id: str | None = None,
) -> int:
    """Emit BOOKING_CREATED for a freshly inserted booking."""
    return emit_event(
        cur,
        event_type=BOOKING_CREATED,
        aggregate_type="booking",
        aggregate_id=booking["id"],
        payload={
            "room_id": booking["room_id"],
            "user_id": booking["user_id"],
            "start_time": booking["start_time"],
            "end_time": booking["end_time"],
            "is_tour": booking["is_tour"],
        },
        correlation_id=correlation_id,
    )


def emit_booking_status_changed(
    cur: PgCursor,
    *,
    booking: dict,
    old_status: str,
    changed_by: str | None,
    correlation_id: str | None = None,
) -> int:
    """Emit BOOKING_<NEW_STATUS> after a status transition."""
    return emit_event(
        cur,
        event_type=f"{STATUS_EVENT_PREFIX}{booking['status'].upper()}",
        aggregate_type="booking",
        aggregate_id=booking["id"],
        payload={
            "room_id": booking["room_id"],
            "user_id": booking["user_id"],
            "old_status": old_status,
            "new_status": booking["status"],
            "changed_by": changed_by,
        },
        correlation_id=correlation_id,
    )
