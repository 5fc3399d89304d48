"""Booking write path - transactional creation and status changes.

Creation runs inside a single DB transaction:
lock room → read bookings on the window → check_conflicts → insert pending → emit outbox event.

Zero double-booking has two layers:
1. The room row is locked FOR UPDATE first, so concurrent writers for one
   room are serialized and the later one sees the earlier one's insert.
2. The no_live_booking_overlap exclusion constraint rejects any overlapping
   live insert that bypassed layer 1. That failure is a lost race and is
   reported exactly like a conflict, with the now-current conflicting set.

Transient store failures retry with backoff (roombook.infra.retry). No path
admits a booking without the check passing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from psycopg2 import errors as pg_errors

from roombook.domain.conflicts import (
    LIVE_STATUSES,
    Decision,
    ExistingReservation,
    ReservationStatus,
    Window,
    check_conflicts,
)
from roombook.infra.db import txn
from roombook.infra.repositories.bookings_repository import (
    complete_ended,
    find_overlapping,
    get_booking,
    insert_booking,
    list_bookings,
    set_status,
)
from roombook.infra.repositories.outbox_repository import (
    emit_booking_created,
    emit_booking_status_changed,
)
from roombook.infra.repositories.rooms_repository import get_room, lock_active_room
from roombook.infra.retry import RetriesExhaustedError, run_with_retries
from roombook.infra.time import as_utc, utc_now
from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Admin transitions. Terminal statuses (rejected, cancelled, completed) have none.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    ReservationStatus.PENDING.value: frozenset(
        {
            ReservationStatus.APPROVED.value,
            ReservationStatus.REJECTED.value,
            ReservationStatus.CANCELLED.value,
        }
    ),
    ReservationStatus.APPROVED.value: frozenset(
        {ReservationStatus.CANCELLED.value, ReservationStatus.COMPLETED.value}
    ),
}

# Owners may only withdraw their own pending request.
OWNER_TRANSITIONS: dict[str, frozenset[str]] = {
    ReservationStatus.PENDING.value: frozenset({ReservationStatus.CANCELLED.value}),
}


class RoomNotFoundError(Exception):
    """Raised when the room does not exist or is inactive."""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found or inactive")


class BookingNotFoundError(Exception):
    """Raised when the booking does not exist or is not visible to the actor."""

    pass


class BookingConflictError(Exception):
    """Raised when live bookings overlap the requested window.

    ``race_lost`` is True when the application check passed but the
    exclusion constraint rejected the insert.
    """

    def __init__(
        self,
        room_id: str,
        conflicts: tuple[ExistingReservation, ...],
        *,
        race_lost: bool = False,
    ) -> None:
        self.room_id = room_id
        self.conflicts = conflicts
        self.race_lost = race_lost
        super().__init__(
            f"Room {room_id} has {len(conflicts)} conflicting booking(s)"
        )


class InvalidStatusTransitionError(Exception):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change booking status from '{current}' to '{requested}'")


class TransientStoreError(Exception):
    """Raised when the store kept failing transiently after all retries."""

    pass


@dataclass(frozen=True)
class TourDetails:
    name: str
    guide: str
    meeting_point: str


def _retrying(operation: str, fn):
    try:
        return run_with_retries(fn, operation=operation)
    except RetriesExhaustedError as exc:
        raise TransientStoreError(str(exc)) from exc


def _current_conflicts(room_id: str, candidate: Window) -> tuple[ExistingReservation, ...]:
    with txn() as cur:
        existing = find_overlapping(
            cur,
            room_id=room_id,
            start_time=candidate.start,
            end_time=candidate.end,
        )
    return check_conflicts(candidate, existing).conflicts


def create_booking(
    *,
    room_id: str,
    user_id: str,
    start_time: datetime,
    end_time: datetime,
    event_description: str | None = None,
    guest_count: int | None = None,
    proposal_file: str | None = None,
    notes: str | None = None,
    tour: TourDetails | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Create a pending booking if no live booking overlaps it.

    Args:
        room_id: Room UUID (the tour room for tour bookings).
        user_id: Requesting user UUID.
        start_time / end_time: Requested window; naive values are UTC.
        event_description, guest_count, proposal_file, notes: Stored as-is.
        tour: Tour details when booking the tour room.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The inserted booking as a dict (status 'pending').

    Raises:
        InvalidWindowError: If start_time >= end_time (before any I/O).
        RoomNotFoundError: If the room is missing or inactive.
        BookingConflictError: If live bookings overlap, including a lost race.
        TransientStoreError: If the store kept failing after retries.
    """
    candidate = Window(as_utc(start_time), as_utc(end_time)).validate()

    def _create() -> dict:
        with txn() as cur:
            if lock_active_room(cur, room_id) is None:
                raise RoomNotFoundError(room_id)

            existing = find_overlapping(
                cur,
                room_id=room_id,
                start_time=candidate.start,
                end_time=candidate.end,
            )
            decision = check_conflicts(candidate, existing)
            if not decision.admitted:
                logger.info(
                    "booking rejected: time slot taken",
                    extra={
                        "extra_fields": safe_log_context(
                            correlationId=correlation_id,
                            room_id=room_id,
                            requested_start=candidate.start,
                            requested_end=candidate.end,
                            conflict_count=len(decision.conflicts),
                        )
                    },
                )
                raise BookingConflictError(room_id, decision.conflicts)

            booking = insert_booking(
                cur,
                user_id=user_id,
                room_id=room_id,
                start_time=candidate.start,
                end_time=candidate.end,
                event_description=event_description,
                guest_count=guest_count,
                proposal_file=proposal_file,
                notes=notes,
                is_tour=tour is not None,
                tour_name=tour.name if tour else None,
                tour_guide=tour.guide if tour else None,
                tour_meeting_point=tour.meeting_point if tour else None,
            )
            emit_booking_created(cur, booking=booking, correlation_id=correlation_id)
            return booking

    def _attempt() -> dict:
        try:
            return _create()
        except pg_errors.ExclusionViolation:
            logger.warning(
                "booking race lost at exclusion constraint",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        room_id=room_id,
                        requested_start=candidate.start,
                        requested_end=candidate.end,
                    )
                },
            )
            raise BookingConflictError(
                room_id, _current_conflicts(room_id, candidate), race_lost=True
            )

    booking = _retrying("create_booking", _attempt)

    logger.info(
        "booking created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking["id"],
                room_id=room_id,
                is_tour=booking["is_tour"],
            )
        },
    )
    return booking


def find_conflicts(room_id: str, start_time: datetime, end_time: datetime) -> Decision:
    """Read-only availability probe for a window (no locks, no writes).

    Raises:
        InvalidWindowError: If start_time >= end_time.
        RoomNotFoundError: If the room does not exist.
    """
    candidate = Window(as_utc(start_time), as_utc(end_time)).validate()

    def _probe() -> Decision:
        with txn() as cur:
            if get_room(cur, room_id) is None:
                raise RoomNotFoundError(room_id)
            existing = find_overlapping(
                cur,
                room_id=room_id,
                start_time=candidate.start,
                end_time=candidate.end,
            )
        return check_conflicts(candidate, existing)

    return _retrying("find_conflicts", _probe)


def room_schedule(room_id: str, from_time: datetime, to_time: datetime) -> list[dict]:
    """Live bookings on a room intersecting [from_time, to_time), for calendars."""
    window = Window(as_utc(from_time), as_utc(to_time)).validate()

    def _read() -> list[dict]:
        with txn() as cur:
            if get_room(cur, room_id) is None:
                raise RoomNotFoundError(room_id)
            existing = find_overlapping(
                cur,
                room_id=room_id,
                start_time=window.start,
                end_time=window.end,
                statuses=sorted(LIVE_STATUSES),
            )
        return [entry.to_dict() for entry in existing]

    return _retrying("room_schedule", _read)


def update_booking_status(
    booking_id: str,
    new_status: str,
    *,
    actor_id: str,
    is_admin: bool,
    correlation_id: str | None = None,
) -> dict:
    """Apply a status transition and emit the matching outbox event.

    For admins, setting the current status again is a no-op that returns the
    booking. Owners get InvalidStatusTransitionError for anything but
    pending -> cancelled.

    Raises:
        BookingNotFoundError: If missing, or not the actor's and actor is not admin.
        InvalidStatusTransitionError: If the transition is not allowed.
        TransientStoreError: If the store kept failing after retries.
    """
    valid = {s.value for s in ReservationStatus}
    if new_status not in valid:
        raise InvalidStatusTransitionError("unknown", new_status)

    transitions = ALLOWED_TRANSITIONS if is_admin else OWNER_TRANSITIONS

    def _update() -> dict:
        with txn() as cur:
            booking = get_booking(cur, booking_id, lock=True)
            if booking is None or (not is_admin and booking["user_id"] != actor_id):
                raise BookingNotFoundError(booking_id)

            current = booking["status"]
            # Re-cancelling is not a no-op for owners: only pending -> cancelled
            if is_admin and current == new_status:
                return booking
            if new_status not in transitions.get(current, frozenset()):
                raise InvalidStatusTransitionError(current, new_status)

            updated = set_status(cur, booking_id, new_status)
            emit_booking_status_changed(
                cur,
                booking=updated,
                old_status=current,
                changed_by=actor_id,
                correlation_id=correlation_id,
            )

        logger.info(
            "booking status changed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    booking_id=booking_id,
                    old_status=current,
                    new_status=new_status,
                    by_admin=is_admin,
                )
            },
        )
        return updated

    return _retrying("update_booking_status", _update)


def cancel_booking(
    booking_id: str,
    *,
    user_id: str,
    correlation_id: str | None = None,
) -> dict:
    """Owner cancels their own pending booking."""
    return update_booking_status(
        booking_id,
        ReservationStatus.CANCELLED.value,
        actor_id=user_id,
        is_admin=False,
        correlation_id=correlation_id,
    )


def get_visible_booking(booking_id: str, *, user_id: str, is_admin: bool) -> dict:
    """Return a booking if the user owns it or is admin.

    Raises:
        BookingNotFoundError: Otherwise.
    """
    with txn() as cur:
        booking = get_booking(cur, booking_id)
    if booking is None or (not is_admin and booking["user_id"] != user_id):
        raise BookingNotFoundError(booking_id)
    return booking


def search_bookings(**filters) -> list[dict]:
    """List bookings; see bookings_repository.list_bookings for filters."""
    with txn() as cur:
        return list_bookings(cur, **filters)


def complete_past_bookings(now: datetime | None = None, correlation_id: str | None = None) -> list[str]:
    """Mark approved bookings that have ended as completed.

    Each completed booking gets a BOOKING_COMPLETED outbox event in the same
    transaction, as an admin completion would.

    Returns:
        IDs of completed bookings.
    """
    now = as_utc(now) if now is not None else utc_now()

    def _sweep() -> list[str]:
        with txn() as cur:
            completed = complete_ended(cur, now=now)
            for booking in completed:
                emit_booking_status_changed(
                    cur,
                    booking=booking,
                    old_status=ReservationStatus.APPROVED.value,
                    changed_by=None,
                    correlation_id=correlation_id,
                )
            return [booking["id"] for booking in completed]

    completed = _retrying("complete_past_bookings", _sweep)

    logger.info(
        "past bookings completed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                cutoff=now,
                completed_count=len(completed),
            )
        },
    )
    return completed
