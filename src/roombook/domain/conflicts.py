"""Time-slot conflict detection for room and tour reservations.

Overlap formula:  (candidate.start < existing.end) AND (existing.start < candidate.end)

Windows are half-open [start, end), so a booking that ends at 11:00 and one
that starts at 11:00 do not conflict (back-to-back bookings are allowed).

Only live statuses generate conflicts: pending, approved. The tour resource is
an ordinary room here; callers scope ``existing`` to the right room_id.

The same rule is enforced by the no_live_booking_overlap exclusion constraint
(tstzrange '[)' with &&), see migrations/sql/002_no_live_booking_overlap.sql.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Union


class ReservationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


LIVE_STATUSES: frozenset[str] = frozenset(
    {ReservationStatus.PENDING.value, ReservationStatus.APPROVED.value}
)


class InvalidWindowError(ValueError):
    """Raised when a window does not satisfy start < end."""

    def __init__(self, start: datetime, end: datetime) -> None:
        self.start = start
        self.end = end
        super().__init__(f"start ({start.isoformat()}) must be before end ({end.isoformat()})")


@dataclass(frozen=True)
class Window:
    """Half-open time interval [start, end)."""

    start: datetime
    end: datetime

    def validate(self) -> "Window":
        if not self.start < self.end:
            raise InvalidWindowError(self.start, self.end)
        return self


@dataclass(frozen=True)
class ExistingReservation:
    """Reservation already on file for the same resource."""

    id: str
    start: datetime
    end: datetime
    status: str

    @property
    def window(self) -> Window:
        return Window(self.start, self.end)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
        }


@dataclass(frozen=True)
class Admitted:
    admitted = True
    conflicts: tuple[ExistingReservation, ...] = ()


@dataclass(frozen=True)
class Rejected:
    conflicts: tuple[ExistingReservation, ...]
    admitted = False


Decision = Union[Admitted, Rejected]


def _status_value(status: ReservationStatus | str) -> str:
    return status.value if isinstance(status, ReservationStatus) else status


def windows_overlap(a: Window, b: Window) -> bool:
    """True if half-open windows ``a`` and ``b`` share any instant."""
    return a.start < b.end and b.start < a.end


def check_conflicts(
    candidate: Window,
    existing: Iterable[ExistingReservation],
    *,
    live_statuses: Iterable[ReservationStatus | str] = LIVE_STATUSES,
) -> Decision:
    """Decide whether ``candidate`` may be admitted for a resource.

    Args:
        candidate: Requested window.
        existing: Reservations already on file for the same resource. May
            contain any status; only ``live_statuses`` are considered.
        live_statuses: Statuses that block new bookings.

    Returns:
        Admitted() if nothing live overlaps, otherwise Rejected with every
        overlapping entry in input order.

    Raises:
        InvalidWindowError: If candidate.start >= candidate.end. Checked
            before ``existing`` is read.
    """
    candidate.validate()

    live = {_status_value(s) for s in live_statuses}
    conflicts = tuple(
        entry
        for entry in existing
        if _status_value(entry.status) in live and windows_overlap(candidate, entry.window)
    )

    if conflicts:
        return Rejected(conflicts=conflicts)
    return Admitted()
