"""Usage summaries over booking rows for the admin reports endpoint.

Pure functions over booking dicts as returned by bookings_repository, so they
can be tested without a database. Tour bookings are reported on their own and
left out of the per-room figures.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone

from roombook.domain.conflicts import ReservationStatus

# Bookings longer than a day are treated as data errors for averages
_MAX_DURATION_HOURS = 24.0


def _parse(ts: str | datetime) -> datetime:
    return ts if isinstance(ts, datetime) else datetime.fromisoformat(ts)


def _utc_hour(ts: str | datetime) -> int:
    value = _parse(ts)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.hour


def duration_hours(booking: dict) -> float:
    start = _parse(booking["start_time"])
    end = _parse(booking["end_time"])
    return (end - start).total_seconds() / 3600


def _status_counts(bookings: list[dict]) -> dict[str, int]:
    counts = Counter(b["status"] for b in bookings)
    return {status.value: counts.get(status.value, 0) for status in ReservationStatus}


def _average_duration(bookings: list[dict]) -> float:
    valid = [h for h in map(duration_hours, bookings) if 0 < h <= _MAX_DURATION_HOURS]
    if not valid:
        return 0.0
    return round(sum(valid) / len(valid), 1)


def _peak_hour(bookings: list[dict]) -> int | None:
    """Most common start hour (UTC). Ties go to the earliest hour."""
    if not bookings:
        return None
    hours = Counter(_utc_hour(b["start_time"]) for b in bookings)
    return min(hours, key=lambda h: (-hours[h], h))


def _group_summary(bookings: list[dict]) -> dict:
    return {
        "total": len(bookings),
        "by_status": _status_counts(bookings),
        "total_guests": sum(b.get("guest_count") or 0 for b in bookings),
        "average_duration_hours": _average_duration(bookings),
        "peak_hour": _peak_hour(bookings),
    }


def summarize_bookings(bookings: list[dict], rooms: list[dict]) -> dict:
    """Build the usage summary.

    Args:
        bookings: Booking dicts (any status) in the reporting range.
        rooms: Room dicts; every room appears in ``rooms`` output even with
            no bookings.

    Returns:
        {
            "totals": {...},           # all bookings, tours included
            "rooms": [{room_id, name, capacity, ...}],
            "tours": {...},
            "approval_rate": float,    # approved+completed / decided
        }
    """
    room_bookings = [b for b in bookings if not b.get("is_tour")]
    tour_bookings = [b for b in bookings if b.get("is_tour")]

    by_room: dict[str, list[dict]] = {room["id"]: [] for room in rooms}
    for booking in room_bookings:
        by_room.setdefault(booking["room_id"], []).append(booking)

    names = {room["id"]: room for room in rooms}
    per_room = []
    for room_id, items in by_room.items():
        room = names.get(room_id, {})
        entry = {
            "room_id": room_id,
            "name": room.get("name"),
            "capacity": room.get("capacity"),
        }
        entry.update(_group_summary(items))
        per_room.append(entry)
    per_room.sort(key=lambda r: (-r["total"], r["name"] or ""))

    totals = _status_counts(bookings)
    accepted = totals["approved"] + totals["completed"]
    decided = accepted + totals["rejected"]

    return {
        "totals": _group_summary(bookings),
        "rooms": per_room,
        "tours": _group_summary(tour_bookings),
        "approval_rate": round(accepted / decided, 4) if decided else 0.0,
    }
