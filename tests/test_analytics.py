"""Tests for booking usage summaries."""

from datetime import timedelta, timezone

from helpers import ROOM_ID, TOUR_ROOM_ID, booking_dict, utc
from roombook.domain.analytics import duration_hours, summarize_bookings

OTHER_ROOM_ID = "66666666-6666-6666-6666-666666666666"

ROOMS = [
    {"id": ROOM_ID, "name": "Meeting Room", "capacity": 20},
    {"id": OTHER_ROOM_ID, "name": "Library Theater", "capacity": 100},
    {"id": TOUR_ROOM_ID, "name": "Library Tour", "capacity": 15},
]


def _b(n: int, *, room_id=ROOM_ID, hour=9, hours=2, status="approved", is_tour=False, guests=10):
    start = utc(2025, 3, 10, hour)
    return booking_dict(
        f"b{n}",
        room_id=room_id,
        start=start,
        end=start + timedelta(hours=hours),
        status=status,
        is_tour=is_tour,
        guest_count=guests,
    )


def test_duration_hours():
    assert duration_hours(_b(1, hours=3)) == 3.0


def test_empty_summary():
    summary = summarize_bookings([], ROOMS)

    assert summary["totals"]["total"] == 0
    assert summary["totals"]["peak_hour"] is None
    assert summary["approval_rate"] == 0.0
    assert {r["room_id"] for r in summary["rooms"]} == {ROOM_ID, OTHER_ROOM_ID, TOUR_ROOM_ID}
    assert all(r["total"] == 0 for r in summary["rooms"])


def test_status_counts_include_every_status():
    summary = summarize_bookings([_b(1, status="pending")], ROOMS)
    assert summary["totals"]["by_status"] == {
        "pending": 1,
        "approved": 0,
        "rejected": 0,
        "cancelled": 0,
        "completed": 0,
    }


def test_per_room_figures_exclude_tours():
    bookings = [
        _b(1),
        _b(2, hour=13),
        _b(3, room_id=OTHER_ROOM_ID),
        _b(4, room_id=TOUR_ROOM_ID, is_tour=True, guests=1),
    ]
    summary = summarize_bookings(bookings, ROOMS)

    rooms = {r["room_id"]: r for r in summary["rooms"]}
    assert rooms[ROOM_ID]["total"] == 2
    assert rooms[ROOM_ID]["total_guests"] == 20
    assert rooms[OTHER_ROOM_ID]["total"] == 1
    assert rooms[TOUR_ROOM_ID]["total"] == 0
    assert summary["tours"]["total"] == 1
    assert summary["totals"]["total"] == 4


def test_rooms_sorted_by_usage():
    bookings = [_b(1, room_id=OTHER_ROOM_ID), _b(2, room_id=OTHER_ROOM_ID, hour=13), _b(3)]
    summary = summarize_bookings(bookings, ROOMS)
    assert [r["name"] for r in summary["rooms"]] == ["Library Theater", "Meeting Room", "Library Tour"]


def test_average_duration_ignores_out_of_range():
    bookings = [_b(1, hours=2), _b(2, hours=3), _b(3, hours=30)]
    summary = summarize_bookings(bookings, ROOMS)
    assert summary["totals"]["average_duration_hours"] == 2.5


def test_peak_hour_tie_goes_to_earliest():
    bookings = [_b(1, hour=14), _b(2, hour=9), _b(3, hour=14), _b(4, hour=9)]
    assert summarize_bookings(bookings, ROOMS)["totals"]["peak_hour"] == 9


def test_peak_hour_in_utc():
    wib = timezone(timedelta(hours=7))
    booking = _b(1)
    booking["start_time"] = utc(2025, 3, 10, 3).astimezone(wib).isoformat()
    assert summarize_bookings([booking], ROOMS)["totals"]["peak_hour"] == 3


def test_approval_rate():
    bookings = [
        _b(1, status="approved"),
        _b(2, status="completed"),
        _b(3, status="rejected"),
        _b(4, status="pending"),
        _b(5, status="cancelled"),
    ]
    assert summarize_bookings(bookings, ROOMS)["approval_rate"] == round(2 / 3, 4)


def test_booking_for_unknown_room_still_reported():
    summary = summarize_bookings([_b(1, room_id="77777777-7777-7777-7777-777777777777")], ROOMS)
    unknown = [r for r in summary["rooms"] if r["name"] is None]
    assert len(unknown) == 1
    assert unknown[0]["total"] == 1
