"""Reports endpoints for the admin dashboard.

READ-only usage summaries: per-room utilisation, tours, approval rate.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import psycopg2
from fastapi import APIRouter, Depends, HTTPException, Query

from roombook.api.auth import CurrentUser
from roombook.api.errors import invalid_window_response
from roombook.api.rbac import require_role
from roombook.domain.analytics import summarize_bookings
from roombook.domain.conflicts import InvalidWindowError, Window
from roombook.infra.time import as_utc, utc_now
from roombook.observability.logging import get_logger

router = APIRouter(prefix="/reports", tags=["reports"])

logger = get_logger(__name__)


def _default_range() -> tuple[datetime, datetime]:
    """Return default range: last 30 days up to now."""
    to_time = utc_now()
    return to_time - timedelta(days=30), to_time


def _load(from_time: datetime, to_time: datetime) -> tuple[list[dict], list[dict]]:
    from roombook.infra.db import txn
    from roombook.infra.repositories.bookings_repository import list_bookings
    from roombook.infra.repositories.rooms_repository import list_rooms

    with txn() as cur:
        rooms = list_rooms(cur, include_inactive=True)
        bookings = list_bookings(cur, from_time=from_time, to_time=to_time, limit=None)
    return bookings, rooms


@router.get("/summary")
def get_summary(
    from_time: datetime | None = Query(None, alias="from"),
    to_time: datetime | None = Query(None, alias="to"),
    admin: CurrentUser = Depends(require_role("admin")),
):
    """Usage summary for bookings intersecting [from, to).

    Defaults to the last 30 days.
    """
    default_from, default_to = _default_range()
    from_time = as_utc(from_time) if from_time else default_from
    to_time = as_utc(to_time) if to_time else default_to

    try:
        Window(from_time, to_time).validate()
    except InvalidWindowError:
        return invalid_window_response()

    try:
        bookings, rooms = _load(from_time, to_time)
    except psycopg2.OperationalError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    summary = summarize_bookings(bookings, rooms)
    return {
        "from": from_time.isoformat(),
        "to": to_time.isoformat(),
        **summary,
    }
