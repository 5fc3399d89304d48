"""Response bodies shared by the booking endpoints.

Conflict and invalid-window responses keep the flat {"error": ...} shape that
booking clients render, rather than FastAPI's {"detail": ...}.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse

from roombook.domain.bookings import BookingConflictError

INVALID_RANGE_MESSAGE = "Invalid time range: start time must be before end time"


def invalid_window_response() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": INVALID_RANGE_MESSAGE})


def conflict_response(exc: BookingConflictError, message: str) -> JSONResponse:
    """409 listing every conflicting booking (id, status, start_time, end_time)."""
    return JSONResponse(
        status_code=409,
        content={
            "error": message,
            "conflicts": [entry.to_dict() for entry in exc.conflicts],
        },
    )
