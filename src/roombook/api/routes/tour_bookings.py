"""Tour booking endpoint.

The tour is one shared pseudo-room (looked up by TOUR_ROOM_NAME). Tour
bookings go through the same write path as rooms; only the room is fixed.
"""

from __future__ import annotations

import os
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from roombook.api.auth import CurrentUser, get_current_user
from roombook.api.errors import conflict_response, invalid_window_response
from roombook.domain import bookings as booking_service
from roombook.domain.conflicts import InvalidWindowError, Window
from roombook.infra.time import as_utc
from roombook.observability.correlation import get_correlation_id
from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

router = APIRouter(prefix="/tour-bookings", tags=["tours"])

logger = get_logger(__name__)

CONFLICT_MESSAGE = "Tour time slot is already booked"


class CreateTourBookingRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    event_description: str | None = Field(None, max_length=2000)
    guest_count: int | None = Field(None, ge=1)
    proposal_file: str | None = None
    notes: str | None = Field(None, max_length=2000)
    special_requests: str | None = Field(None, max_length=500)


def _tour_config() -> dict[str, str]:
    return {
        "room_name": os.environ.get("TOUR_ROOM_NAME", "Library Tour"),
        "tour_name": os.environ.get("TOUR_NAME", "Library Tour"),
        "tour_guide": os.environ.get("TOUR_GUIDE", "Library Staff"),
        "meeting_point": os.environ.get("TOUR_MEETING_POINT", "Main Entrance"),
    }


def _resolve_tour_room_id(room_name: str) -> str | None:
    from roombook.infra.db import txn
    from roombook.infra.repositories.rooms_repository import get_active_room_by_name

    with txn() as cur:
        room = get_active_room_by_name(cur, room_name)
    return room["id"] if room else None


@router.post("", status_code=201)
def create_tour_booking(
    body: CreateTourBookingRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Book the tour for a time window.

    Same status codes as POST /bookings; the response also carries tour_info.
    """
    correlation_id = get_correlation_id()
    config = _tour_config()

    try:
        Window(as_utc(body.start_time), as_utc(body.end_time)).validate()
    except InvalidWindowError:
        return invalid_window_response()

    room_id = _resolve_tour_room_id(config["room_name"])
    if room_id is None:
        logger.error(
            "tour room not found",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    tour_room_name=config["room_name"],
                )
            },
        )
        raise HTTPException(status_code=500, detail="Tour room not configured")

    tour = booking_service.TourDetails(
        name=config["tour_name"],
        guide=config["tour_guide"],
        meeting_point=config["meeting_point"],
    )

    try:
        booking = booking_service.create_booking(
            room_id=room_id,
            user_id=user.id,
            start_time=body.start_time,
            end_time=body.end_time,
            event_description=body.event_description
            or f"{tour.name} - {body.special_requests or 'Standard tour booking'}",
            guest_count=body.guest_count or 1,
            proposal_file=body.proposal_file,
            notes=body.notes or f"Tour booking with {tour.guide} guide",
            tour=tour,
            correlation_id=correlation_id,
        )
    except InvalidWindowError:
        return invalid_window_response()
    except booking_service.RoomNotFoundError:
        raise HTTPException(status_code=500, detail="Tour room not configured")
    except booking_service.BookingConflictError as exc:
        return conflict_response(exc, CONFLICT_MESSAGE)
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {
        "booking": booking,
        "tour_info": {
            "tour_name": tour.name,
            "tour_guide": tour.guide,
            "meeting_point": tour.meeting_point,
        },
    }
