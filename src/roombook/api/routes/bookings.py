"""Booking endpoints.

POST   /bookings                 → create pending booking (user)
GET    /bookings                 → own bookings; admins may list all
GET    /bookings/{id}            → owner or admin
DELETE /bookings/{id}            → owner cancels own pending booking
POST   /bookings/{id}/status     → admin approves / rejects / cancels / completes
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field

from roombook.api.auth import CurrentUser, get_current_user
from roombook.api.errors import conflict_response, invalid_window_response
from roombook.api.rbac import require_role
from roombook.domain import bookings as booking_service
from roombook.domain.conflicts import InvalidWindowError, ReservationStatus
from roombook.infra.time import as_utc
from roombook.observability.correlation import get_correlation_id
from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)

CONFLICT_MESSAGE = "Time slot is already booked"


class CreateBookingRequest(BaseModel):
    room_id: UUID
    start_time: datetime
    end_time: datetime
    event_description: str | None = Field(None, max_length=2000)
    guest_count: int | None = Field(None, ge=1)
    proposal_file: str | None = None
    notes: str | None = Field(None, max_length=2000)


class UpdateStatusRequest(BaseModel):
    status: ReservationStatus


@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Request a room for a time window.

    Returns 201 with the pending booking, 400 for an invalid window, 404 for
    an unknown or inactive room, 409 with every conflicting booking, 503 when
    the store stays unavailable.
    """
    correlation_id = get_correlation_id()

    try:
        booking = booking_service.create_booking(
            room_id=str(body.room_id),
            user_id=user.id,
            start_time=body.start_time,
            end_time=body.end_time,
            event_description=body.event_description,
            guest_count=body.guest_count,
            proposal_file=body.proposal_file,
            notes=body.notes,
            correlation_id=correlation_id,
        )
    except InvalidWindowError:
        return invalid_window_response()
    except booking_service.RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found or inactive")
    except booking_service.BookingConflictError as exc:
        return conflict_response(exc, CONFLICT_MESSAGE)
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {"booking": booking}


@router.get("")
def list_bookings(
    user: CurrentUser = Depends(get_current_user),
    all_users: bool = Query(False, alias="all", description="Admins only: every user's bookings"),
    status: ReservationStatus | None = Query(None),
    room_id: UUID | None = Query(None),
    from_time: datetime | None = Query(None, alias="from"),
    to_time: datetime | None = Query(None, alias="to"),
    is_tour: bool | None = Query(None),
) -> dict:
    """List bookings, newest first.

    Regular users always get their own. ``all=true`` is honoured for admins.
    """
    if all_users and not user.is_admin:
        raise HTTPException(status_code=403, detail="Insufficient role")

    bookings = booking_service.search_bookings(
        user_id=None if all_users else user.id,
        room_id=str(room_id) if room_id else None,
        status=status.value if status else None,
        from_time=as_utc(from_time) if from_time else None,
        to_time=as_utc(to_time) if to_time else None,
        is_tour=is_tour,
    )
    return {"bookings": bookings}


@router.get("/{booking_id}")
def get_booking(
    booking_id: UUID = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        booking = booking_service.get_visible_booking(
            str(booking_id), user_id=user.id, is_admin=user.is_admin
        )
    except booking_service.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    return {"booking": booking}


@router.delete("/{booking_id}")
def cancel_booking(
    booking_id: UUID = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Cancel the caller's own booking. Only pending bookings can be cancelled."""
    try:
        booking = booking_service.cancel_booking(
            str(booking_id),
            user_id=user.id,
            correlation_id=get_correlation_id(),
        )
    except booking_service.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except booking_service.InvalidStatusTransitionError:
        raise HTTPException(status_code=400, detail="Only pending bookings can be cancelled")
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {"booking": booking}


@router.post("/{booking_id}/status")
def update_booking_status(
    body: UpdateStatusRequest,
    booking_id: UUID = Path(..., description="Booking UUID"),
    admin: CurrentUser = Depends(require_role("admin")),
) -> dict:
    """Admin status change (approve, reject, cancel, complete)."""
    correlation_id = get_correlation_id()

    try:
        booking = booking_service.update_booking_status(
            str(booking_id),
            body.status.value,
            actor_id=admin.id,
            is_admin=True,
            correlation_id=correlation_id,
        )
    except booking_service.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except booking_service.InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    logger.info(
        "admin booking status update",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking_id,
                status=body.status,
            )
        },
    )
    return {"booking": booking}
