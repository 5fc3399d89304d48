"""Room endpoints.

GET   /rooms                       → active rooms (public)
GET   /rooms/{id}/schedule         → live bookings in [from, to) (public, calendars)
GET   /rooms/{id}/availability     → conflict probe for a window (public)
POST  /rooms                       → create (admin)
PATCH /rooms/{id}                  → partial update (admin)
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from roombook.api.auth import CurrentUser
from roombook.api.errors import invalid_window_response
from roombook.api.rbac import require_role
from roombook.domain import bookings as booking_service
from roombook.domain.conflicts import InvalidWindowError
from roombook.infra.db import txn
from roombook.infra.repositories import rooms_repository
from roombook.infra.time import utc_now
from roombook.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])

_DEFAULT_SCHEDULE_DAYS = 30

# An explicit null in PATCH clears these columns
_NULLABLE_ROOM_FIELDS = frozenset({"description"})


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    capacity: int = Field(..., gt=0)
    facilities: list[str] = Field(default_factory=list)
    is_active: bool = True


class UpdateRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    capacity: int | None = Field(None, gt=0)
    facilities: list[str] | None = None
    is_active: bool | None = None


@router.get("")
def list_rooms() -> dict:
    with txn() as cur:
        rooms = rooms_repository.list_rooms(cur)
    return {"rooms": rooms}


@router.get("/{room_id}/schedule")
def room_schedule(
    room_id: UUID = Path(..., description="Room UUID"),
    from_time: datetime | None = Query(None, alias="from"),
    to_time: datetime | None = Query(None, alias="to"),
):
    """Pending and approved bookings for a room, for calendar rendering.

    Defaults to the next 30 days from now.
    """
    from_time = from_time or utc_now()
    to_time = to_time or from_time + timedelta(days=_DEFAULT_SCHEDULE_DAYS)

    try:
        bookings = booking_service.room_schedule(str(room_id), from_time, to_time)
    except InvalidWindowError:
        return invalid_window_response()
    except booking_service.RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {"room_id": str(room_id), "bookings": bookings}


@router.get("/{room_id}/availability")
def room_availability(
    room_id: UUID = Path(..., description="Room UUID"),
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
):
    """Report whether a window is free, with the conflicting bookings if not.

    Advisory only: POST /bookings re-checks under a lock.
    """
    try:
        decision = booking_service.find_conflicts(str(room_id), start_time, end_time)
    except InvalidWindowError:
        return invalid_window_response()
    except booking_service.RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except booking_service.TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {
        "available": decision.admitted,
        "conflicts": [entry.to_dict() for entry in decision.conflicts],
    }


@router.post("", status_code=201)
def create_room(
    body: CreateRoomRequest,
    admin: CurrentUser = Depends(require_role("admin")),
) -> dict:
    """Create a room. Fails with 409 if the name is taken."""
    from psycopg2 import errors as pg_errors

    with txn() as cur:
        try:
            room = rooms_repository.insert_room(
                cur,
                name=body.name,
                description=body.description,
                capacity=body.capacity,
                facilities=body.facilities,
                is_active=body.is_active,
            )
        except pg_errors.UniqueViolation:
            raise HTTPException(status_code=409, detail="Room name already exists")

    return room


@router.patch("/{room_id}")
def update_room(
    body: UpdateRoomRequest,
    room_id: UUID = Path(..., description="Room UUID"),
    admin: CurrentUser = Depends(require_role("admin")),
) -> dict:
    """Partial update. Deactivating a room leaves its bookings untouched."""
    from psycopg2 import errors as pg_errors

    changes = body.model_dump(exclude_unset=True)
    null_fields = sorted(
        key for key, value in changes.items() if value is None and key not in _NULLABLE_ROOM_FIELDS
    )
    if null_fields:
        raise HTTPException(
            status_code=400, detail=f"Fields cannot be null: {', '.join(null_fields)}"
        )
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    with txn() as cur:
        try:
            room = rooms_repository.update_room(cur, str(room_id), changes)
        except pg_errors.UniqueViolation:
            raise HTTPException(status_code=409, detail="Room name already exists")

    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    return room
