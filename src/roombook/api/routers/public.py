"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from roombook.api.routes import bookings, reports, rooms, tour_bookings

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(bookings.router)
router.include_router(tour_bookings.router)
router.include_router(rooms.router)
router.include_router(reports.router)
