"""Worker routes for booking maintenance tasks."""

from fastapi import APIRouter, HTTPException, Request

from roombook.api.task_auth import verify_task_auth
from roombook.domain.bookings import TransientStoreError, complete_past_bookings
from roombook.observability.correlation import get_correlation_id
from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])

logger = get_logger(__name__)


@router.post("/complete-past")
def handle_complete_past(request: Request) -> dict:
    """Mark approved bookings whose end_time has passed as completed.

    Triggered by a scheduler. Safe to repeat: already completed bookings are
    not touched again.
    """
    correlation_id = get_correlation_id()

    # Verify task authentication (OIDC or internal secret in local dev)
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        completed = complete_past_bookings(correlation_id=correlation_id)
    except TransientStoreError:
        raise HTTPException(status_code=503, detail="Booking store temporarily unavailable")

    return {"ok": True, "completed": len(completed), "booking_ids": completed}
