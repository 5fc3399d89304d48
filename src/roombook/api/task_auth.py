"""Authentication for worker task endpoints.

Accepts a Google-signed OIDC token (scheduler / Cloud Tasks) or, in local dev
only, a shared secret header.
"""

from __future__ import annotations

import os

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Local dev audience - enables X-Internal-Task-Secret fallback
LOCAL_DEV_AUDIENCE = "roombook-tasks-local"


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def verify_task_oidc(token: str) -> bool:
    """Verify a Google-signed OIDC token for TASKS_OIDC_AUDIENCE.

    Fails closed when the audience is not configured. If
    TASKS_OIDC_SERVICE_ACCOUNT is set, the token email must match it.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as exc:
        logger.warning(
            "task OIDC verification failed",
            extra={"extra_fields": safe_log_context(error_type=type(exc).__name__)},
        )
        return False

    expected_email = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "task OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(reason="service_account_mismatch")},
        )
        return False

    return True


def verify_task_auth(request: Request) -> bool:
    """Verify task authentication via OIDC or internal secret (local dev only)."""
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        if internal_secret and request.headers.get("X-Internal-Task-Secret", "") == internal_secret:
            return True

    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(reason="missing_bearer_token")},
        )
        return False
    return verify_task_oidc(token)
