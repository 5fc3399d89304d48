"""Redaction for log fields. Anything user-supplied goes through here before logging."""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# Indonesian and international mobile formats both match this loose pattern
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")

_MASK = "[REDACTED]"

# Free-text fields are never logged, only their length
_FREE_TEXT_KEYS = frozenset({"event_description", "notes", "proposal_file", "name", "email"})


def redact_string(value: str) -> str:
    """Mask email addresses and phone numbers inside a string."""
    return _PHONE_PATTERN.sub(_MASK, _EMAIL_PATTERN.sub(_MASK, value))


def redact_value(value: Any) -> str:
    """Render a value for logging without leaking personal data."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(value.keys())})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**fields: Any) -> dict[str, str]:
    """Build an ``extra_fields`` dict where every value is redacted.

    Keys listed as free text are replaced by their length.
    """
    ctx: dict[str, str] = {}
    for key, value in fields.items():
        if key in _FREE_TEXT_KEYS and isinstance(value, str):
            ctx[f"{key}_len"] = str(len(value))
        else:
            ctx[key] = redact_value(value)
    return ctx
