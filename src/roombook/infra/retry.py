"""Bounded retry with exponential backoff for transient store failures.

Transient: psycopg2.OperationalError and its subclasses, which cover lost
connections, statement timeouts (QueryCanceledError), deadlocks and
serialization failures (TransactionRollbackError). Anything else propagates
on the first attempt.
"""

from __future__ import annotations

import os
import random
import time
from typing import Callable, TypeVar

import psycopg2

from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

logger = get_logger(__name__)

T = TypeVar("T")

# Overridable through the DB_RETRY_* environment variables
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 100
DEFAULT_MAX_DELAY_MS = 2000
JITTER_MAX_MS = 100

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (psycopg2.OperationalError,)


class RetriesExhaustedError(Exception):
    """Raised when every attempt failed with a transient error."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


def _settings() -> tuple[int, int, int]:
    return (
        int(os.environ.get("DB_RETRY_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
        int(os.environ.get("DB_RETRY_BASE_DELAY_MS", DEFAULT_BASE_DELAY_MS)),
        int(os.environ.get("DB_RETRY_MAX_DELAY_MS", DEFAULT_MAX_DELAY_MS)),
    )


def backoff_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2^(attempt-1), capped, plus jitter."""
    delay = min(base_delay_ms * (2 ** (attempt - 1)), max_delay_ms)
    return delay + random.uniform(0, JITTER_MAX_MS)


def run_with_retries(
    fn: Callable[[], T],
    *,
    operation: str,
    max_attempts: int | None = None,
    base_delay_ms: int | None = None,
    max_delay_ms: int | None = None,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds or attempts run out.

    Args:
        fn: Zero-arg callable. Must be safe to re-run, e.g. a whole
            transaction that rolled back.
        operation: Name used in logs and in the final error.
        max_attempts: Total attempts including the first (env default).
        base_delay_ms / max_delay_ms: Backoff bounds (env defaults).
        sleep: Defaults to time.sleep.

    Raises:
        RetriesExhaustedError: After ``max_attempts`` transient failures.
    """
    env_attempts, env_base, env_max = _settings()
    max_attempts = max(1, max_attempts if max_attempts is not None else env_attempts)
    base_delay_ms = base_delay_ms if base_delay_ms is not None else env_base
    max_delay_ms = max_delay_ms if max_delay_ms is not None else env_max
    sleep = sleep or time.sleep

    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except TRANSIENT_ERRORS as exc:
            last_error = exc
            if attempt == max_attempts:
                break
            delay_ms = backoff_delay_ms(attempt, base_delay_ms, max_delay_ms)
            logger.warning(
                "transient store failure, retrying",
                extra={
                    "extra_fields": safe_log_context(
                        operation=operation,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_ms=round(delay_ms),
                        error_type=type(exc).__name__,
                    )
                },
            )
            sleep(delay_ms / 1000)

    logger.error(
        "transient store failure, retries exhausted",
        extra={
            "extra_fields": safe_log_context(
                operation=operation,
                attempts=max_attempts,
                error_type=type(last_error).__name__,
            )
        },
    )
    raise RetriesExhaustedError(operation, max_attempts, last_error)
