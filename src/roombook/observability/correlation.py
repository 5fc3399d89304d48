"""Correlation ID propagation across a request and the work it triggers."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str] = ContextVar("roombook_correlation_id", default="")


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Return the correlation ID bound to the current context ("" if none)."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> Token[str]:
    return _correlation_id.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)


@contextmanager
def bound_correlation_id(cid: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block.

    Generates a fresh ID when none is given. Used by the HTTP middleware and
    by worker sweeps that run outside a request.
    """
    cid = cid or new_correlation_id()
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
