"""
Correlation ids for grouping log lines.

Each connect attempt and each inbound envelope runs in its own correlation
scope. The id lives in a ContextVar, so concurrent tasks never see each
other's ids.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_current_id: ContextVar[str | None] = ContextVar("realtime_correlation_id", default=None)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _current_id.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    """Bind ``correlation_id`` (None clears it); the token undoes the change."""
    return _current_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None, auto_generate: bool = True) -> Iterator[str | None]:
    """Scope a correlation id to a block, restoring the outer one on exit.

    Example:
        with correlation_context() as corr_id:
            dispatcher.dispatch(envelope)
    """
    if correlation_id is None and auto_generate:
        correlation_id = generate_correlation_id()
    token = _current_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _current_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current id, binding a fresh one first when unset."""
    current = _current_id.get()
    if current is None:
        current = generate_correlation_id()
        _ = _current_id.set(current)
    return current
