"""
Timing of network operations.

``timed`` wraps sync and async callables alike. Durations above
REALTIME_PERF_THRESHOLD_MS are logged as warnings; tracking is switched off
entirely with REALTIME_PERF_TRACKING.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar, cast

from realtime_mqtt.logging_abstraction import get_logger

__all__ = ["measure", "measure_time", "timed"]

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since a time.perf_counter() reading."""
    return (time.perf_counter() - start_time) * 1000


@contextmanager
def measure(operation: str) -> Iterator[None]:
    from realtime_mqtt.const import REALTIME_PERF_THRESHOLD_MS, REALTIME_PERF_TRACKING

    if not REALTIME_PERF_TRACKING:
        yield
        return
    started = time.perf_counter()
    try:
        yield
    finally:
        _log_timing(operation, measure_time(started), REALTIME_PERF_THRESHOLD_MS)


def timed(operation_name: str | None = None) -> Callable[[F], F]:
    """
    Decorator timing each call of the wrapped function or coroutine function.

    Example:
        @timed("mqtt_connect")
        async def connect(...):
            ...
    """

    def decorator(func: F) -> F:
        operation = operation_name or func.__name__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with measure(operation):
                    return await func(*args, **kwargs)

            return cast("F", async_wrapper)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with measure(operation):
                return func(*args, **kwargs)

        return cast("F", wrapper)

    return decorator


def _log_timing(operation: str, elapsed_ms: float, threshold_ms: int) -> None:
    exceeded = elapsed_ms > threshold_ms
    context = {
        "operation": operation,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": exceeded,
    }
    if exceeded:
        logger.warning(
            "[%s] completed in %.1fms (threshold: %dms)",
            operation,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("[%s] completed in %.1fms", operation, elapsed_ms, extra=context)
