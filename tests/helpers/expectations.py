"""Exception assertion helpers shared by the unit tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
TException = TypeVar("TException", bound=BaseException)


def _check_message(err: BaseException, match: str | None) -> None:
    if match is not None and match not in str(err):
        message = f"Expected '{match}' in exception message, got '{err}'"
        raise AssertionError(message)


def expect_exception(
    func: Callable[P, object],
    exception_type: type[TException],
    *args: P.args,
    match: str | None = None,
    **kwargs: P.kwargs,
) -> TException:
    """Call ``func`` and return the raised exception, optionally checking its message."""
    try:
        _ = func(*args, **kwargs)
    except exception_type as err:
        _check_message(err, match)
        return err
    message = f"Expected {exception_type.__name__} to be raised"
    raise AssertionError(message)  # pragma: no cover


async def expect_async_exception(
    func: Callable[P, Awaitable[object]],
    exception_type: type[TException],
    *args: P.args,
    match: str | None = None,
    **kwargs: P.kwargs,
) -> TException:
    """Await ``func`` and return the raised exception, optionally checking its message."""
    try:
        _ = await func(*args, **kwargs)
    except exception_type as err:
        _check_message(err, match)
        return err
    message = f"Expected {exception_type.__name__} to be raised"
    raise AssertionError(message)  # pragma: no cover
