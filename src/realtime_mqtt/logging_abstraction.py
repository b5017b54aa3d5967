"""Structured logging for the realtime client.

Every module logs through a ``RealtimeLogger`` obtained from ``get_logger``.
Output handlers live on the package logger only, so child loggers inherit
them through propagation and are never configured twice.

Records carry an optional ``extra`` mapping which both formatters render as
structured context, along with the active correlation id.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, override

from realtime_mqtt.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "RealtimeLogger",
    "configure_logging",
    "get_logger",
]

_state = {"configured": False}


def _context(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return {str(k): v for k, v in extra_data.items()}
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        if context := _context(record):
            document["context"] = context
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            document["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(document, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single-line console format with a short correlation id and trailing context."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        line = super().format(record)
        if context := _context(record):
            line += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return line


def _file_handler(target: str | Path) -> logging.Handler | None:
    path = Path(target)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: Failed to open log file {path}: {e}", file=sys.stderr)
        return None


def _human_handler(output: str) -> logging.Handler:
    if output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if output == "stderr":
        return logging.StreamHandler(sys.stderr)
    return _file_handler(output) or logging.StreamHandler(sys.stdout)


def configure_logging(
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
    debug: bool | None = None,
    force: bool = False,
) -> logging.Logger:
    """Attach output handlers to the package logger.

    Args:
        log_format: "json", "human" or "both"
        json_file: Destination of JSON records (JSON output is skipped without one)
        human_output: "stdout", "stderr" or a file path
        debug: Log at DEBUG instead of INFO (defaults to REALTIME_DEBUG)

    Only the first call has an effect unless ``force`` is set.
    """
    from realtime_mqtt.const import (
        REALTIME_DEBUG,
        REALTIME_LOG_FORMAT,
        REALTIME_LOG_HUMAN_OUTPUT,
        REALTIME_LOG_JSON_FILE,
        REALTIME_LOG_NAME,
    )

    package_logger = logging.getLogger(REALTIME_LOG_NAME)
    if _state["configured"] and not force:
        return package_logger

    log_format = log_format or REALTIME_LOG_FORMAT
    json_file = json_file or REALTIME_LOG_JSON_FILE
    human_output = human_output or REALTIME_LOG_HUMAN_OUTPUT

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if log_format in ("json", "both") and json_file:
        json_handler = _file_handler(json_file)
        if json_handler is not None:
            json_handler.setFormatter(JSONFormatter())
            package_logger.addHandler(json_handler)

    if log_format in ("human", "both"):
        human_handler = _human_handler(human_output or "stdout")
        human_handler.setFormatter(HumanReadableFormatter())
        package_logger.addHandler(human_handler)

    if debug is None:
        debug = REALTIME_DEBUG
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    _state["configured"] = True
    return package_logger


class RealtimeLogger(logging.LoggerAdapter[logging.Logger]):
    """Adapter accepting ``extra=`` as structured context on every call.

    ``extra`` is moved under the ``extra_data`` record attribute so it can
    never clash with the standard LogRecord fields.
    """

    def __init__(self, logger: logging.Logger) -> None:
        super().__init__(logger, None)

    @override
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.pop("extra", None)
        if extra:
            kwargs["extra"] = {"extra_data": dict(extra)}
        return msg, kwargs

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        """Handlers that will receive this logger's records."""
        handlers: list[logging.Handler] = []
        current: logging.Logger | None = self.logger
        while current is not None:
            handlers.extend(current.handlers)
            if not current.propagate:
                break
            current = current.parent
        return handlers


def get_logger(name: str) -> RealtimeLogger:
    configure_logging()
    return RealtimeLogger(logging.getLogger(name))
