"""structlog configuration and log-entry helpers for newsdesk."""

import json
import logging
import sys
import time
from typing import Any

import structlog
from structlog import processors, stdlib

from .config import get_settings

_CONSOLE_CALLSITE = processors.CallsiteParameterAdder(
    parameters=[processors.CallsiteParameter.FILENAME, processors.CallsiteParameter.LINENO]
)


def setup_logging(log_level: str | None = None, json_logging: bool | None = None) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        log_level: Level name; defaults to ``LOG_LEVEL``
        json_logging: One JSON object per line instead of console output;
            defaults to ``JSON_LOGGING``
    """
    settings = get_settings()
    level = getattr(logging, (log_level or settings.log_level).upper())
    as_json = settings.json_logging if json_logging is None else json_logging

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)

    chain: list[Any] = [
        stdlib.filter_by_level,
        stdlib.add_logger_name,
        stdlib.add_log_level,
        stdlib.PositionalArgumentsFormatter(),
        processors.TimeStamper(fmt="iso"),
        processors.StackInfoRenderer(),
        processors.format_exc_info,
    ]
    if as_json:
        chain.append(processors.JSONRenderer(serializer=json.dumps))
    else:
        chain += [_CONSOLE_CALLSITE, structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=chain,
        wrapper_class=stdlib.BoundLogger,
        logger_factory=stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_api_request(
    method: str,
    url: str,
    status_code: int | None = None,
    response_time: float | None = None,
    **extra: Any
) -> dict[str, Any]:
    """Fields for an outbound chat/search API call."""
    entry: dict[str, Any] = {"method": method, "url": url, **extra}
    if status_code is not None:
        entry["status_code"] = status_code
    if response_time is not None:
        entry["response_time"] = round(response_time, 3)
    return entry


def log_processing_stage(
    stage: str,
    input_count: int,
    output_count: int,
    duration: float | None = None,
    **extra: Any
) -> dict[str, Any]:
    """Fields for a filtering stage: how many records went in and stayed."""
    entry: dict[str, Any] = {
        "stage": stage,
        "input_count": input_count,
        "output_count": output_count,
        "dropped": input_count - output_count,
        **extra,
    }
    if duration is not None:
        entry["duration"] = round(duration, 3)
    return entry


def log_error(error: Exception, context: str | None = None, **extra: Any) -> dict[str, Any]:
    """Fields describing a caught exception.

    The message is stored under ``error_message`` so it never collides
    with structlog's positional ``event``.
    """
    entry: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **extra,
    }
    if context:
        entry["context"] = context
    return entry


class PerformanceLogger:
    """Logs start, completion and failure of a timed operation."""

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger):
        self.operation = operation
        self.logger = logger
        self.started: float | None = None

    def __enter__(self) -> "PerformanceLogger":
        self.started = time.perf_counter()
        self.logger.info("operation_started", operation=self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.started is None:
            return
        duration = round(time.perf_counter() - self.started, 3)
        if exc_type is None:
            self.logger.info("operation_completed", operation=self.operation, duration=duration)
        else:
            self.logger.error(
                "operation_failed",
                operation=self.operation,
                duration=duration,
                error_type=exc_type.__name__,
                error_message=str(exc_val) if exc_val else None,
            )


setup_logging()
