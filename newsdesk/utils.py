"""Utility functions for the newsdesk service."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch number into an aware datetime.

    Args:
        value: Timestamp as stored by the ingest webhook

    Returns:
        Parsed datetime or None if parsing fails
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        seconds = epoch_millis(value) / 1000
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Failed to parse timestamp", timestamp=str(value))
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def epoch_millis(value: float) -> float:
    """Epoch milliseconds from an epoch number in seconds or milliseconds.

    Values above 1e11 are already milliseconds (1e11 seconds is year 5138).
    """
    return value if value > 1e11 else value * 1000


def timestamp_sort_key(value: Any) -> float:
    """Sort key for stored timestamps; unparseable values sort oldest."""
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else 0.0


def utc_now_iso() -> str:
    """Current UTC time as an ISO string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_text(text: str, max_length: int, suffix: str = "... [truncated]") -> str:
    """Keep the first ``max_length`` characters, marking the cut with ``suffix``."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def chunk_list(items: list[T], chunk_size: int) -> list[list[T]]:
    """Consecutive slices of at most ``chunk_size`` items; the last may be short."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [items[start:start + chunk_size] for start in range(0, len(items), chunk_size)]


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
) -> T:
    """Await ``func`` until it succeeds, sleeping ``backoff_factor ** n`` between tries.

    Args:
        func: Zero-argument coroutine factory
        max_retries: Retries after the first attempt
        backoff_factor: Base of the exponential delay, in seconds
        exceptions: Exception types that trigger a retry; anything else propagates

    Raises:
        The exception from the final attempt
    """
    attempt = 0
    while True:
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_retries:
                logger.error("Giving up after retries", attempts=attempt + 1, error=str(e))
                raise
            delay = backoff_factor ** attempt
            attempt += 1
            logger.warning("Attempt failed, retrying", attempt=attempt, delay=delay, error=str(e))
            await asyncio.sleep(delay)


def validate_request_size(content_length: int | None, max_size_mb: int) -> bool:
    """False when a declared body length exceeds ``max_size_mb``; unknown lengths pass."""
    if content_length is None:
        return True
    return content_length <= max_size_mb * 1024 * 1024
