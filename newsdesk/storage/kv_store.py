"""
Async key-value store adapter.

All reads go through :func:`decode_stored_value`, which turns whatever the
backend hands back (``None``, a JSON string, or an already-deserialized
list/dict) into one of the ``Stored*`` variants. Business code only ever
sees those variants, never raw backend types.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import orjson
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Upstream key-value store failure."""
    pass


# ── Stored value variants ───────────────────────────────────────────────────

class StoredValue:
    """Base class for decoded store values."""
    kind = "value"


@dataclass(frozen=True)
class StoredMissing(StoredValue):
    """Key absent (or expired)."""
    kind = "missing"


@dataclass(frozen=True)
class StoredList(StoredValue):
    items: list[Any]
    kind = "list"


@dataclass(frozen=True)
class StoredObject(StoredValue):
    data: dict[str, Any]
    kind = "object"


@dataclass(frozen=True)
class StoredText(StoredValue):
    """Valid JSON scalar, or plain text."""
    text: str
    kind = "text"


@dataclass(frozen=True)
class StoredCorrupt(StoredValue):
    """Value that could not be decoded."""
    raw: Any
    error: str
    kind = "corrupt"


def decode_stored_value(raw: Any) -> StoredValue:
    """Normalize any accepted backend representation.

    Args:
        raw: Value as returned by the store client

    Returns:
        One of the ``Stored*`` variants
    """
    if raw is None:
        return StoredMissing()
    if isinstance(raw, list):
        return StoredList(raw)
    if isinstance(raw, dict):
        return StoredObject(raw)
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            return StoredCorrupt(raw, str(e))
        if isinstance(parsed, list):
            return StoredList(parsed)
        if isinstance(parsed, dict):
            return StoredObject(parsed)
        text = raw.decode("utf-8", "replace") if isinstance(raw, (bytes, bytearray)) else raw
        return StoredText(text)
    return StoredCorrupt(raw, f"Unsupported value type: {type(raw).__name__}")


def as_id_list(value: StoredValue) -> list[str]:
    """Canonical id list; anything other than a list yields an empty list."""
    if isinstance(value, StoredList):
        return [str(item) for item in value.items if item is not None]
    return []


def as_record(value: StoredValue) -> dict[str, Any] | None:
    """Canonical record mapping, or None when the value is not an object."""
    if isinstance(value, StoredObject):
        return dict(value.data)
    return None


def encode_value(value: Any) -> str:
    """Serialize a value for storage."""
    return orjson.dumps(value).decode("utf-8")


# ── Store client ────────────────────────────────────────────────────────────

class KVStore:
    """Thin async facade over a Redis client.

    Backend exceptions are re-raised as :class:`StoreError`.
    """

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "KVStore":
        """Create a store from a ``redis://`` or ``rediss://`` URL."""
        return cls(Redis.from_url(url, decode_responses=True))

    async def _call(self, operation: str, coro) -> Any:
        try:
            return await coro
        except RedisError as e:
            logger.error("Key-value store operation failed", operation=operation, error=str(e))
            raise StoreError(f"{operation} failed: {e}") from e

    async def get(self, key: str) -> Any:
        return await self._call("get", self.client.get(key))

    async def get_value(self, key: str) -> StoredValue:
        """Fetch and decode a single key."""
        return decode_stored_value(await self.get(key))

    async def setex(self, key: str, ttl_seconds: int, value: Any) -> None:
        if not isinstance(value, str):
            value = encode_value(value)
        await self._call("setex", self.client.setex(key, ttl_seconds, value))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("delete", self.client.delete(*keys))

    async def keys(self, pattern: str) -> list[str]:
        """All keys matching a glob pattern (incremental SCAN)."""
        async def scan() -> list[str]:
            return [key async for key in self.client.scan_iter(match=pattern)]
        return await self._call("scan", scan())

    async def zrange_all(self, key: str) -> list[Any]:
        return await self._call("zrange", self.client.zrange(key, 0, -1))

    async def zrange_by_score(self, key: str, min_score: float, max_score: float) -> list[Any]:
        return await self._call("zrangebyscore", self.client.zrangebyscore(key, min_score, max_score))

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        return await self._call("zadd", self.client.zadd(key, dict(mapping)))

    async def zrem(self, key: str, *members: Any) -> int:
        if not members:
            return 0
        return await self._call("zrem", self.client.zrem(key, *members))

    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("sadd", self.client.sadd(key, *members))

    async def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("srem", self.client.srem(key, *members))

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._call("sismember", self.client.sismember(key, member)))

    async def close(self) -> None:
        await self.client.aclose()
