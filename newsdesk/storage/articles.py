"""
Persisted article (mention) records and their three indexes.

* ``mentions:z`` - sorted set; member is the serialized record, score is the
  ingestion time in epoch milliseconds.
* ``mentions:seen:canon`` - set of canonical URLs already ingested.
* ``mentions:seen`` - set of article ids already ingested.

A record reachable from the sorted set must be removed from all three
structures together. Removal here is best-effort without transactions:
the seen-sets are cleared before the sorted set, failures are reported, and
every removal is a no-op on an absent member, so callers may re-run a pass
until it succeeds.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from ..logging import get_logger
from ..utils import chunk_list, epoch_millis
from .kv_store import KVStore, StoreError, as_record, decode_stored_value, encode_value

logger = get_logger(__name__)

ZSET_KEY = "mentions:z"
SEEN_CANON_KEY = "mentions:seen:canon"
SEEN_ID_KEY = "mentions:seen"

MS_PER_DAY = 86_400_000


class ArticleIndex(Enum):
    """The three structures an article lives in."""
    TIMELINE = ZSET_KEY
    SEEN_CANON = SEEN_CANON_KEY
    SEEN_ID = SEEN_ID_KEY


class ArticleRecord(BaseModel):
    """Stored article; unknown fields are preserved."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    canon: str | None = None
    title: str | None = None
    summary: str | None = None
    link: str | None = None
    source: str | None = None
    origin: str | None = None
    ts: float | None = None

    @field_validator("id", "canon", "title", "summary", "link", "source", "origin", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str | None:
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        raise ValueError(f"Expected text, got {type(v).__name__}")

    @field_validator("ts", mode="before")
    @classmethod
    def lenient_ts(cls, v: Any) -> float | None:
        try:
            return float(v) if v is not None and not isinstance(v, bool) else None
        except (TypeError, ValueError):
            return None


@dataclass
class StoredArticle:
    """A sorted-set member and its decoded record (None if undecodable)."""
    raw: Any
    record: ArticleRecord | None


def parse_article(raw: Any) -> ArticleRecord | None:
    """Decode a sorted-set member; None when it is not a valid record."""
    data = as_record(decode_stored_value(raw))
    if data is None:
        return None
    try:
        return ArticleRecord.model_validate(data)
    except ValueError:
        return None


@dataclass
class RemovalReport:
    """Outcome of a multi-index removal."""
    requested: dict[str, int] = field(default_factory=dict)
    removed: dict[str, int] = field(default_factory=dict)
    batches: dict[str, list[int]] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    deferred: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_indexes(self) -> list[str]:
        return list(self.failures)


class ArticleStore:
    """Access to the mentions sorted set and its seen-sets."""

    def __init__(self, store: KVStore):
        self.store = store

    async def load_all(self) -> list[StoredArticle]:
        """Full scan of the sorted set."""
        members = await self.store.zrange_all(ZSET_KEY)
        return [StoredArticle(raw, parse_article(raw)) for raw in members]

    async def load_window(self, days: int, now_ms: float | None = None) -> list[StoredArticle]:
        """Members scored within the trailing ``days`` ending at ``now_ms``."""
        now_ms = now_ms if now_ms is not None else time.time() * 1000
        members = await self.store.zrange_by_score(ZSET_KEY, now_ms - days * MS_PER_DAY, now_ms)
        return [StoredArticle(raw, parse_article(raw)) for raw in members]

    async def add(self, record: ArticleRecord) -> str:
        """Store a record in all three structures; returns the serialized member."""
        score = epoch_millis(record.ts) if record.ts is not None else time.time() * 1000
        raw = encode_value(record.model_dump(exclude_none=True))
        await self.store.zadd(ZSET_KEY, {raw: score})
        if record.canon:
            await self.store.sadd(SEEN_CANON_KEY, record.canon)
        if record.id:
            await self.store.sadd(SEEN_ID_KEY, record.id)
        return raw

    async def is_seen(self, record: ArticleRecord) -> bool:
        """True if the canonical URL or id was already ingested."""
        if record.canon and await self.store.sismember(SEEN_CANON_KEY, record.canon):
            return True
        if record.id and await self.store.sismember(SEEN_ID_KEY, record.id):
            return True
        return False

    async def remove(
        self,
        members: list[Any],
        canons: list[str],
        ids: list[str],
        batch_size: int = 100,
    ) -> RemovalReport:
        """Remove entries from all three structures in fixed-size batches.

        The seen-sets go first and the sorted set last. A failing batch stops
        the remaining batches for that structure only. When either seen-set
        fails the sorted set is left untouched, so the next pass finds the
        same records again and finishes the job. Completed batches are not
        rolled back.
        """
        report = RemovalReport()
        for index, items in ((ArticleIndex.SEEN_CANON, canons), (ArticleIndex.SEEN_ID, ids)):
            await self._remove_index(report, index, items, self.store.srem, batch_size)

        if report.failures:
            report.deferred.append(ArticleIndex.TIMELINE.value)
            logger.warning(
                "Timeline removal deferred until seen-sets are cleared",
                index=ArticleIndex.TIMELINE.value,
                pending=len(members),
                failed_indexes=report.failed_indexes,
            )
        else:
            await self._remove_index(report, ArticleIndex.TIMELINE, members, self.store.zrem, batch_size)

        return report

    async def _remove_index(
        self,
        report: RemovalReport,
        index: ArticleIndex,
        items: list[Any],
        remove,
        batch_size: int,
    ) -> None:
        name = index.value
        report.requested[name] = len(items)
        report.removed[name] = 0
        report.batches[name] = []
        for batch in chunk_list(items, batch_size):
            try:
                await remove(name, *batch)
            except StoreError as e:
                logger.error(
                    "Index removal aborted",
                    index=name,
                    completed=report.removed[name],
                    remaining=len(items) - report.removed[name],
                    error=str(e),
                )
                report.failures[name] = str(e)
                return
            report.batches[name].append(len(batch))
            report.removed[name] += len(batch)
