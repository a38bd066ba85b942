"""Tests for article records and the three article indexes."""

import orjson
import pytest

from newsdesk.storage.articles import (
    MS_PER_DAY,
    SEEN_CANON_KEY,
    SEEN_ID_KEY,
    ZSET_KEY,
    ArticleRecord,
    ArticleStore,
    parse_article,
)
from newsdesk.storage.kv_store import KVStore


def test_parse_article_keeps_unknown_fields():
    record = parse_article('{"id": "a", "title": "T", "score": 0.9}')
    assert record.id == "a"
    assert record.model_extra == {"score": 0.9}


@pytest.mark.parametrize("raw", ["{broken", '["a"]', '"text"', '{"title": {"nested": 1}}'])
def test_parse_article_rejects_undecodable(raw):
    assert parse_article(raw) is None


def test_record_coerces_numeric_ids_and_bad_ts():
    record = ArticleRecord.model_validate({"id": 42, "ts": "soon"})
    assert record.id == "42"
    assert record.ts is None


@pytest.mark.asyncio
async def test_add_writes_all_three_structures(article_store, fake_redis):
    raw = await article_store.add(ArticleRecord(id="a1", canon="https://x.com/a", title="AI", ts=1_700_000_000_000))

    assert fake_redis.zsets[ZSET_KEY] == {raw: 1_700_000_000_000}
    assert fake_redis.sets[SEEN_CANON_KEY] == {"https://x.com/a"}
    assert fake_redis.sets[SEEN_ID_KEY] == {"a1"}
    assert orjson.loads(raw) == {"id": "a1", "canon": "https://x.com/a", "title": "AI", "ts": 1_700_000_000_000.0}


@pytest.mark.asyncio
async def test_is_seen(article_store):
    await article_store.add(ArticleRecord(id="a1", canon="https://x.com/a"))
    assert await article_store.is_seen(ArticleRecord(id="zz", canon="https://x.com/a"))
    assert await article_store.is_seen(ArticleRecord(id="a1"))
    assert not await article_store.is_seen(ArticleRecord(id="b2", canon="https://x.com/b"))


@pytest.mark.asyncio
async def test_load_window(article_store):
    now = 20_000 * MS_PER_DAY
    await article_store.add(ArticleRecord(id="old", ts=now - 20 * MS_PER_DAY))
    await article_store.add(ArticleRecord(id="new", ts=now - 2 * MS_PER_DAY))

    window = await article_store.load_window(14, now_ms=now)
    assert [a.record.id for a in window] == ["new"]
    assert len(await article_store.load_all()) == 2


@pytest.mark.asyncio
async def test_remove_batches_each_index(article_store, fake_redis):
    members = [f"m{i}" for i in range(250)]
    report = await article_store.remove(members, members[:120], members[:30], batch_size=100)

    assert report.ok
    assert report.batches == {ZSET_KEY: [100, 100, 50], SEEN_CANON_KEY: [100, 20], SEEN_ID_KEY: [30]}
    assert [len(args) for args in fake_redis.calls_for("zrem", ZSET_KEY)] == [100, 100, 50]


@pytest.mark.asyncio
async def test_remove_failure_only_stops_its_own_index(make_redis):
    redis = make_redis(fail_after={("zrem", ZSET_KEY): 1})
    store = ArticleStore(KVStore(redis))
    members = [f"m{i}" for i in range(250)]

    report = await store.remove(members, members, members, batch_size=100)

    assert not report.ok
    assert report.failed_indexes == [ZSET_KEY]
    assert report.removed == {ZSET_KEY: 100, SEEN_CANON_KEY: 250, SEEN_ID_KEY: 250}
    # the failing batch is attempted once, then the index is abandoned
    assert len(redis.calls_for("zrem", ZSET_KEY)) == 2
    assert len(redis.calls_for("srem", SEEN_CANON_KEY)) == 3


@pytest.mark.asyncio
async def test_add_scores_seconds_timestamps_in_milliseconds(article_store, fake_redis):
    raw = await article_store.add(ArticleRecord(id="a1", ts=1_700_000_000))
    assert fake_redis.zsets[ZSET_KEY] == {raw: 1_700_000_000_000}


@pytest.mark.asyncio
async def test_seen_set_failure_defers_timeline_removal(make_redis):
    redis = make_redis(fail_after={("srem", SEEN_CANON_KEY): 0})
    store = ArticleStore(KVStore(redis))
    members = [f"m{i}" for i in range(5)]

    report = await store.remove(members, members, members)

    assert report.failed_indexes == [SEEN_CANON_KEY]
    assert report.deferred == [ZSET_KEY]
    assert report.removed == {SEEN_CANON_KEY: 0, SEEN_ID_KEY: 5}
    assert not redis.calls_for("zrem", ZSET_KEY)
