"""Pytest configuration and fixtures."""

import fnmatch
import os

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Set test environment
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["PERPLEXITY_API_KEY"] = "test-perplexity-key"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["JSON_LOGGING"] = "false"


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (decode_responses=True).

    ``fail_after`` maps ``(command, key)`` to the number of calls that
    succeed before every later call raises a connection error.
    """

    def __init__(self, fail_after=None):
        self.strings = {}
        self.ttls = {}
        self.zsets = {}
        self.sets = {}
        self.calls = []
        self.fail_after = dict(fail_after or {})
        self.closed = False

    def _record(self, command, key, *args):
        self.calls.append((command, key, args))
        limit = self.fail_after.get((command, key))
        if limit is not None:
            made = sum(1 for c, k, _ in self.calls if c == command and k == key)
            if made > limit:
                raise RedisConnectionError(f"{command} {key} unavailable")

    def calls_for(self, command, key=None):
        return [args for c, k, args in self.calls if c == command and (key is None or k == key)]

    async def get(self, key):
        self._record("get", key)
        return self.strings.get(key)

    async def setex(self, key, ttl, value):
        self._record("setex", key, ttl)
        self.strings[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        self._record("delete", keys[0] if keys else None, *keys)
        deleted = 0
        for key in keys:
            for bucket in (self.strings, self.zsets, self.sets):
                if key in bucket:
                    del bucket[key]
                    deleted += 1
            self.ttls.pop(key, None)
        return deleted

    async def scan_iter(self, match=None):
        self._record("scan", match)
        for key in list(self.strings) + list(self.zsets) + list(self.sets):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def _sorted_members(self, key):
        return [m for m, _ in sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])]

    async def zrange(self, key, start, end):
        self._record("zrange", key)
        members = self._sorted_members(key)
        return members[start:] if end == -1 else members[start:end + 1]

    async def zrangebyscore(self, key, min_score, max_score):
        self._record("zrangebyscore", key)
        zset = self.zsets.get(key, {})
        return [m for m in self._sorted_members(key) if min_score <= zset[m] <= max_score]

    async def zadd(self, key, mapping):
        self._record("zadd", key)
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    async def zrem(self, key, *members):
        self._record("zrem", key, *members)
        zset = self.zsets.get(key, {})
        removed = 0
        for m in members:
            if m in zset:
                del zset[m]
                removed += 1
        return removed

    async def sadd(self, key, *members):
        self._record("sadd", key, *members)
        s = self.sets.setdefault(key, set())
        added = len(set(members) - s)
        s.update(members)
        return added

    async def srem(self, key, *members):
        self._record("srem", key, *members)
        s = self.sets.get(key, set())
        removed = len(s & set(members))
        s.difference_update(members)
        return removed

    async def sismember(self, key, member):
        self._record("sismember", key)
        return int(member in self.sets.get(key, set()))

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    """Empty in-memory Redis client."""
    return FakeRedis()


@pytest.fixture
def kv_store(fake_redis):
    """KVStore backed by the in-memory client."""
    from newsdesk.storage.kv_store import KVStore

    return KVStore(fake_redis)


@pytest.fixture
def article_store(kv_store):
    """ArticleStore over the in-memory store."""
    from newsdesk.storage.articles import ArticleStore

    return ArticleStore(kv_store)


@pytest.fixture
def filter_rules():
    """The bundled filter rules."""
    from newsdesk.config import get_filter_rules

    return get_filter_rules()


@pytest.fixture
def relevance_filter(filter_rules):
    from newsdesk.processing.relevance import RelevanceFilter

    return RelevanceFilter(filter_rules.relevance_keywords)


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file."""
    from newsdesk.config import Settings

    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        perplexity_api_key="test-perplexity-key",
        redis_url="redis://localhost:6379/15",
    )


@pytest.fixture
def make_article():
    """Factory for article record dicts with sensible defaults."""

    def factory(**fields):
        record = {
            "id": "a1",
            "canon": "https://example.com/a1",
            "title": "Untitled",
            "summary": "",
            "link": "https://example.com/a1",
            "source": "Example",
            "origin": "newsletter",
        }
        record.update(fields)
        return record

    return factory


@pytest.fixture
def make_redis():
    """Factory for in-memory clients, e.g. with injected failures."""
    return FakeRedis
