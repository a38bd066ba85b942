"""Tests for the HTTP API."""

from contextlib import asynccontextmanager

import orjson
import pytest
from aiohttp.test_utils import TestClient, TestServer

from newsdesk.models.llm_client import MockLLMClient, SearchResult, UpstreamHTTPError
from newsdesk.server import create_app
from newsdesk.storage.articles import SEEN_CANON_KEY, ZSET_KEY
from newsdesk.storage.kv_store import KVStore

NEWSLETTER = {
    "fullText": "OpenAI released a model.\nView image: (https://cdn.example.com/x.png)",
    "newsletterName": "The Neuron",
    "timestamp": "2025-11-11T08:00:00Z",
    "date": "2025-11-11",
    "subject": "Daily",
    "from": "news@theneuron.ai",
}


class FailingSearchClient:
    async def search(self, messages):
        raise UpstreamHTTPError("Perplexity API error: 429 - slow down", status_code=429, details="slow down")


@asynccontextmanager
async def api_client(app):
    async with TestClient(TestServer(app)) as client:
        yield client


@pytest.fixture
def make_app(test_settings, fake_redis, filter_rules):
    def factory(redis=None, **kwargs):
        kwargs.setdefault("chat_client", MockLLMClient(reply="Here is what happened."))
        kwargs.setdefault("search_client", MockLLMClient(reply="Recent updates"))
        return create_app(
            test_settings,
            store=KVStore(redis or fake_redis),
            rules=filter_rules,
            **kwargs,
        )
    return factory


async def body(response):
    return orjson.loads(await response.read())


@pytest.mark.asyncio
async def test_ingest_then_list(make_app):
    async with api_client(make_app()) as client:
        resp = await client.post("/api/newsletter_ingest", json=NEWSLETTER)
        assert resp.status == 200
        data = await body(resp)
        assert data["ok"] is True
        assert data["id"] == "newsletter:2025-11-11T08:00:00Z:The_Neuron"

        resp = await client.get("/api/get_newsletters", params={"date": "2025-11-11"})
        data = await body(resp)
        assert data["count"] == 1
        assert data["newsletters"][0]["fullText"] == "OpenAI released a model."

        resp = await client.get("/api/get_newsletters")
        data = await body(resp)
        assert data["totalCount"] == 1
        assert data["dates"][0]["date"] == "2025-11-11"


@pytest.mark.asyncio
async def test_ingest_validation(make_app):
    async with api_client(make_app()) as client:
        resp = await client.post("/api/newsletter_ingest", json={"fullText": "only text"})
        assert resp.status == 400
        assert (await body(resp))["error"].startswith("Missing required fields")

        resp = await client.post("/api/newsletter_ingest", data=b"{nope")
        assert resp.status == 400
        assert (await body(resp))["error"] == "Invalid JSON body"

        resp = await client.get("/api/newsletter_ingest")
        assert resp.status == 405


@pytest.mark.asyncio
async def test_security_headers(make_app):
    async with api_client(make_app()) as client:
        resp = await client.get("/api/get_newsletters")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["Server"] == "newsdesk"


@pytest.mark.asyncio
async def test_request_too_large(make_app, test_settings):
    test_settings.max_request_size_mb = 1
    async with api_client(make_app()) as client:
        resp = await client.post("/api/newsletter_ingest", data=b"x" * (1024 * 1024 + 1))
        assert resp.status == 413


@pytest.mark.asyncio
async def test_clear_newsletters(make_app, fake_redis):
    async with api_client(make_app()) as client:
        resp = await client.post("/api/clear_newsletters")
        assert (await body(resp))["message"] == "No newsletter keys found"

        await client.post("/api/newsletter_ingest", json=NEWSLETTER)
        resp = await client.delete("/api/clear_newsletters")
        data = await body(resp)
        assert data == {"ok": True, "message": "All newsletter data cleared", "deleted": 2}
        assert fake_redis.strings == {}

        resp = await client.get("/api/clear_newsletters")
        assert resp.status == 405


@pytest.mark.asyncio
async def test_chat_newsletters(make_app):
    chat = MockLLMClient(reply="Here is what happened.")
    async with api_client(make_app(chat_client=chat)) as client:
        await client.post("/api/newsletter_ingest", json=NEWSLETTER)
        resp = await client.post("/api/chat_newsletters", json={"question": "What did OpenAI ship?"})
        data = await body(resp)

    assert resp.status == 200
    assert data["answer"] == "Here is what happened."
    assert data["newsletters_analyzed"] == 1
    assert data["sources"][0]["citationId"] == "The Neuron, 2025-11-11"
    assert data["specificDate"] is None
    assert len(chat.calls) == 1


@pytest.mark.asyncio
async def test_chat_newsletters_errors(make_app, test_settings):
    async with api_client(make_app()) as client:
        resp = await client.get("/api/chat_newsletters")
        assert resp.status == 405
        assert (await body(resp))["error"] == "Use POST"

        resp = await client.post("/api/chat_newsletters", json={"question": ""})
        assert resp.status == 400
        assert (await body(resp))["error"] == "Question is required"

    test_settings.openai_api_key = None
    async with api_client(make_app(chat_client=None)) as client:
        resp = await client.post("/api/chat_newsletters", json={"question": "hi"})
        assert resp.status == 500
        assert (await body(resp))["error"] == "OpenAI API key not configured"


@pytest.mark.asyncio
async def test_perplexity_search(make_app):
    async with api_client(make_app()) as client:
        resp = await client.post("/api/perplexity_search")
        data = await body(resp)
    assert data["ok"] is True
    assert data["answer"] == "Recent updates"


@pytest.mark.asyncio
async def test_perplexity_upstream_status_is_forwarded(make_app):
    async with api_client(make_app(search_client=FailingSearchClient())) as client:
        resp = await client.post("/api/perplexity_search")
        assert resp.status == 429
        assert "slow down" in (await body(resp))["error"]


@pytest.mark.asyncio
async def test_ingest_article_and_cleanup(make_app, fake_redis):
    async with api_client(make_app()) as client:
        resp = await client.post("/api/ingest_article", json={
            "id": "a1",
            "canon": "https://example.com/a1",
            "link": "https://example.com/a1",
            "title": "Harvey adds contract review",
            "origin": "newsletter",
        })
        data = await body(resp)
        assert data == {"ok": True, "stored": True, "decision": "accept", "reason": ""}

        resp = await client.post("/api/ingest_article", json={
            "title": "AI bill", "link": "https://news.yahoo.com/ai",
        })
        assert (await body(resp))["decision"] == "blocked_domain"

        resp = await client.post("/api/ingest_article", json={"summary": "no title"})
        assert resp.status == 400

        # an older record that predates the relevance gate
        fake_redis.zsets[ZSET_KEY]['{"id": "old", "canon": "c-old", "title": "Bake sale", "origin": "newsletter"}'] = 1
        fake_redis.sets[SEEN_CANON_KEY].add("c-old")

        resp = await client.get("/api/cleanup_non_ai")
        data = await body(resp)

    assert data["ok"] is True
    assert data["scanned"] == 2
    assert data["removed"] == 1
    assert data["kept"] == 1
    assert data["message"] == "Cleaned up 1 non-AI articles from 2 total articles"
    assert fake_redis.sets[SEEN_CANON_KEY] == {"https://example.com/a1"}


@pytest.mark.asyncio
async def test_cleanup_partial_failure(make_app, make_redis):
    redis = make_redis(fail_after={("zrem", ZSET_KEY): 0})
    redis.zsets[ZSET_KEY] = {'{"id": "x", "title": "Bake sale", "origin": "newsletter"}': 1}

    async with api_client(make_app(redis=redis)) as client:
        resp = await client.post("/api/cleanup_non_ai")
        data = await body(resp)
        bad_scope = await client.get("/api/cleanup_non_ai", params={"scope": "bogus"})

    assert resp.status == 500
    assert data["ok"] is False
    assert data["failedIndexes"] == [ZSET_KEY]
    assert data["scanned"] == 1
    assert bad_scope.status == 400
