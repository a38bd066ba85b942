"""Tests for newsletter question answering."""

import orjson
import pytest

from newsdesk.models.llm_client import MockLLMClient
from newsdesk.storage.newsletters import NewsletterRepository, NewsletterSubmission
from newsdesk.summarize import (
    NO_NEWSLETTERS_ANSWER,
    SEARCH_PROMPT,
    NewsletterAnalyst,
    build_newsletter_context,
    render_system_prompt,
    search_ai_updates,
    source_breakdown,
)


@pytest.fixture
def repo(kv_store):
    return NewsletterRepository(kv_store)


async def add(repo, name, date, timestamp, text="AI news"):
    await repo.ingest(NewsletterSubmission.from_payload({
        "fullText": text,
        "newsletterName": name,
        "timestamp": timestamp,
        "date": date,
        "subject": f"{name} digest",
        "from": "editor@example.com",
    }))


def test_context_truncates_and_builds_citation_ids():
    context = build_newsletter_context(
        [{"newsletterName": "The Neuron", "date": "2025-11-11", "fullText": "x" * 20}],
        char_limit=10,
    )
    assert context == [{
        "id": 1,
        "citationId": "The Neuron, 2025-11-11",
        "newsletterName": "The Neuron",
        "subject": None,
        "date": "2025-11-11",
        "from": None,
        "fullContent": "x" * 10 + "... [truncated]",
    }]


def test_source_breakdown():
    newsletters = [{"newsletterName": "A"}, {"newsletterName": "B"}, {"newsletterName": "A"}]
    assert source_breakdown(newsletters) == "- A: 2 newsletters\n- B: 1 newsletters"


def test_system_prompt_embeds_context():
    newsletters = [{"newsletterName": "The Neuron", "date": "2025-11-11", "fullText": "Harvey raised"}]
    context = build_newsletter_context(newsletters)
    prompt = render_system_prompt(newsletters, context)

    assert "You have 1 AI newsletters" in prompt
    assert "- The Neuron: 1 newsletters" in prompt
    assert orjson.dumps(context, option=orjson.OPT_INDENT_2).decode() in prompt


@pytest.mark.asyncio
async def test_answer_without_newsletters_skips_the_model(repo):
    llm = MockLLMClient()
    answer = await NewsletterAnalyst(repo, llm).answer("What happened?")

    assert answer.answer == NO_NEWSLETTERS_ANSWER
    assert answer.newsletters_analyzed == 0
    assert answer.sources == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_answer_for_specific_date(repo):
    await add(repo, "Early", "2025-11-11", "2025-11-11T06:00:00Z")
    await add(repo, "Late", "2025-11-11", "2025-11-11T09:00:00Z")
    await add(repo, "Other day", "2025-11-10", "2025-11-10T09:00:00Z")
    llm = MockLLMClient(reply="Summary [Late, 2025-11-11]")

    answer = await NewsletterAnalyst(repo, llm).answer("Summarize", specific_date="2025-11-11")

    assert answer.newsletters_analyzed == 2
    assert [s["newsletterName"] for s in answer.sources] == ["Late", "Early"]
    assert answer.to_dict()["specificDate"] == "2025-11-11"
    assert answer.to_dict()["ok"] is True

    system, user = llm.calls[0]
    assert system.role == "system"
    assert '"citationId": "Late, 2025-11-11"' in system.content
    assert "Other day" not in system.content
    assert user.content == "Summarize"


@pytest.mark.asyncio
async def test_answer_across_all_dates(repo):
    await add(repo, "Old", "2025-11-01", "2025-11-01T06:00:00Z")
    await add(repo, "New", "2025-11-12", "2025-11-12T06:00:00Z")
    llm = MockLLMClient(reply="ok")

    answer = await NewsletterAnalyst(repo, llm).answer("Anything new?")

    assert [s["newsletterName"] for s in answer.sources] == ["New", "Old"]
    assert [s["id"] for s in answer.sources] == [1, 2]
    assert answer.specific_date is None


@pytest.mark.asyncio
async def test_search_ai_updates():
    client = MockLLMClient(reply="updates")
    result = await search_ai_updates(client)

    assert result.answer == "updates"
    assert client.calls[0][0].role == "system"
    assert client.calls[0][1].content == SEARCH_PROMPT
