"""
Question answering over stored newsletters, and online search for recent
AI updates relevant to lawyers.

Newsletters are packed into a citation-ready context and sent to the chat
model together with the user's question.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import orjson
from jinja2 import Environment, PackageLoader, StrictUndefined

from .logging import PerformanceLogger, get_logger
from .models.llm_client import ChatMessage, SearchResult
from .storage.newsletters import NewsletterRepository
from .utils import timestamp_sort_key, truncate_text, utc_now_iso

logger = get_logger(__name__)

NO_NEWSLETTERS_ANSWER = "No newsletters found for the specified time period."

SEARCH_SYSTEM_PROMPT = (
    "You are a legal tech research assistant specializing in AI developments relevant to "
    "the legal profession. Provide comprehensive, well-sourced updates with citations."
)
SEARCH_PROMPT = (
    "Find me a diverse set of well-grounded novel updates on AI within the past two weeks "
    "that would be relevant to lawyers."
)

_jinja_env = Environment(
    loader=PackageLoader("newsdesk", "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


@dataclass
class ChatAnswer:
    """Answer to a newsletter question, with the sources it was given."""
    question: str
    answer: str
    newsletters_analyzed: int
    sources: List[Dict[str, Any]] = field(default_factory=list)
    specific_date: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "question": self.question,
            "answer": self.answer,
            "newsletters_analyzed": self.newsletters_analyzed,
            "sources": self.sources,
            "specificDate": self.specific_date,
            "timestamp": self.timestamp,
        }


def build_newsletter_context(newsletters: List[Dict[str, Any]], char_limit: int = 15_000) -> List[Dict[str, Any]]:
    """Citation records for the prompt, one per newsletter, in input order."""
    context = []
    for idx, n in enumerate(newsletters, start=1):
        context.append({
            "id": idx,
            "citationId": f"{n.get('newsletterName')}, {n.get('date')}",
            "newsletterName": n.get("newsletterName"),
            "subject": n.get("subject"),
            "date": n.get("date"),
            "from": n.get("from"),
            "fullContent": truncate_text(n.get("fullText") or "", char_limit),
        })
    return context


def source_breakdown(newsletters: List[Dict[str, Any]]) -> str:
    """One "- name: count newsletters" line per newsletter name."""
    counts = Counter(n.get("newsletterName") or "unknown" for n in newsletters)
    return "\n".join(f"- {name}: {count} newsletters" for name, count in counts.items())


def render_system_prompt(newsletters: List[Dict[str, Any]], context: List[Dict[str, Any]]) -> str:
    template = _jinja_env.get_template("newsletter_analyst.j2")
    return template.render(
        newsletter_count=len(newsletters),
        source_breakdown=source_breakdown(newsletters),
        newsletters_json=orjson.dumps(context, option=orjson.OPT_INDENT_2).decode("utf-8"),
    )


class NewsletterAnalyst:
    """Answers questions from stored newsletters using a chat model."""

    def __init__(self, repository: NewsletterRepository, llm_client, char_limit: int = 15_000):
        self.repository = repository
        self.llm_client = llm_client
        self.char_limit = char_limit

    async def load(self, specific_date: Optional[str] = None) -> List[Dict[str, Any]]:
        if specific_date:
            newsletters = await self.repository.get_by_date(specific_date)
            return sorted(newsletters, key=lambda n: timestamp_sort_key(n.get("timestamp")), reverse=True)
        return await self.repository.get_all()

    async def answer(self, question: str, specific_date: Optional[str] = None) -> ChatAnswer:
        """Answer ``question`` from one date's newsletters, or all of them.

        Raises:
            StoreError: If the newsletters cannot be loaded
            LLMError: If the chat API fails
        """
        newsletters = await self.load(specific_date)
        logger.info("Loaded newsletters for analysis", count=len(newsletters), specific_date=specific_date)

        if not newsletters:
            return ChatAnswer(
                question=question,
                answer=NO_NEWSLETTERS_ANSWER,
                newsletters_analyzed=0,
                specific_date=specific_date,
            )

        context = build_newsletter_context(newsletters, self.char_limit)
        messages = [
            ChatMessage(role="system", content=render_system_prompt(newsletters, context)),
            ChatMessage(role="user", content=question),
        ]

        with PerformanceLogger("chat_newsletters", logger):
            response = await self.llm_client.chat(messages)

        return ChatAnswer(
            question=question,
            answer=response.content,
            newsletters_analyzed=len(newsletters),
            sources=context,
            specific_date=specific_date,
        )


async def search_ai_updates(search_client) -> SearchResult:
    """Ask the online-search model for recent AI updates for lawyers."""
    logger.info("Searching for AI updates", prompt=SEARCH_PROMPT)
    with PerformanceLogger("perplexity_search", logger):
        return await search_client.search([
            ChatMessage(role="system", content=SEARCH_SYSTEM_PROMPT),
            ChatMessage(role="user", content=SEARCH_PROMPT),
        ])
