"""
Collection-time gate for incoming articles.

Checks run in order and the first failing check decides:
blocked domain, international content, relevance (newsletter origins only),
then duplicates already seen by canonical URL or id.
"""

from dataclasses import dataclass
from enum import Enum

from ..config import FilterRules
from ..logging import get_logger
from ..storage.articles import ArticleRecord, ArticleStore
from .domains import DomainBlocklist, extract_domain
from .international import InternationalFilter
from .relevance import RelevanceFilter, requires_relevance_check

logger = get_logger(__name__)


class GateDecision(Enum):
    ACCEPT = "accept"
    BLOCKED_DOMAIN = "blocked_domain"
    INTERNATIONAL = "international"
    NOT_RELEVANT = "not_relevant"
    DUPLICATE = "duplicate"


@dataclass
class GateResult:
    decision: GateDecision
    reason: str = ""

    @property
    def accepted(self) -> bool:
        return self.decision is GateDecision.ACCEPT


class ArticleGate:
    """Runs the content filters over a candidate article."""

    def __init__(
        self,
        blocklist: DomainBlocklist,
        international: InternationalFilter,
        relevance: RelevanceFilter,
        filterable_origins: tuple[str, ...],
    ):
        self.blocklist = blocklist
        self.international = international
        self.relevance = relevance
        self.filterable_origins = filterable_origins

    @classmethod
    def from_rules(cls, rules: FilterRules) -> "ArticleGate":
        return cls(
            blocklist=DomainBlocklist(rules.blocked_domains),
            international=InternationalFilter(
                tlds=rules.international_tlds,
                news_sources=rules.international_news_sources,
                keywords=rules.international_keywords,
            ),
            relevance=RelevanceFilter(rules.relevance_keywords),
            filterable_origins=rules.filterable_origins,
        )

    def evaluate(self, record: ArticleRecord) -> GateResult:
        """Content checks only; no store access."""
        link = record.link or record.canon
        if self.blocklist.is_blocked(link):
            return GateResult(GateDecision.BLOCKED_DOMAIN, f"Blocked domain: {extract_domain(link)}")

        found = self.international.match(record.title, record.summary, link, record.source)
        if found is not None:
            return GateResult(GateDecision.INTERNATIONAL, found.reason)

        if requires_relevance_check(record.origin, self.filterable_origins):
            if not self.relevance.is_relevant_article(record.title, record.summary):
                return GateResult(GateDecision.NOT_RELEVANT, "No AI/legal keywords")

        return GateResult(GateDecision.ACCEPT)

    async def ingest(self, articles: ArticleStore, record: ArticleRecord) -> GateResult:
        """Evaluate a record and store it when accepted."""
        result = self.evaluate(record)
        if result.accepted and await articles.is_seen(record):
            result = GateResult(GateDecision.DUPLICATE, "Already ingested")

        if not result.accepted:
            logger.info(
                "Article rejected",
                id=record.id,
                domain=extract_domain(record.link or record.canon),
                decision=result.decision.value,
                reason=result.reason,
            )
            return result

        await articles.add(record)
        logger.debug("Article stored", id=record.id, canon=record.canon)
        return result
