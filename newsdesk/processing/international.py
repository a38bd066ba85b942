"""
International (non-US) content filter.

An article is international when any of three independent checks fires,
evaluated in this order:

1. its link's domain is, or is a subdomain of, a known international outlet;
2. its link's domain ends with a non-US top-level-domain suffix;
3. "<title> <summary> <source>" contains a regional legal/regulatory phrase
   as a whole word or phrase.

``explain`` reports the first check that fired, in the same order.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from ..config import get_filter_rules
from .text_utils import (
    compile_phrase_pattern,
    first_matching_phrase,
    host_matches,
    join_text,
    normalize_host,
)


class MatchKind(Enum):
    """Which international check fired."""
    NEWS_SOURCE = "news_source"
    TLD = "tld"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class InternationalMatch:
    """First international signal found for an article."""
    kind: MatchKind
    value: str

    @property
    def reason(self) -> str:
        if self.kind is MatchKind.NEWS_SOURCE:
            return f"International news source: {self.value}"
        if self.kind is MatchKind.TLD:
            return f"International domain: {self.value}"
        return f'International keyword: "{self.value}"'


DEFAULT_REASON = "International content"


class InternationalFilter:
    """Combines news-source, TLD and keyword checks with logical OR."""

    def __init__(
        self,
        tlds: Iterable[str],
        news_sources: Iterable[str],
        keywords: Iterable[str],
    ):
        self.tlds = tuple(t.lower() for t in tlds)
        self.news_sources = tuple(s.lower() for s in news_sources)
        self.keywords = tuple(k.lower() for k in keywords)
        self._keyword_patterns = [(k, compile_phrase_pattern(k)) for k in self.keywords]

    def _news_source(self, domain: str) -> bool:
        return any(host_matches(domain, source) for source in self.news_sources)

    def _tld(self, domain: str) -> bool:
        return any(domain.endswith(tld) for tld in self.tlds)

    def match(
        self,
        title: str | None,
        summary: str | None,
        link: str | None,
        source: str | None,
    ) -> InternationalMatch | None:
        """Return the first international signal, or None."""
        # Malformed links yield an empty domain, leaving only the keyword check
        domain = normalize_host(link) or ""

        if domain:
            if self._news_source(domain):
                return InternationalMatch(MatchKind.NEWS_SOURCE, domain)
            if self._tld(domain):
                return InternationalMatch(MatchKind.TLD, domain)

        text = join_text(title, summary, source).lower()
        keyword = first_matching_phrase(text, self._keyword_patterns)
        if keyword is not None:
            return InternationalMatch(MatchKind.KEYWORD, keyword)

        return None

    def is_international(self, title, summary, link, source) -> bool:
        """True if the article should be blocked as international."""
        return self.match(title, summary, link, source) is not None

    def explain(self, title, summary, link, source) -> str:
        """Diagnostic reason for blocking, for logging."""
        found = self.match(title, summary, link, source)
        return found.reason if found else DEFAULT_REASON


_default_filter: InternationalFilter | None = None


def get_international_filter() -> InternationalFilter:
    """Filter built from the process-wide filter rules."""
    global _default_filter
    if _default_filter is None:
        rules = get_filter_rules()
        _default_filter = InternationalFilter(
            tlds=rules.international_tlds,
            news_sources=rules.international_news_sources,
            keywords=rules.international_keywords,
        )
    return _default_filter


def is_international_article(title, summary, link, source) -> bool:
    """Main filter function - returns True if the article should be blocked."""
    return get_international_filter().is_international(title, summary, link, source)


def get_block_reason(title, summary, link, source) -> str:
    """Get reason why an article was blocked (for logging)."""
    return get_international_filter().explain(title, summary, link, source)
