"""
AI/legal relevance filtering for ingested newsletter articles.

Every configured keyword becomes a case-insensitive whole-word (or
whole-phrase) pattern; an article is relevant when any of them matches
"<title> <summary>". Plain substring checks are not used, so "Ukraine" and
"China" do not count as mentions of "ai".
"""

from collections.abc import Iterable

from ..config import get_filter_rules
from .text_utils import compile_phrase_pattern, first_matching_phrase, join_text


class RelevanceFilter:
    """Keyword-set membership test over article text."""

    def __init__(self, keywords: Iterable[str]):
        """Initialize relevance filter."""
        self.keywords = tuple(k.strip().lower() for k in keywords if k and k.strip())
        self._compile_keywords()

    def _compile_keywords(self) -> None:
        """Compile keyword patterns for efficient matching."""
        self.keyword_patterns = [(k, compile_phrase_pattern(k)) for k in self.keywords]

    def matched_keyword(self, text: str | None) -> str | None:
        """First configured keyword present in ``text``."""
        return first_matching_phrase(text or "", self.keyword_patterns)

    def is_relevant(self, text: str | None) -> bool:
        """True when any keyword matches; absence of signal means not relevant."""
        return self.matched_keyword(text) is not None

    def is_relevant_article(self, title: str | None, summary: str | None) -> bool:
        return self.is_relevant(join_text(title, summary))


def normalize_origin(origin: str | None) -> str:
    """Lowercase an origin tag for comparisons."""
    return (origin or "").strip().lower()


def requires_relevance_check(origin: str | None, filterable_origins: Iterable[str]) -> bool:
    """Only newsletter-sourced origins are re-checked; others are filtered upstream."""
    return normalize_origin(origin) in {normalize_origin(o) for o in filterable_origins}


_default_filter: RelevanceFilter | None = None


def get_relevance_filter() -> RelevanceFilter:
    """Filter built from the process-wide filter rules."""
    global _default_filter
    if _default_filter is None:
        _default_filter = RelevanceFilter(get_filter_rules().relevance_keywords)
    return _default_filter


def has_ai_keywords(text: str | None) -> bool:
    """Convenience function for the configured relevance keywords."""
    return get_relevance_filter().is_relevant(text)
