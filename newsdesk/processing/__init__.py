"""Content filtering and cleanup."""

from .cleanup import CleanupError, CleanupPipeline, CleanupResult, CleanupScope, run_cleanup
from .domains import DomainBlocklist, extract_domain, is_blocked_domain
from .ingest import ArticleGate, GateDecision, GateResult
from .international import InternationalFilter, get_block_reason, is_international_article
from .relevance import RelevanceFilter, has_ai_keywords, requires_relevance_check
from .text_utils import clean_newsletter_text, compile_phrase_pattern, normalize_host

__all__ = [
    'DomainBlocklist',
    'is_blocked_domain',
    'extract_domain',
    'InternationalFilter',
    'is_international_article',
    'get_block_reason',
    'RelevanceFilter',
    'has_ai_keywords',
    'requires_relevance_check',
    'ArticleGate',
    'GateDecision',
    'GateResult',
    'CleanupPipeline',
    'CleanupResult',
    'CleanupScope',
    'CleanupError',
    'run_cleanup',
    'clean_newsletter_text',
    'compile_phrase_pattern',
    'normalize_host',
]
