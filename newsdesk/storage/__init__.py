"""Key-value storage layer."""

from .articles import ArticleRecord, ArticleStore, RemovalReport, StoredArticle
from .kv_store import KVStore, StoreError, decode_stored_value
from .newsletters import (
    IngestValidationError,
    NewsletterRepository,
    NewsletterSubmission,
)

__all__ = [
    'KVStore',
    'StoreError',
    'decode_stored_value',
    'ArticleRecord',
    'ArticleStore',
    'StoredArticle',
    'RemovalReport',
    'NewsletterRepository',
    'NewsletterSubmission',
    'IngestValidationError',
]
