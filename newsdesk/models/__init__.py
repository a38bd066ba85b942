"""Chat API clients."""

from .llm_client import (
    ChatMessage,
    LLMClient,
    LLMError,
    LLMResponse,
    MockLLMClient,
    PerplexityClient,
    SearchResult,
    UpstreamHTTPError,
    create_llm_client,
    create_search_client,
)

__all__ = [
    'ChatMessage',
    'LLMClient',
    'LLMError',
    'LLMResponse',
    'MockLLMClient',
    'PerplexityClient',
    'SearchResult',
    'UpstreamHTTPError',
    'create_llm_client',
    'create_search_client',
]
