"""Async chat clients for OpenAI and Perplexity with retry logic."""

import asyncio
import time
from typing import Any, Dict, List, Optional, Union

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from ..config import Settings, get_settings
from ..logging import get_logger, log_api_request
from ..utils import retry_async

logger = get_logger(__name__)


class ChatMessage(BaseModel):
    """Chat message for LLM interaction."""
    role: str
    content: str


class LLMResponse(BaseModel):
    """LLM response wrapper."""
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    response_time: Optional[float] = None


class SearchResult(BaseModel):
    """Online search answer with its citations."""
    answer: str
    citations: List[Any] = Field(default_factory=list)
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


class LLMError(Exception):
    """LLM-specific error."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class UpstreamHTTPError(LLMError):
    """Non-2xx response from a chat API."""
    pass


class _Permanent(Exception):
    """Wraps an error that must not be retried."""

    def __init__(self, error: LLMError):
        super().__init__(str(error))
        self.error = error


def normalize_messages(
    messages: Union[List[ChatMessage], List[Dict[str, str]], str]
) -> List[ChatMessage]:
    """Normalize messages to ChatMessage format.

    Args:
        messages: Messages in various formats

    Returns:
        List of ChatMessage objects
    """
    if isinstance(messages, str):
        return [ChatMessage(role="user", content=messages)]

    if isinstance(messages, list):
        normalized = []
        for msg in messages:
            if isinstance(msg, ChatMessage):
                normalized.append(msg)
            elif isinstance(msg, dict) and "role" in msg and "content" in msg:
                normalized.append(ChatMessage(role=msg["role"], content=msg["content"]))
            else:
                raise LLMError(f"Invalid message format: {msg!r}")
        return normalized

    raise LLMError(f"Unsupported messages type: {type(messages)}")


class LLMClient:
    """Async OpenAI chat client with retry capabilities."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        """Initialize LLM client.

        Args:
            settings: Application settings (defaults to the global settings)
            client: Preconfigured OpenAI client
        """
        self.settings = settings or get_settings()
        self.model_settings = self.settings.llm
        self.model = self.settings.openai_model

        if client is not None:
            self._openai_client = client
        elif self.settings.openai_api_key:
            self._openai_client = AsyncOpenAI(api_key=self.settings.openai_api_key)
            logger.info("OpenAI client initialized")
        else:
            raise LLMError("OpenAI API key not configured")

    async def _make_request(
        self,
        messages: List[ChatMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Make request to OpenAI API."""
        start_time = time.time()

        try:
            response = await self._openai_client.chat.completions.create(
                model=self.model,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                temperature=temperature if temperature is not None else self.model_settings.temperature,
                max_tokens=max_tokens or self.model_settings.max_tokens,
                timeout=self.model_settings.timeout_seconds,
            )
        except openai.APIStatusError as e:
            logger.error("OpenAI API error", status_code=e.status_code, error=str(e))
            raise UpstreamHTTPError(
                f"OpenAI API error: {e.status_code}",
                status_code=e.status_code,
                details=str(e),
            ) from e
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI API error for model {self.model}: {e}") from e

        response_time = time.time() - start_time
        content = response.choices[0].message.content if response.choices else None

        logger.info(
            "OpenAI API request successful",
            **log_api_request("POST", "chat.completions", model=self.model, response_time=response_time)
        )

        return LLMResponse(
            content=content or "No response generated",
            model=self.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            } if response.usage else None,
            response_time=response_time
        )

    async def chat(
        self,
        messages: Union[List[ChatMessage], List[Dict[str, str]], str],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Send chat messages to the LLM with retry.

        Client errors (4xx) are not retried.

        Raises:
            LLMError: If all retries fail
        """
        normalized_messages = normalize_messages(messages)
        if not normalized_messages:
            raise LLMError("No messages provided")

        async def make_request():
            try:
                return await self._make_request(normalized_messages, temperature, max_tokens)
            except UpstreamHTTPError as e:
                if e.status_code is not None and 400 <= e.status_code < 500 and e.status_code != 429:
                    raise _Permanent(e) from e
                raise

        try:
            return await retry_async(
                make_request,
                max_retries=self.model_settings.retry_attempts,
                backoff_factor=self.model_settings.backoff_factor,
                exceptions=(LLMError,),
            )
        except _Permanent as e:
            raise e.error from e.error.__cause__


class PerplexityClient:
    """Perplexity online-search chat client."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        if not self.settings.perplexity_api_key:
            raise LLMError("Perplexity API key not configured")
        self.api_key = self.settings.perplexity_api_key
        self.url = self.settings.perplexity_url
        self.model = self.settings.perplexity_model
        self._transport = transport

    async def search(
        self,
        messages: Union[List[ChatMessage], List[Dict[str, str]], str],
        temperature: float = 0.2,
        max_tokens: int = 2000,
    ) -> SearchResult:
        """Run a search-grounded chat completion.

        Raises:
            UpstreamHTTPError: On a non-2xx response
            LLMError: On transport failure
        """
        payload = {
            "model": self.model,
            "messages": [m.model_dump() for m in normalize_messages(messages)],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "return_citations": True,
            "return_images": False,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.llm.timeout_seconds,
            ) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise LLMError(f"Perplexity request failed: {e}") from e

        response_time = time.time() - start_time
        if response.is_error:
            logger.error(
                "Perplexity API error",
                **log_api_request("POST", self.url, response.status_code, response_time)
            )
            raise UpstreamHTTPError(
                f"Perplexity API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                details=response.text,
            )

        data = response.json()
        choices = data.get("choices") or []
        answer = (choices[0].get("message") or {}).get("content") if choices else None
        citations = data.get("citations") or []

        logger.info(
            "Perplexity search successful",
            **log_api_request("POST", self.url, response.status_code, response_time, citations=len(citations))
        )

        return SearchResult(
            answer=answer or "No response from Perplexity",
            citations=citations,
            model=data.get("model"),
            usage=data.get("usage"),
        )


class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, reply: Optional[str] = None):
        self.reply = reply
        self.calls: List[List[ChatMessage]] = []

    async def chat(
        self,
        messages: Union[List[ChatMessage], List[Dict[str, str]], str],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Mock chat response."""
        normalized = normalize_messages(messages)
        self.calls.append(normalized)
        await asyncio.sleep(0)

        content = self.reply or f"Mock response to: {normalized[-1].content[:50]}..."
        return LLMResponse(
            content=content,
            model="mock-model",
            usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
            response_time=0.0
        )

    async def search(self, messages, temperature: float = 0.2, max_tokens: int = 2000) -> SearchResult:
        response = await self.chat(messages, temperature, max_tokens)
        return SearchResult(answer=response.content, citations=[], model=response.model, usage=response.usage)


def create_llm_client(settings: Optional[Settings] = None, mock: bool = False) -> Union[LLMClient, MockLLMClient]:
    """Factory function to create the chat client."""
    if mock:
        return MockLLMClient()
    return LLMClient(settings)


def create_search_client(
    settings: Optional[Settings] = None,
    mock: bool = False,
) -> Union[PerplexityClient, MockLLMClient]:
    """Factory function to create the online-search client."""
    if mock:
        return MockLLMClient()
    return PerplexityClient(settings)
