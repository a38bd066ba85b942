"""
HTTP API.

Routes::

    POST        /api/newsletter_ingest   store a forwarded newsletter
    GET         /api/get_newsletters     newsletters for ?date=, or all grouped by date
    POST        /api/chat_newsletters    ask a question about stored newsletters
    POST        /api/perplexity_search   recent AI updates for lawyers
    POST|DELETE /api/clear_newsletters   delete every newsletter key
    POST        /api/ingest_article      run an article through the content filters
    GET|POST    /api/cleanup_non_ai      remove non-AI newsletter articles (?scope=all|window)

Every response is JSON. Errors are ``{"ok": false, "error": ...}``.
"""

from dataclasses import dataclass
from typing import Any

import orjson
import pydantic
from aiohttp import web

from .config import FilterRules, Settings, get_filter_rules, get_settings
from .logging import get_logger, log_error
from .models.llm_client import LLMError, UpstreamHTTPError, create_llm_client, create_search_client
from .processing.cleanup import CleanupError, CleanupPipeline, CleanupScope
from .processing.ingest import ArticleGate
from .processing.relevance import RelevanceFilter
from .security import request_size_middleware, security_middleware
from .storage.articles import ArticleRecord, ArticleStore
from .storage.kv_store import KVStore, StoreError
from .storage.newsletters import NewsletterRepository, NewsletterSubmission
from .summarize import NewsletterAnalyst, search_ai_updates

logger = get_logger(__name__)

PERPLEXITY_KEY_MISSING = (
    "Perplexity API key not configured. Please add PERPLEXITY_API_KEY to environment variables."
)


@dataclass
class Services:
    """Collaborators shared by the request handlers."""
    settings: Settings
    rules: FilterRules
    store: KVStore
    newsletters: NewsletterRepository
    articles: ArticleStore
    gate: ArticleGate
    cleanup: CleanupPipeline
    chat_client: Any = None
    search_client: Any = None
    owns_store: bool = True

    @classmethod
    def build(
        cls,
        settings: Settings,
        rules: FilterRules,
        store: KVStore | None = None,
        chat_client: Any = None,
        search_client: Any = None,
    ) -> "Services":
        owns_store = store is None
        store = store or KVStore.from_url(settings.redis_url)
        articles = ArticleStore(store)
        return cls(
            settings=settings,
            rules=rules,
            store=store,
            newsletters=NewsletterRepository(store, settings.newsletter_ttl_seconds),
            articles=articles,
            gate=ArticleGate.from_rules(rules),
            cleanup=CleanupPipeline(
                articles,
                RelevanceFilter(rules.relevance_keywords),
                rules.filterable_origins,
                batch_size=settings.removal_batch_size,
                retention_days=settings.retention_window_days,
            ),
            chat_client=chat_client,
            search_client=search_client,
            owns_store=owns_store,
        )

    def get_chat_client(self):
        """Chat client, created on first use.

        Raises:
            LLMError: If the OpenAI API key is not configured
        """
        if self.chat_client is None:
            self.chat_client = create_llm_client(self.settings, mock=self.settings.mock)
        return self.chat_client

    def get_search_client(self):
        """Search client, created on first use.

        Raises:
            LLMError: If the Perplexity API key is not configured
        """
        if self.search_client is None:
            self.search_client = create_search_client(self.settings, mock=self.settings.mock)
        return self.search_client


SERVICES = web.AppKey("services", Services)


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data: dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(error: str, status: int = 500, **extra: Any) -> web.Response:
    return json_response({"ok": False, "error": error, **extra}, status=status)


def method_not_allowed() -> web.Response:
    return error_response("Method not allowed", status=405)


async def read_json(request: web.Request) -> Any:
    """Decode the request body; an empty body decodes to ``{}``.

    Raises:
        ValueError: If the body is not valid JSON
    """
    body = await request.read()
    if not body.strip():
        return {}
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise ValueError("Invalid JSON body") from e


# ── Newsletters ─────────────────────────────────────────────────────────────

async def newsletter_ingest(request: web.Request) -> web.Response:
    if request.method != "POST":
        return method_not_allowed()
    services = request.app[SERVICES]

    try:
        submission = NewsletterSubmission.from_payload(await read_json(request))
    except ValueError as e:
        # IngestValidationError or malformed JSON
        return error_response(str(e), status=400)

    try:
        result = await services.newsletters.ingest(submission)
    except StoreError as e:
        logger.error("Newsletter ingest failed", **log_error(e, context="newsletter_ingest"))
        return error_response(str(e) or "Failed to ingest newsletter")

    return json_response({
        "ok": True,
        "message": "Newsletter ingested successfully",
        "id": result.id,
        "date": result.date,
    })


async def get_newsletters(request: web.Request) -> web.Response:
    if request.method != "GET":
        return method_not_allowed()
    services = request.app[SERVICES]
    date = request.query.get("date")

    try:
        if date:
            newsletters = await services.newsletters.get_by_date(date)
            return json_response({
                "ok": True,
                "date": date,
                "newsletters": newsletters,
                "count": len(newsletters),
            })

        groups = await services.newsletters.get_all_grouped()
    except StoreError as e:
        logger.error("Fetching newsletters failed", **log_error(e, context="get_newsletters"))
        return error_response(str(e) or "Failed to fetch newsletters")

    return json_response({
        "ok": True,
        "dates": [g.to_dict() for g in groups],
        "totalCount": sum(len(g.newsletters) for g in groups),
    })


async def clear_newsletters(request: web.Request) -> web.Response:
    if request.method not in ("POST", "DELETE"):
        return method_not_allowed()
    services = request.app[SERVICES]

    try:
        deleted = await services.newsletters.clear_all()
    except StoreError as e:
        logger.error("Clearing newsletters failed", **log_error(e, context="clear_newsletters"))
        return error_response(str(e) or "Failed to clear newsletters")

    if deleted == 0:
        return json_response({"ok": True, "message": "No newsletter keys found", "deleted": 0})

    logger.info("Newsletter keys deleted", deleted=deleted)
    return json_response({"ok": True, "message": "All newsletter data cleared", "deleted": deleted})


# ── LLM-backed endpoints ────────────────────────────────────────────────────

async def chat_newsletters(request: web.Request) -> web.Response:
    if request.method != "POST":
        return error_response("Use POST", status=405)
    services = request.app[SERVICES]

    try:
        payload = await read_json(request)
    except ValueError as e:
        return error_response(str(e), status=400)

    question = payload.get("question") if isinstance(payload, dict) else None
    if not question or not isinstance(question, str):
        return error_response("Question is required", status=400)
    specific_date = payload.get("specificDate") or None

    try:
        client = services.get_chat_client()
    except LLMError:
        return error_response("OpenAI API key not configured")

    analyst = NewsletterAnalyst(services.newsletters, client, services.settings.context_char_limit)
    try:
        answer = await analyst.answer(question, specific_date)
    except UpstreamHTTPError as e:
        return error_response(str(e), details=e.details)
    except (LLMError, StoreError) as e:
        logger.error("Chat newsletters failed", **log_error(e, context="chat_newsletters"))
        return error_response(str(e))

    return json_response(answer.to_dict())


async def perplexity_search(request: web.Request) -> web.Response:
    if request.method != "POST":
        return method_not_allowed()
    services = request.app[SERVICES]

    try:
        client = services.get_search_client()
    except LLMError:
        return error_response(PERPLEXITY_KEY_MISSING)

    try:
        result = await search_ai_updates(client)
    except UpstreamHTTPError as e:
        return error_response(str(e), status=e.status_code or 502)
    except LLMError as e:
        logger.error("Perplexity search failed", **log_error(e, context="perplexity_search"))
        return error_response(str(e) or "Failed to search Perplexity")

    return json_response({
        "ok": True,
        "answer": result.answer,
        "citations": result.citations,
        "model": result.model,
        "usage": result.usage,
    })


# ── Articles ────────────────────────────────────────────────────────────────

async def ingest_article(request: web.Request) -> web.Response:
    if request.method != "POST":
        return method_not_allowed()
    services = request.app[SERVICES]

    try:
        payload = await read_json(request)
        record = ArticleRecord.model_validate(payload)
    except pydantic.ValidationError:
        return error_response("Invalid article record", status=400)
    except ValueError as e:
        return error_response(str(e), status=400)

    if not record.title or not (record.link or record.canon):
        return error_response("Missing required fields: title and link are required", status=400)

    try:
        result = await services.gate.ingest(services.articles, record)
    except StoreError as e:
        logger.error("Article ingest failed", **log_error(e, context="ingest_article"))
        return error_response(str(e))

    return json_response({
        "ok": True,
        "stored": result.accepted,
        "decision": result.decision.value,
        "reason": result.reason,
    })


async def cleanup_non_ai(request: web.Request) -> web.Response:
    if request.method not in ("GET", "POST"):
        return method_not_allowed()
    services = request.app[SERVICES]

    try:
        scope = CleanupScope.parse(request.query.get("scope"))
    except ValueError as e:
        return error_response(str(e), status=400)

    try:
        result = await services.cleanup.run(scope)
    except CleanupError as e:
        return error_response(str(e), failedIndexes=e.result.failed_indexes, **e.result.to_dict())
    except StoreError as e:
        logger.error("Cleanup failed", **log_error(e, context="cleanup_non_ai"))
        return error_response(str(e))

    return json_response({
        "ok": True,
        "scope": scope.value,
        **result.to_dict(),
        "message": f"Cleaned up {result.removed} non-AI articles from {result.scanned} total articles",
    })


# ── Application ─────────────────────────────────────────────────────────────

ROUTES = (
    ("/api/newsletter_ingest", newsletter_ingest),
    ("/api/get_newsletters", get_newsletters),
    ("/api/chat_newsletters", chat_newsletters),
    ("/api/perplexity_search", perplexity_search),
    ("/api/clear_newsletters", clear_newsletters),
    ("/api/ingest_article", ingest_article),
    ("/api/cleanup_non_ai", cleanup_non_ai),
)


async def _close_store(app: web.Application) -> None:
    services = app[SERVICES]
    if services.owns_store:
        await services.store.close()


def create_app(
    settings: Settings | None = None,
    store: KVStore | None = None,
    rules: FilterRules | None = None,
    chat_client: Any = None,
    search_client: Any = None,
) -> web.Application:
    """Build the aiohttp application."""
    settings = settings or get_settings()
    app = web.Application(
        middlewares=[request_size_middleware(settings.max_request_size_mb), security_middleware],
        client_max_size=settings.max_request_size_mb * 1024 * 1024,
    )
    app[SERVICES] = Services.build(
        settings,
        rules or get_filter_rules(),
        store=store,
        chat_client=chat_client,
        search_client=search_client,
    )
    for path, handler in ROUTES:
        app.router.add_route("*", path, handler)
    app.on_cleanup.append(_close_store)
    return app


def run_server(settings: Settings | None = None) -> None:
    """Serve the API until interrupted."""
    settings = settings or get_settings()
    logger.info("Starting API server", host=settings.api_host, port=settings.api_port)
    web.run_app(create_app(settings), host=settings.api_host, port=settings.api_port, print=None)
