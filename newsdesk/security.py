"""Security middleware for the newsdesk HTTP API."""

from aiohttp import web
from aiohttp.web import Request, StreamResponse, middleware

from .logging import get_logger
from .utils import validate_request_size

logger = get_logger(__name__)

SERVER_HEADER = "newsdesk"


def get_security_headers() -> dict[str, str]:
    """Get security headers for JSON API responses.

    Returns:
        Dictionary of security headers
    """
    return {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Cache-Control': 'no-store',
    }


@middleware
async def security_middleware(request: Request, handler) -> StreamResponse:
    """Add security headers to all responses."""
    logger.debug(
        "Processing request",
        method=request.method,
        path=request.path,
        remote=request.remote,
    )

    response = await handler(request)

    for header_name, header_value in get_security_headers().items():
        response.headers[header_name] = header_value
    response.headers['Server'] = SERVER_HEADER

    return response


def request_size_middleware(max_size_mb: int):
    """Reject bodies larger than ``max_size_mb`` before any handler runs."""

    @middleware
    async def check_request_size(request: Request, handler) -> StreamResponse:
        if not validate_request_size(request.content_length, max_size_mb):
            logger.warning(
                "Request too large",
                path=request.path,
                content_length=request.content_length,
                max_size_mb=max_size_mb,
            )
            return web.json_response(
                {"ok": False, "error": "Request body too large"},
                status=413,
            )
        return await handler(request)

    return check_request_size
