"""Text and URL helpers shared by the content filters."""

import re
from urllib.parse import urlsplit

_WWW_PREFIX = "www."

_VIEW_IMAGE_RE = re.compile(r'View image:\s*\(https?://[^)]+\)', re.IGNORECASE)
_FOLLOW_IMAGE_RE = re.compile(r'Follow image link:\s*\(https?://[^)]+\)', re.IGNORECASE)
_EMPTY_CAPTION_RE = re.compile(r'Caption:\s*$', re.IGNORECASE | re.MULTILINE)
_EXTRA_NEWLINES_RE = re.compile(r'\n{3,}')
_WHITESPACE_RE = re.compile(r'\s+')


def normalize_host(url: str | None) -> str | None:
    """Return the lowercased host of ``url`` without a leading ``www.``.

    Args:
        url: Absolute URL

    Returns:
        Normalized host, or None when the URL cannot be parsed or has no host
    """
    if not url or not isinstance(url, str):
        return None

    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return None

    if not parts.scheme or not host:
        return None

    host = host.lower()
    if host.startswith(_WWW_PREFIX):
        host = host[len(_WWW_PREFIX):]
    return host or None


def host_matches(host: str, domain: str) -> bool:
    """True when ``host`` is ``domain`` or a subdomain of it (dot boundary)."""
    return host == domain or host.endswith("." + domain)


def compile_phrase_pattern(phrase: str) -> re.Pattern[str]:
    """Compile a case-insensitive whole-word/whole-phrase matcher.

    The phrase is escaped, and it must not sit inside a larger token:
    "ai" matches "AI is booming" but not "Ukraine" or "China".

    Args:
        phrase: Literal keyword or multi-word phrase

    Returns:
        Compiled pattern
    """
    return re.compile(rf'(?<!\w){re.escape(phrase)}(?!\w)', re.IGNORECASE)


def first_matching_phrase(
    text: str,
    patterns: list[tuple[str, re.Pattern[str]]],
) -> str | None:
    """Return the first phrase whose pattern matches ``text``."""
    if not text:
        return None
    for phrase, pattern in patterns:
        if pattern.search(text):
            return phrase
    return None


def clean_newsletter_text(text: str | None) -> str | None:
    """Strip image links and markup noise from forwarded newsletter text.

    Args:
        text: Raw newsletter body

    Returns:
        Cleaned text (falsy input is returned unchanged)
    """
    if not text:
        return text

    cleaned = _VIEW_IMAGE_RE.sub('', text)
    cleaned = _FOLLOW_IMAGE_RE.sub('', cleaned)
    cleaned = _EMPTY_CAPTION_RE.sub('', cleaned)
    cleaned = _EXTRA_NEWLINES_RE.sub('\n\n', cleaned)

    return cleaned.strip()


def newsletter_slug(name: str) -> str:
    """Replace whitespace runs in a newsletter name with underscores."""
    return _WHITESPACE_RE.sub('_', name)


def join_text(*parts: str | None) -> str:
    """Join optional text fields with single spaces, as the filters expect."""
    return " ".join(part or "" for part in parts)
