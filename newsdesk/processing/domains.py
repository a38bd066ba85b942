"""
Blocklist of made-for-advertising and low-quality content farm domains.

Matching is on label boundaries: a host is blocked when it equals a listed
root domain or ends with "." + that domain, so ``news.yahoo.com`` is blocked
by ``yahoo.com`` while ``evilthemarketsdaily.com`` is not blocked by
``themarketsdaily.com``.
"""

from collections.abc import Iterable

from ..config import get_filter_rules
from .text_utils import host_matches, normalize_host

UNKNOWN_DOMAIN = "unknown"


class DomainBlocklist:
    """Set-membership test over root domains."""

    def __init__(self, domains: Iterable[str]):
        self.domains: tuple[str, ...] = tuple(d.strip().lower() for d in domains if d and d.strip())

    def matched_entry(self, url: str | None) -> str | None:
        """Return the blocklist entry covering ``url``, if any."""
        host = normalize_host(url)
        if host is None:
            return None
        for domain in self.domains:
            if host_matches(host, domain):
                return domain
        return None

    def is_blocked(self, url: str | None) -> bool:
        """Check if a URL should be blocked based on its domain.

        Malformed or empty URLs are never blocked.
        """
        return self.matched_entry(url) is not None

    def __contains__(self, url: str) -> bool:
        return self.is_blocked(url)

    def __len__(self) -> int:
        return len(self.domains)


def extract_domain(url: str | None) -> str:
    """Get the normalized domain of a URL for logging purposes.

    Returns ``"unknown"`` when the URL cannot be parsed.
    """
    return normalize_host(url) or UNKNOWN_DOMAIN


_default_blocklist: DomainBlocklist | None = None


def get_blocklist() -> DomainBlocklist:
    """Blocklist built from the process-wide filter rules."""
    global _default_blocklist
    if _default_blocklist is None:
        _default_blocklist = DomainBlocklist(get_filter_rules().blocked_domains)
    return _default_blocklist


def is_blocked_domain(url: str | None) -> bool:
    """Convenience function for the configured blocklist."""
    return get_blocklist().is_blocked(url)
