"""Shared utility functions for URL identity and normalization."""

from datetime import datetime, timezone
from urllib.parse import urlsplit

TRACKABLE_SCHEMES = frozenset({"http", "https"})


class MalformedUrlError(ValueError):
    """Raised when a URL cannot be parsed into a host."""


def is_trackable(url: str | None) -> bool:
    """Check whether a URL can be attributed to a website.

    Only absolute http/https URLs with a host are trackable. Browser-internal
    pages (``chrome://``, ``about:``) and malformed URLs are not.

    Args:
        url: The raw URL reported by the browser.

    Returns:
        True if the URL is an absolute http(s) URL, False otherwise.

    Example:
        >>> is_trackable("https://www.example.com/a")
        True
        >>> is_trackable("chrome://newtab/")
        False
    """
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in TRACKABLE_SCHEMES and bool(parts.hostname)


def normalize_domain(hostname: str) -> str:
    """Derive the comparable domain key for a hostname.

    Strips one leading ``www.`` label and lowercases. Ports and paths are
    not part of a hostname and are never looked at.

    Example:
        >>> normalize_domain("www.Example.com")
        'example.com'
        >>> normalize_domain("www.www.example.com")
        'www.example.com'
    """
    lowered = hostname.lower()
    if lowered.startswith("www."):
        return lowered[4:]
    return lowered


def domain_from_url(url: str) -> str:
    """Extract the normalized domain of a URL.

    Raises:
        MalformedUrlError: If the URL cannot be parsed or has no host.
    """
    try:
        hostname = urlsplit(url).hostname
    except ValueError as err:
        raise MalformedUrlError(f"Cannot parse URL: {url!r}") from err
    if not hostname:
        raise MalformedUrlError(f"URL has no host: {url!r}")
    return normalize_domain(hostname)


def content_key(title: str, description: str) -> tuple[str, str]:
    """Build the cache key identifying a content item.

    Whitespace is collapsed and case folded so cosmetic differences in the
    scraped title do not register the same content twice.
    """
    return (" ".join(title.split()).casefold(), " ".join(description.split()).casefold())


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
