"""URL resolution and scope helpers used by links, forms and the crawler."""

from __future__ import annotations

from typing import Iterable, Sequence
from urllib.parse import urldefrag, urlencode, urljoin, urlsplit, urlunsplit

DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")


def host_from_url(url: str) -> str:
    """Extract the lowercased host of an absolute URL ('' when there is none)."""

    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_http_url(url: str, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True if URL is absolute and has an allowed HTTP-like scheme."""

    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.netloc:
        return False
    return parsed.scheme.lower() in {scheme.lower() for scheme in allowed_schemes}


def resolve_url(
    base_url: str,
    href: str | None,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve a possibly relative link against `base_url`.

    Returns the absolute URL without its fragment, or None when the link is
    empty, a pseudo-link (javascript:, mailto:, ...), fragment-only, cannot
    be parsed, or does not use an allowed scheme.
    """

    if href is None:
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    try:
        absolute, _fragment = urldefrag(urljoin(base_url, candidate))
        # Port parsing is deferred by urllib; force it so bad ports are rejected here.
        urlsplit(absolute).port
    except ValueError:
        return None

    if is_http_url(absolute, allowed_schemes=allowed_schemes):
        return absolute
    return None


def canonical_url(url: str) -> str:
    """Lowercase scheme and host, use "/" for an empty path and drop the fragment.

    Two spellings of the same absolute URL map to one string, so it can key a
    visited set.
    """

    scheme, netloc, path, query, _fragment = urlsplit(url)
    userinfo, at, host = netloc.rpartition("@")
    return urlunsplit((scheme.lower(), userinfo + at + host.lower(), path or "/", query, ""))


def same_host(url: str, other: str) -> bool:
    host = host_from_url(url)
    return bool(host) and host == host_from_url(other)


def with_query(url: str, pairs: Iterable[tuple[str, str]]) -> str:
    """Replace the query string of `url` with form-encoded `pairs`."""

    scheme, netloc, path, _query, _fragment = urlsplit(url)
    return urlunsplit((scheme, netloc, path, urlencode(list(pairs)), ""))


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "canonical_url",
    "host_from_url",
    "is_http_url",
    "resolve_url",
    "same_host",
    "with_query",
]
