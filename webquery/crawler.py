"""Breadth-first, same-host crawling built on the fetch pipeline."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

import requests

from .cancellation import CancellationToken
from .errors import ConfigurationError
from .html import ParsedHtml
from .query import FunctionQuery, Query, get
from .session import Session
from .types import Fetch, is_html_media_type
from .url import canonical_url, is_http_url, resolve_url, same_host

logger = logging.getLogger(__name__)

FollowPredicate = Callable[[str], bool]


class EnqueueStatus(str, Enum):
    """Outcome of offering a discovered link to the frontier."""

    ENQUEUED = "enqueued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"
    SKIPPED_OTHER_HOST = "skipped_other_host"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_NOT_FOLLOWED = "skipped_not_followed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    status: EnqueueStatus
    url: str | None = None


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A URL waiting to be fetched and the BFS level it was found at."""

    url: str
    depth: int


class CrawlFrontier:
    """Visited set and FIFO queue for one crawl.

    Every URL is enqueued at most once: membership is checked against all
    URLs ever enqueued, not only those still waiting, in `canonical_url`
    form. `root_url` must be an absolute http(s) URL. Not thread-safe; the
    crawler runs one fetch at a time.
    """

    def __init__(self, root_url: str, follow: FollowPredicate | None = None) -> None:
        self.root_url = canonical_url(root_url)
        self._follow = follow
        self._queue: deque[FrontierItem] = deque([FrontierItem(self.root_url, 0)])
        self._seen_urls: set[str] = {self.root_url}

    def push(self, base_url: str, href: str, *, depth: int) -> EnqueueResult:
        """Resolve `href` against `base_url` and enqueue it if it qualifies."""

        resolved = resolve_url(base_url, href)
        if resolved is None:
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)
        url = canonical_url(resolved)
        if not same_host(url, self.root_url):
            return EnqueueResult(EnqueueStatus.SKIPPED_OTHER_HOST, url)
        if url in self._seen_urls:
            return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, url)
        if self._follow is not None and not self._follow(url):
            return EnqueueResult(EnqueueStatus.SKIPPED_NOT_FOLLOWED, url)

        self._seen_urls.add(url)
        self._queue.append(FrontierItem(url, depth))
        return EnqueueResult(EnqueueStatus.ENQUEUED, url)

    def pop(self) -> FrontierItem | None:
        return self._queue.popleft() if self._queue else None

    def __len__(self) -> int:
        return len(self._queue)


@dataclass(slots=True)
class CrawlStats:
    """Counters for one crawl, logged when it ends."""

    fetched: int = 0
    dropped_status: int = 0
    dropped_error: int = 0
    leaves_depth: int = 0
    leaves_not_html: int = 0
    enqueue_counts: dict[str, int] = field(default_factory=dict)

    def record_enqueue(self, result: EnqueueResult) -> None:
        key = result.status.value
        self.enqueue_counts[key] = self.enqueue_counts.get(key, 0) + 1

    def to_dict(self) -> dict[str, int]:
        out = {
            "fetched": self.fetched,
            "dropped_status": self.dropped_status,
            "dropped_error": self.dropped_error,
            "leaves_depth": self.leaves_depth,
            "leaves_not_html": self.leaves_not_html,
        }
        out.update(sorted(self.enqueue_counts.items()))
        return out


def _fetch_node(url: str, session: Session, cancel: CancellationToken) -> Fetch[bytes] | None:
    query = get(url).return_erroneous_fetch().read_bytes()
    fetches = list(query.share(session, cancel))
    return fetches[0] if fetches else None


def crawl(
    root_url: str,
    max_depth: int | None = None,
    follow: FollowPredicate | None = None,
    *,
    stats: CrawlStats | None = None,
) -> Query[Fetch[bytes]]:
    """Crawl same-host links breadth-first from `root_url`.

    Yields each successful fetch in BFS order. Non-2xx responses and
    transport errors are dropped, not retried. Pages at `max_depth` (None
    means unbounded) and non-HTML pages are not expanded. Only absolute
    http(s) links on the root's host that `follow(url)` accepts are queued,
    each at most once.
    """

    if not is_http_url(root_url):
        raise ConfigurationError(f"Crawl root must be an absolute http(s) URL: {root_url!r}")
    if max_depth is not None and max_depth < 0:
        raise ConfigurationError("max_depth must be >= 0")

    def iterate(session: Session, cancel: CancellationToken) -> Iterator[Fetch[bytes]]:
        frontier = CrawlFrontier(root_url, follow)
        counters = stats if stats is not None else CrawlStats()

        try:
            while (item := frontier.pop()) is not None:
                cancel.raise_if_cancelled()
                try:
                    fetch = _fetch_node(item.url, session, cancel)
                except requests.RequestException as exc:
                    counters.dropped_error += 1
                    logger.warning("Dropping %s: %s: %s", item.url, exc.__class__.__name__, exc)
                    continue

                if fetch is None or not fetch.is_success:
                    counters.dropped_status += 1
                    if fetch is not None:
                        logger.warning("Dropping %s: HTTP %d", item.url, fetch.status_code)
                    continue

                counters.fetched += 1
                yield fetch

                if max_depth is not None and item.depth >= max_depth:
                    counters.leaves_depth += 1
                    continue
                if not is_html_media_type(fetch.media_type):
                    counters.leaves_not_html += 1
                    continue

                document = ParsedHtml(fetch.content, fetch.url)
                base_url = document.base_url or fetch.url
                for href in document.hrefs():
                    counters.record_enqueue(frontier.push(base_url, href, depth=item.depth + 1))
        finally:
            logger.info("Crawl of %s finished: %s", root_url, counters.to_dict())

    return FunctionQuery(iterate)


__all__ = [
    "CrawlFrontier",
    "CrawlStats",
    "EnqueueResult",
    "EnqueueStatus",
    "FrontierItem",
    "crawl",
]
