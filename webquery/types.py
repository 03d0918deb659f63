"""Core records shared by the pipeline: headers, fetch metadata and fetches."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from email.utils import decode_rfc2231
from enum import Enum
from functools import cached_property
from typing import Any, Generic, Iterable, Iterator, Mapping, TypeVar
from urllib.parse import unquote

from .constants import CONTENT_HEADER_NAMES, CONTENT_HEADER_PREFIX, HTML_MEDIA_TYPES

T = TypeVar("T")
U = TypeVar("U")


class ErrorTolerance(str, Enum):
    """What a stage does with a non-2xx response."""

    STRICT = "strict"
    RETURN_ERRONEOUS = "return_erroneous"


HeaderPairs = tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class HttpHeaders:
    """Immutable, ordered multi-map of header names to values.

    Lookups are case-insensitive; the original spelling of each name is kept.
    """

    items: HeaderPairs = ()

    @classmethod
    def of(cls, source: "HttpHeaders | Mapping[str, Any] | Iterable[tuple[str, str]] | None") -> "HttpHeaders":
        if source is None:
            return cls()
        if isinstance(source, HttpHeaders):
            return source

        pairs: list[tuple[str, str]] = []
        iterable = source.items() if isinstance(source, Mapping) else source
        for name, value in iterable:
            if isinstance(value, (list, tuple)):
                pairs.extend((str(name), str(item)) for item in value)
            else:
                pairs.append((str(name), str(value)))
        return cls(tuple(pairs))

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = name.lower()
        return any(existing.lower() == key for existing, _ in self.items)

    def get(self, name: str, default: str | None = None) -> str | None:
        key = name.lower()
        for existing, value in self.items:
            if existing.lower() == key:
                return value
        return default

    def get_all(self, name: str) -> list[str]:
        key = name.lower()
        return [value for existing, value in self.items if existing.lower() == key]

    def names(self) -> list[str]:
        seen: dict[str, str] = {}
        for name, _ in self.items:
            seen.setdefault(name.lower(), name)
        return list(seen.values())

    def add(self, name: str, value: str) -> "HttpHeaders":
        return HttpHeaders(self.items + ((name, value),))

    def set(self, name: str, *values: str) -> "HttpHeaders":
        """Replace every value of `name` with `values`, keeping its position."""

        key = name.lower()
        out: list[tuple[str, str]] = []
        inserted = False
        for existing, value in self.items:
            if existing.lower() != key:
                out.append((existing, value))
            elif not inserted:
                out.extend((name, item) for item in values)
                inserted = True
        if not inserted:
            out.extend((name, item) for item in values)
        return HttpHeaders(tuple(out))

    def remove(self, name: str) -> "HttpHeaders":
        key = name.lower()
        return HttpHeaders(tuple(pair for pair in self.items if pair[0].lower() != key))

    def to_dict(self) -> dict[str, list[str]]:
        return {name: self.get_all(name) for name in self.names()}


def parse_header_params(value: str | None) -> tuple[str | None, dict[str, str]]:
    """Split `type/subtype; key=value` style headers into head and params.

    The head is lowercased; parameter names are lowercased, values unquoted.
    """

    if not value:
        return None, {}

    head, *raw_params = value.split(";")
    params: dict[str, str] = {}
    for raw in raw_params:
        key, sep, param_value = raw.partition("=")
        if not sep:
            continue
        params[key.strip().lower()] = param_value.strip().strip('"')

    return head.strip().lower() or None, params


def filename_from_disposition(value: str | None) -> str | None:
    _, params = parse_header_params(value)

    extended = params.get("filename*")
    if extended:
        charset, _language, encoded = decode_rfc2231(extended)
        try:
            return unquote(encoded, encoding=charset or "utf-8", errors="replace")
        except LookupError:
            return unquote(encoded, encoding="utf-8", errors="replace")

    return params.get("filename") or None


def is_html_media_type(media_type: str | None) -> bool:
    return (media_type or "").lower() in HTML_MEDIA_TYPES


def is_content_header(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith(CONTENT_HEADER_PREFIX) or lowered in CONTENT_HEADER_NAMES


def http_version_label(raw_version: Any) -> str:
    """Map urllib3's integer protocol version (10, 11, 20) to `"1.1"` style."""

    if isinstance(raw_version, int) and raw_version > 0:
        return f"{raw_version // 10}.{raw_version % 10}"
    return "1.1"


@dataclass(frozen=True)
class FetchInfo:
    """Metadata of one completed HTTP exchange, without its body."""

    id: int
    http_version: str
    status_code: int
    reason: str
    headers: HttpHeaders
    content_headers: HttpHeaders
    url: str
    request_url: str
    request_headers: HttpHeaders = field(default_factory=HttpHeaders)

    @classmethod
    def from_response(cls, fetch_id: int, request_url: str, response: Any) -> "FetchInfo":
        """Build metadata from a `requests.Response` whose body is still unread."""

        headers: list[tuple[str, str]] = []
        content_headers: list[tuple[str, str]] = []
        for name, value in response.headers.items():
            (content_headers if is_content_header(name) else headers).append((name, value))

        request = getattr(response, "request", None)
        request_headers = HttpHeaders.of(dict(request.headers) if request is not None else None)

        return cls(
            id=fetch_id,
            http_version=http_version_label(getattr(response.raw, "version", None)),
            status_code=int(response.status_code),
            reason=response.reason or "",
            headers=HttpHeaders(tuple(headers)),
            content_headers=HttpHeaders(tuple(content_headers)),
            url=response.url or request_url,
            request_url=request_url,
            request_headers=request_headers,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @cached_property
    def _content_type(self) -> tuple[str | None, dict[str, str]]:
        return parse_header_params(self.content_headers.get("Content-Type"))

    @cached_property
    def media_type(self) -> str | None:
        return self._content_type[0]

    @cached_property
    def charset(self) -> str | None:
        return self._content_type[1].get("charset") or None

    @cached_property
    def content_disposition_filename(self) -> str | None:
        return filename_from_disposition(self.content_headers.get("Content-Disposition"))

    @cached_property
    def sniffed_media_type(self) -> str | None:
        """Media type from Content-Type, else guessed from the attachment filename."""

        if self.media_type:
            return self.media_type
        filename = self.content_disposition_filename
        if not filename:
            return None
        guessed, _ = mimetypes.guess_type(filename, strict=False)
        return guessed.lower() if guessed else None


@dataclass(frozen=True)
class Fetch(Generic[T]):
    """A `FetchInfo` paired with content materialized from its body."""

    info: FetchInfo
    content: T

    @property
    def id(self) -> int:
        return self.info.id

    @property
    def status_code(self) -> int:
        return self.info.status_code

    @property
    def reason(self) -> str:
        return self.info.reason

    @property
    def url(self) -> str:
        return self.info.url

    @property
    def is_success(self) -> bool:
        return self.info.is_success

    @property
    def media_type(self) -> str | None:
        return self.info.media_type

    def with_content(self, content: U) -> "Fetch[U]":
        return Fetch(self.info, content)


__all__ = [
    "ErrorTolerance",
    "Fetch",
    "FetchInfo",
    "HttpHeaders",
    "filename_from_disposition",
    "http_version_label",
    "is_content_header",
    "is_html_media_type",
    "parse_header_params",
]
