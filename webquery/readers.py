"""Content readers: strategies that turn a response body into values.

A reader's `read(info, body, cancel)` returns a lazy, single-pass iterator.
Whole-body readers (`bytes_`, `text`, `json`, `html`, downloads) produce one
value; `lines` and `links` produce any number. The body is a single-use
stream, so reading it a second time raises `ContentConsumedError`.
"""

from __future__ import annotations

import codecs
import json as jsonlib
import os
import re
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar

from .cancellation import CancellationToken
from .constants import DEFAULT_ENCODING
from .download import download_to, download_to_temp
from .errors import ConfigurationError
from .html import ParsedHtml
from .session import ResponseBody
from .types import FetchInfo

T = TypeVar("T")
U = TypeVar("U")

ReadFunction = Callable[[FetchInfo, ResponseBody, CancellationToken], Iterable[T]]

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class ContentReader(Generic[T]):
    """Wraps a read function; see the module docstring for the contract."""

    def __init__(self, read: ReadFunction[T], name: str = "custom") -> None:
        self._read = read
        self.name = name

    def __repr__(self) -> str:
        return f"ContentReader({self.name})"

    def read(self, info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[T]:
        return iter(self._read(info, body, cancel))

    def map(self, selector: Callable[[T], U]) -> "ContentReader[U]":
        """Transform each value without reading the body again."""

        def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[U]:
            for value in self.read(info, body, cancel):
                yield selector(value)

        return ContentReader(read, f"{self.name}.map")

    def map_with_info(self, selector: Callable[[FetchInfo, T], U]) -> "ContentReader[U]":
        def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[U]:
            for value in self.read(info, body, cancel):
                yield selector(info, value)

        return ContentReader(read, f"{self.name}.map")


def resolve_encoding(info: FetchInfo, encoding: str | None = None) -> str:
    """Pick the codec for a text body: explicit, else charset, else UTF-8.

    An unknown encoding name is a configuration error.
    """

    name = encoding or info.charset
    if not name:
        return DEFAULT_ENCODING
    try:
        resolved = codecs.lookup(name).name
    except LookupError as exc:
        raise ConfigurationError(f"Unknown character encoding: {name!r}") from exc
    # Strip a UTF-8 byte order mark like browsers do.
    return DEFAULT_ENCODING if resolved == "utf-8" else resolved


def decode_chunks(chunks: Iterable[bytes], encoding: str) -> Iterator[str]:
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    for chunk in chunks:
        text = decoder.decode(chunk)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


def split_lines(texts: Iterable[str]) -> Iterator[str]:
    """Split streamed text on CR, LF or CRLF; line breaks are not included."""

    pending = ""
    for text in texts:
        pending += text
        start = 0
        for match in _LINE_BREAK.finditer(pending):
            if match.group() == "\r" and match.end() == len(pending):
                # May be the first half of a CRLF split across chunks.
                break
            yield pending[start:match.start()]
            start = match.end()
        pending = pending[start:]

    if pending.endswith("\r"):
        yield pending[:-1]
    elif pending:
        yield pending


def _discard(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[FetchInfo]:
    yield info


def discard() -> ContentReader[FetchInfo]:
    """Metadata only: yields the `FetchInfo` and never reads the body."""

    return ContentReader(_discard, "discard")


def bytes_() -> ContentReader[bytes]:
    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[bytes]:
        yield body.read()

    return ContentReader(read, "bytes")


def text(encoding: str | None = None) -> ContentReader[str]:
    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[str]:
        codec = resolve_encoding(info, encoding)
        yield "".join(decode_chunks(body.iter_bytes(), codec))

    return ContentReader(read, "text")


def lines(encoding: str | None = None) -> ContentReader[str]:
    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[str]:
        codec = resolve_encoding(info, encoding)
        yield from split_lines(decode_chunks(body.iter_bytes(), codec))

    return ContentReader(read, "lines")


def json(encoding: str | None = None) -> ContentReader[Any]:
    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[Any]:
        raw = body.read()
        if encoding or info.charset:
            yield jsonlib.loads(raw.decode(resolve_encoding(info, encoding)))
        else:
            # json.loads detects UTF-8/16/32 from bytes itself.
            yield jsonlib.loads(raw)

    return ContentReader(read, "json")


def html(encoding: str | None = None) -> ContentReader[ParsedHtml]:
    return text(encoding).map_with_info(lambda info, markup: ParsedHtml(markup, info.url))


def links(encoding: str | None = None) -> ContentReader[str]:
    """Absolute http(s) links of an HTML body, in document order."""

    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[str]:
        for document in html(encoding).read(info, body, cancel):
            yield from document.links()

    return ContentReader(read, "links")


def download(path: str | os.PathLike[str]) -> ContentReader[Path]:
    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[Path]:
        yield download_to(path, body.iter_bytes())

    return ContentReader(read, "download")


def download_temp(path: str | os.PathLike[str] | None = None) -> ContentReader[Path]:
    """Write the body to a new, uniquely named file (see `create_temp_file`)."""

    def read(info: FetchInfo, body: ResponseBody, cancel: CancellationToken) -> Iterator[Path]:
        yield download_to_temp(body.iter_bytes(), path, cancel=cancel)

    return ContentReader(read, "download_temp")


__all__ = [
    "ContentReader",
    "bytes_",
    "decode_chunks",
    "discard",
    "download",
    "download_temp",
    "html",
    "json",
    "lines",
    "links",
    "resolve_encoding",
    "split_lines",
    "text",
]
