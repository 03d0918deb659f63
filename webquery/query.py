"""The fetch pipeline: lazy, composable queries driven over one session.

A `Query[T]` is a description; nothing touches the network until a
terminal driver (`run`, `to_list`, `share`, `wait`) iterates it. An
`HttpQuery` is a request-producing stage that remembers its predecessor and
its `QuerySetup`. Driving a stage drains the predecessor, builds and sends
its request, checks the status, applies the acceptance predicate and hands
the body to a content reader. Bodies are always released before the next
stage runs.
"""

from __future__ import annotations

import json as jsonlib
import logging
import os
from contextlib import closing
from http.cookiejar import Cookie
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Iterator, Mapping, Sequence, TypeVar

import requests

from . import readers
from .cancellation import CancellationToken
from .config import Credentials, Decompression, HttpConfig, validate_header
from .constants import FORM_URLENCODED, MULTIPART_FORM_DATA
from .errors import ConfigurationError, HttpStatusError, UnacceptableMediaError
from .html import ParsedHtml
from .options import Configurer, Predicate, QuerySetup
from .readers import ContentReader
from .session import ResponseBody, Session
from .types import ErrorTolerance, Fetch, FetchInfo
from .url import with_query

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

RequestFactory = Callable[[Session, CancellationToken], "requests.Request | None"]
Inspector = Callable[[FetchInfo], None]
FormData = Mapping[str, "str | Sequence[str] | None"]


class Query(Generic[T]):
    """A lazy, re-runnable pipeline producing values of type `T`."""

    def _iterate(self, session: Session, cancel: CancellationToken) -> Iterator[T]:
        raise NotImplementedError

    def share(self, session: Session, cancel: CancellationToken | None = None) -> Iterator[T]:
        """Bind this query to `session` for one traversal."""

        return self._iterate(session, cancel or CancellationToken())

    def run(
        self,
        config: HttpConfig | None = None,
        *,
        cancel: CancellationToken | None = None,
        session: Session | None = None,
    ) -> Iterator[T]:
        """Iterate results, creating and closing a `Session` unless one is given."""

        if session is not None:
            yield from self.share(session, cancel)
            return

        with Session(config) as owned:
            yield from self.share(owned, cancel)

    def to_list(
        self,
        config: HttpConfig | None = None,
        *,
        cancel: CancellationToken | None = None,
        session: Session | None = None,
    ) -> list[T]:
        return list(self.run(config, cancel=cancel, session=session))

    def wait(self, session: Session, cancel: CancellationToken | None = None) -> int:
        """Drain the query for its side effects; returns the number of results."""

        count = 0
        for _ in self.share(session, cancel):
            count += 1
        return count

    def map(self, selector: Callable[[T], U]) -> "Query[U]":
        def iterate(session: Session, cancel: CancellationToken) -> Iterator[U]:
            for value in self._iterate(session, cancel):
                yield selector(value)

        return FunctionQuery(iterate)

    def filter(self, predicate: Callable[[T], bool]) -> "Query[T]":
        def iterate(session: Session, cancel: CancellationToken) -> Iterator[T]:
            for value in self._iterate(session, cancel):
                if predicate(value):
                    yield value

        return FunctionQuery(iterate)

    def do(self, action: Callable[[T], Any]) -> "Query[T]":
        def iterate(session: Session, cancel: CancellationToken) -> Iterator[T]:
            for value in self._iterate(session, cancel):
                action(value)
                yield value

        return FunctionQuery(iterate)

    def flat_map(self, selector: Callable[[T], "Query[U]"]) -> "Query[U]":
        """Run the query `selector` returns for each value, one after another."""

        def iterate(session: Session, cancel: CancellationToken) -> Iterator[U]:
            for value in self._iterate(session, cancel):
                cancel.raise_if_cancelled()
                yield from selector(value)._iterate(session, cancel)

        return FunctionQuery(iterate)

    def take(self, count: int) -> "Query[T]":
        def iterate(session: Session, cancel: CancellationToken) -> Iterator[T]:
            if count <= 0:
                return
            taken = 0
            for value in self._iterate(session, cancel):
                yield value
                taken += 1
                if taken >= count:
                    return

        return FunctionQuery(iterate)

    def first(
        self,
        config: HttpConfig | None = None,
        *,
        cancel: CancellationToken | None = None,
        session: Session | None = None,
    ) -> T:
        with closing(self.run(config, cancel=cancel, session=session)) as results:
            for value in results:
                return value
        raise LookupError("Query produced no results")

    @staticmethod
    def empty() -> "Query[Any]":
        return FunctionQuery(lambda session, cancel: iter(()))

    @staticmethod
    def of(*values: U) -> "Query[U]":
        return FunctionQuery(lambda session, cancel: iter(values))


class FunctionQuery(Query[T]):
    """A query defined by a function of `(session, cancel)` returning an iterable."""

    def __init__(self, iterate: Callable[[Session, CancellationToken], Iterable[T]]) -> None:
        self._function = iterate

    def _iterate(self, session: Session, cancel: CancellationToken) -> Iterator[T]:
        return iter(self._function(session, cancel))


class HttpQuery(Query[FetchInfo]):
    """A request-producing stage.

    Stages chained with `get`, `post` or `submit` start from this stage's
    setup, so config transforms compose in declaration order and acceptance
    predicates only narrow.
    """

    def __init__(
        self,
        request_factory: RequestFactory,
        *,
        previous: Query[Any] | None = None,
        setup: QuerySetup | None = None,
        inspectors: tuple[Inspector, ...] = (),
        description: str = "request",
    ) -> None:
        self._request_factory = request_factory
        self._previous = previous
        self._setup = setup or QuerySetup()
        self._inspectors = inspectors
        self._description = description

    def __repr__(self) -> str:
        return f"HttpQuery({self._description})"

    @property
    def setup(self) -> QuerySetup:
        return self._setup

    def _derive(self, *, setup: QuerySetup | None = None, inspectors: tuple[Inspector, ...] | None = None) -> "HttpQuery":
        return HttpQuery(
            self._request_factory,
            previous=self._previous,
            setup=self._setup if setup is None else setup,
            inspectors=self._inspectors if inspectors is None else inspectors,
            description=self._description,
        )

    def with_setup(self, setup: QuerySetup) -> "HttpQuery":
        return self if setup == self._setup else self._derive(setup=setup)

    # Config modifiers

    def configure(self, configurer: Configurer) -> "HttpQuery":
        return self._derive(setup=self._setup.with_configurer(configurer))

    def set_header(self, name: str, value: str) -> "HttpQuery":
        validate_header(name, value)
        return self.configure(lambda config: config.with_header(name, value))

    def add_header(self, name: str, value: str) -> "HttpQuery":
        validate_header(name, value)
        return self.configure(lambda config: config.with_added_header(name, value))

    def with_timeout(self, seconds: float) -> "HttpQuery":
        return self.configure(lambda config: config.with_timeout(seconds))

    def with_user_agent(self, user_agent: str) -> "HttpQuery":
        return self.configure(lambda config: config.with_user_agent(user_agent))

    def with_credentials(self, credentials: Credentials | None) -> "HttpQuery":
        return self.configure(lambda config: config.with_credentials(credentials))

    def with_proxy(self, proxy: str | None) -> "HttpQuery":
        return self.configure(lambda config: config.with_proxy(proxy))

    def with_decompression(self, mode: Decompression | str) -> "HttpQuery":
        return self.configure(lambda config: config.with_decompression(mode))

    def ignore_invalid_server_certificate(self, value: bool = True) -> "HttpQuery":
        return self.configure(lambda config: config.with_ignore_invalid_server_certificate(value))

    # Response checks

    def filter(self, predicate: Predicate) -> "HttpQuery":  # type: ignore[override]
        """Drop responses for which `predicate(info)` is false (not an error)."""

        return self._derive(setup=self._setup.with_predicate(predicate))

    def return_erroneous_fetch(self) -> "HttpQuery":
        """Yield non-2xx responses instead of raising `HttpStatusError`."""

        return self._derive(setup=self._setup.with_tolerance(ErrorTolerance.RETURN_ERRONEOUS))

    def strict(self) -> "HttpQuery":
        return self._derive(setup=self._setup.with_tolerance(ErrorTolerance.STRICT))

    def do(self, action: Inspector) -> "HttpQuery":  # type: ignore[override]
        """Call `action(info)` on each accepted response before its body is read."""

        return self._derive(inspectors=self._inspectors + (action,))

    def except_status_code(self, *status_codes: int) -> "HttpQuery":
        """Tolerate only the listed non-2xx status codes."""

        allowed = frozenset(int(code) for code in status_codes)

        def check(info: FetchInfo) -> None:
            if not info.is_success and info.status_code not in allowed:
                raise HttpStatusError(info)

        return self.return_erroneous_fetch().do(check)

    def accept(self, *media_types: str) -> "HttpQuery":
        """Require the response media type to be one of `media_types`.

        The type comes from Content-Type, or is guessed from the
        Content-Disposition filename. With no arguments nothing is checked.
        """

        if not media_types:
            return self
        expected = tuple(media_types)
        lowered = {media_type.lower() for media_type in expected}

        def check(info: FetchInfo) -> None:
            actual = info.sniffed_media_type
            if actual is None or actual.lower() not in lowered:
                raise UnacceptableMediaError(actual, expected)

        return self.do(check)

    # Chained requests

    def _then(self, factory: RequestFactory, description: str) -> "HttpQuery":
        return HttpQuery(factory, previous=self, setup=self._setup, description=description)

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> "HttpQuery":
        return self._then(_fixed(requests.Request("GET", url, headers=dict(headers or {}))), f"GET {url}")

    def post(self, url: str, data: FormData | Iterable[tuple[str, str]]) -> "HttpQuery":
        return self._then(_fixed(_form_post(url, data)), f"POST {url}")

    def post_json(self, url: str, payload: Any) -> "HttpQuery":
        return self._then(_fixed(_json_post(url, payload)), f"POST {url}")

    def post_text(self, url: str, text: str, content_type: str = "text/plain; charset=utf-8") -> "HttpQuery":
        return self._then(_fixed(_text_post(url, text, content_type)), f"POST {url}")

    def submit(self, form: str | int = 0, data: FormData | None = None) -> "HttpQuery":
        """Submit a form of the HTML this stage returns.

        `form` is a CSS selector or a zero-based form index. `data` overrides
        the form's default values; a `None` value removes the field.
        """

        documents = self.html()

        def factory(session: Session, cancel: CancellationToken) -> requests.Request | None:
            fetches = list(documents.share(session, cancel))
            if not fetches:
                return None
            return form_request(fetches[0].content, form, data)

        return HttpQuery(factory, setup=self._setup, description=f"submit {form!r}")

    # Content

    def _iterate(self, session: Session, cancel: CancellationToken) -> Iterator[FetchInfo]:
        return self._execute(session, cancel, readers.discard(), lambda info, value: value)

    def read_content(self, reader: ContentReader[T]) -> Query[Fetch[T]]:
        def iterate(session: Session, cancel: CancellationToken) -> Iterator[Fetch[T]]:
            return self._execute(session, cancel, reader, Fetch)

        return FunctionQuery(iterate)

    def read_bytes(self) -> Query[Fetch[bytes]]:
        return self.read_content(readers.bytes_())

    def text(self, encoding: str | None = None) -> Query[Fetch[str]]:
        return self.read_content(readers.text(encoding))

    def lines(self, encoding: str | None = None) -> Query[Fetch[str]]:
        return self.read_content(readers.lines(encoding))

    def json(self, encoding: str | None = None) -> Query[Fetch[Any]]:
        return self.read_content(readers.json(encoding))

    def html(self, encoding: str | None = None) -> Query[Fetch[ParsedHtml]]:
        return self.read_content(readers.html(encoding))

    def links(self, encoding: str | None = None) -> Query[Fetch[str]]:
        return self.read_content(readers.links(encoding))

    def download(self, path: str | os.PathLike[str]) -> Query[Fetch[Path]]:
        return self.read_content(readers.download(path))

    def download_temp(self, path: str | os.PathLike[str] | None = None) -> Query[Fetch[Path]]:
        return self.read_content(readers.download_temp(path))

    def _execute(
        self,
        session: Session,
        cancel: CancellationToken,
        reader: ContentReader[U],
        selector: Callable[[FetchInfo, U], T],
    ) -> Iterator[T]:
        if self._previous is not None and self._previous.wait(session, cancel) == 0:
            logger.debug("Skipping %r: previous stage produced nothing", self)
            return

        cancel.raise_if_cancelled()
        request = self._request_factory(session, cancel)
        if request is None:
            logger.debug("Skipping %r: nothing to request", self)
            return

        config = self._setup.configure(session.config)
        fetch_id = session.next_id()
        response = session.send(config, request, cancel)
        body = ResponseBody(response, cancel)
        try:
            info = FetchInfo.from_response(fetch_id, request.url, response)
            logger.debug("Fetch %d: %d %s %s", info.id, info.status_code, info.reason, info.url)

            if self._setup.tolerance is ErrorTolerance.STRICT and not info.is_success:
                raise HttpStatusError(info)

            if not self._setup.accepts(info):
                logger.debug("Fetch %d filtered out", info.id)
                return

            for inspect in self._inspectors:
                inspect(info)

            for value in reader.read(info, body, cancel):
                yield selector(info, value)
        finally:
            body.close()


def _fixed(request: requests.Request) -> RequestFactory:
    def factory(session: Session, cancel: CancellationToken) -> requests.Request:
        return request

    return factory


def _form_pairs(data: FormData | Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    items = data.items() if isinstance(data, Mapping) else data
    pairs: list[tuple[str, str]] = []
    for key, value in items:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(item)) for item in value)
        else:
            pairs.append((key, str(value)))
    return pairs


def _form_post(url: str, data: FormData | Iterable[tuple[str, str]]) -> requests.Request:
    return requests.Request("POST", url, data=_form_pairs(data))


def _json_post(url: str, payload: Any) -> requests.Request:
    return requests.Request(
        "POST",
        url,
        data=jsonlib.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json; charset=utf-8"},
    )


def _text_post(url: str, text: str, content_type: str) -> requests.Request:
    return requests.Request("POST", url, data=text.encode("utf-8"), headers={"Content-Type": content_type})


def form_request(
    html: ParsedHtml,
    form: str | int = 0,
    data: FormData | None = None,
    *,
    action: str | None = None,
) -> requests.Request:
    """Build the request that submitting a form of `html` would send.

    POST forms are sent URL-encoded or as multipart/form-data, following the
    form's enctype. Raises `ElementNotFoundError` when the form does not exist
    and `ConfigurationError` for any other enctype.
    """

    selected = html.form(form)
    pairs = list(selected.data)
    for key, value in (data or {}).items():
        pairs = [pair for pair in pairs if pair[0] != key]
        if value is None:
            continue
        pairs.extend(_form_pairs({key: value}))

    target = action or selected.action
    headers = {"Referer": html.url} if html.url else {}
    if selected.method != "POST":
        return requests.Request("GET", with_query(target, pairs), headers=headers)
    if selected.enctype == FORM_URLENCODED:
        return requests.Request("POST", target, data=pairs, headers=headers)
    if selected.enctype == MULTIPART_FORM_DATA:
        fields = [(key, (None, value)) for key, value in pairs]
        return requests.Request("POST", target, files=fields, headers=headers)
    raise ConfigurationError(f"Unsupported form enctype {selected.enctype!r} for {target}")


# Root stages


def get(url: str, *, headers: Mapping[str, str] | None = None) -> HttpQuery:
    return HttpQuery(_fixed(requests.Request("GET", url, headers=dict(headers or {}))), description=f"GET {url}")


def post(url: str, data: FormData | Iterable[tuple[str, str]]) -> HttpQuery:
    """POST `data` form-encoded; sequence values send the field repeatedly."""

    return HttpQuery(_fixed(_form_post(url, data)), description=f"POST {url}")


def post_json(url: str, payload: Any) -> HttpQuery:
    return HttpQuery(_fixed(_json_post(url, payload)), description=f"POST {url}")


def post_text(url: str, text: str, content_type: str = "text/plain; charset=utf-8") -> HttpQuery:
    return HttpQuery(_fixed(_text_post(url, text, content_type)), description=f"POST {url}")


def submit(
    html: ParsedHtml,
    form: str | int = 0,
    data: FormData | None = None,
    *,
    action: str | None = None,
) -> HttpQuery:
    """Submit a form of an already parsed document.

    The form is looked up when the query runs, so a missing form surfaces as
    `ElementNotFoundError` from the traversal.
    """

    def factory(session: Session, cancel: CancellationToken) -> requests.Request:
        return form_request(html, form, data, action=action)

    return HttpQuery(factory, description=f"submit {form!r}")


def for_each(source: Iterable[T], selector: Callable[[T], Query[U]]) -> Query[U]:
    """Run one query per source item, sequentially and in source order."""

    def iterate(session: Session, cancel: CancellationToken) -> Iterator[U]:
        for item in source:
            cancel.raise_if_cancelled()
            yield from selector(item).share(session, cancel)

    return FunctionQuery(iterate)


def cookies() -> Query[list[Cookie]]:
    """A single result: the cookies currently held by the session."""

    def iterate(session: Session, cancel: CancellationToken) -> Iterator[list[Cookie]]:
        yield list(session.cookies)

    return FunctionQuery(iterate)


__all__ = [
    "FunctionQuery",
    "HttpQuery",
    "Query",
    "cookies",
    "for_each",
    "form_request",
    "get",
    "post",
    "post_json",
    "post_text",
    "submit",
]
