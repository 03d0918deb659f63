"""The shared HTTP session: one pooled transport plus the fetch-id counter."""

from __future__ import annotations

import importlib.util
import itertools
import logging
import threading
from typing import Callable, Iterator, MutableMapping
from urllib.parse import urlsplit

import requests
from requests.adapters import BaseAdapter
from requests.cookies import RequestsCookieJar

from .cancellation import CancellationToken
from .config import Decompression, HttpConfig, TransportSettings
from .constants import CHUNK_SIZE, REQUEST_OWNED_HEADERS, SUPPORTED_PROXY_SCHEMES
from .errors import (
    ConfigurationError,
    ContentConsumedError,
    QueryCancelledError,
    SessionClosedError,
)

logger = logging.getLogger(__name__)

_ACCEPT_ENCODING = {
    Decompression.AUTO: "gzip, deflate",
    Decompression.NONE: "identity",
}


def _proxy_map(proxy: str | None) -> dict[str, str]:
    if not proxy:
        return {}

    scheme = urlsplit(proxy).scheme.lower()
    if scheme not in SUPPORTED_PROXY_SCHEMES:
        raise ConfigurationError(
            f"Unsupported proxy scheme '{scheme}' in {proxy!r}. Supported: {SUPPORTED_PROXY_SCHEMES}"
        )
    if scheme.startswith("socks") and importlib.util.find_spec("socks") is None:
        raise ConfigurationError(
            "SOCKS proxies need PySocks; install webquery with the 'socks' extra"
        )
    return {"http": proxy, "https": proxy}


def merge_request_headers(headers: MutableMapping[str, str], config: HttpConfig) -> None:
    """Apply config headers to a prepared request's headers in place.

    User-Agent, Referer, Accept and Content-Type set by the request win and
    are only filled in from config when missing. Every other config header is
    appended to whatever the request already carries.
    """

    owned = {name.lower() for name in REQUEST_OWNED_HEADERS}

    for name in REQUEST_OWNED_HEADERS:
        if name in headers:
            continue
        if name == "User-Agent" and config.user_agent:
            headers[name] = config.user_agent
            continue
        values = config.headers.get_all(name)
        if values:
            headers[name] = ", ".join(values)

    for name in config.headers.names():
        if name.lower() in owned:
            continue
        values = config.headers.get_all(name)
        existing = headers.get(name)
        headers[name] = ", ".join(([existing] if existing else []) + values)


class Session:
    """Owns the transport, the cookie jar and the fetch-id counter.

    The transport (a `requests.Session`) is rebuilt only when the transport
    projection of the requested config changes. The cookie jar and the id
    counter belong to this object and survive rebuilds.

    One traversal at a time: driving two pipelines concurrently over the same
    session is not synchronized beyond id assignment.
    """

    def __init__(self, config: HttpConfig | None = None, *, adapter: BaseAdapter | None = None) -> None:
        self.config = config or HttpConfig()
        self._adapter = adapter
        self._cookies = RequestsCookieJar()

        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

        self._transport: requests.Session | None = None
        self._transport_settings: TransportSettings | None = None
        self._transport_builds = 0
        self._closed = False

    @property
    def cookies(self) -> RequestsCookieJar:
        return self._cookies

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def transport_builds(self) -> int:
        """How many times a transport has been built for this session."""

        return self._transport_builds

    def next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def transport_for(self, config: HttpConfig) -> requests.Session:
        """Return the pooled transport, rebuilding it if `config` needs a different one."""

        if self._closed:
            raise SessionClosedError("Session is closed")

        settings = TransportSettings.from_config(config)
        if self._transport is not None and settings == self._transport_settings:
            return self._transport

        transport = self._build_transport(settings)
        if self._transport is not None:
            logger.debug("Transport settings changed; rebuilding transport")
            self._transport.close()

        self._transport = transport
        self._transport_settings = settings
        self._transport_builds += 1
        return transport

    def _build_transport(self, settings: TransportSettings) -> requests.Session:
        proxies = _proxy_map(settings.proxy)

        transport = requests.Session()
        # Config is the only source of proxies, auth and headers.
        transport.trust_env = False
        transport.headers.clear()
        transport.headers["Accept-Encoding"] = _ACCEPT_ENCODING[settings.decompression]
        transport.cookies = self._cookies
        transport.auth = settings.credentials
        transport.proxies = proxies
        transport.verify = not settings.ignore_invalid_server_certificate
        if settings.ignore_invalid_server_certificate:
            logger.warning("Server certificate validation is disabled")

        if self._adapter is not None:
            transport.mount("http://", self._adapter)
            transport.mount("https://", self._adapter)

        return transport

    def send(
        self,
        config: HttpConfig,
        request: requests.Request,
        cancel: CancellationToken,
    ) -> requests.Response:
        """Send `request` and return once headers arrive; the body stays unread."""

        cancel.raise_if_cancelled()
        transport = self.transport_for(config)

        try:
            prepared = transport.prepare_request(request)
            merge_request_headers(prepared.headers, config)
        except requests.exceptions.InvalidHeader as exc:
            raise ConfigurationError(str(exc)) from exc

        logger.debug("%s %s", prepared.method, prepared.url)

        unregister = cancel.register(transport.close)
        try:
            response = transport.send(
                prepared,
                stream=True,
                timeout=config.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            if cancel.cancelled:
                self._discard_transport()
                raise QueryCancelledError("Query was cancelled while sending") from exc
            raise
        finally:
            unregister()

        if cancel.cancelled:
            response.close()
            self._discard_transport()
            raise QueryCancelledError("Query was cancelled while sending")

        return response

    def _discard_transport(self) -> None:
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._transport_settings = None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ResponseBody:
    """Single-use view over a streamed response body.

    Reading twice raises `ContentConsumedError`. Cancelling the token closes
    the underlying response so a blocked read ends.
    """

    def __init__(
        self,
        response: requests.Response,
        cancel: CancellationToken,
        *,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._response = response
        self._cancel = cancel
        self._chunk_size = chunk_size
        self._consumed = False
        self._closed = False
        self._unregister: Callable[[], None] = lambda: None
        self._unregister = cancel.register(self.close)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def iter_bytes(self) -> Iterator[bytes]:
        if self._consumed:
            raise ContentConsumedError("Response body has already been read")
        if self._closed and not self._cancel.cancelled:
            raise ContentConsumedError("Response body has been released")
        self._consumed = True
        return self._chunks()

    def _chunks(self) -> Iterator[bytes]:
        self._cancel.raise_if_cancelled()
        try:
            for chunk in self._response.iter_content(self._chunk_size):
                self._cancel.raise_if_cancelled()
                if chunk:
                    yield chunk
        except (requests.RequestException, OSError, ValueError) as exc:
            if self._cancel.cancelled:
                raise QueryCancelledError("Query was cancelled while reading") from exc
            raise

    def read(self) -> bytes:
        return b"".join(self.iter_bytes())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unregister()
        self._response.close()

    def __enter__(self) -> "ResponseBody":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ResponseBody", "Session", "merge_request_headers"]
