import io
from dataclasses import dataclass, field
from http import HTTPStatus

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from webquery.session import Session


@dataclass
class CannedResponse:
    status: int = 200
    body: bytes = b""
    headers: dict = field(default_factory=dict)
    reason: str = "OK"


class FakeAdapter(BaseAdapter):
    """Serves canned responses keyed by (method, url) and records every request."""

    def __init__(self):
        super().__init__()
        self.routes = {}
        self.requests = []
        self.send_kwargs = []
        self.errors = {}

    def add(self, url, body=b"", *, method="GET", status=200, headers=None, reason=None, content_type=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        headers = dict(headers or {})
        if content_type is not None:
            headers["Content-Type"] = content_type
        if reason is None:
            try:
                reason = HTTPStatus(status).phrase
            except ValueError:
                reason = ""
        self.routes[(method, url)] = CannedResponse(status, body, headers, reason)

    def fail(self, url, error, *, method="GET"):
        self.errors[(method, url)] = error

    def add_html(self, url, html, **kwargs):
        self.add(url, html, content_type="text/html; charset=utf-8", **kwargs)

    def urls(self, method=None):
        return [r.url for r in self.requests if method is None or r.method == method]

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        self.send_kwargs.append({"stream": stream, "timeout": timeout, "verify": verify, "proxies": proxies})

        error = self.errors.get((request.method, request.url))
        if error is not None:
            raise error

        canned = self.routes.get((request.method, request.url))
        if canned is None:
            canned = CannedResponse(404, b"not found", {"Content-Type": "text/plain"}, "Not Found")

        response = requests.Response()
        response.status_code = canned.status
        response.reason = canned.reason
        response.headers = CaseInsensitiveDict(canned.headers)
        response.raw = io.BytesIO(canned.body)
        response.url = request.url
        response.request = request
        response.connection = self
        response.encoding = None
        return response

    def close(self):
        pass


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def session(adapter):
    with Session(adapter=adapter) as owned:
        yield owned
