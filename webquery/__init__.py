"""webquery: lazy, composable HTTP fetch pipelines and a breadth-first crawler."""

from . import readers
from .cancellation import CancellationToken
from .config import Decompression, HttpConfig, TransportSettings, load_config, save_config
from .crawler import CrawlFrontier, CrawlStats, EnqueueResult, EnqueueStatus, crawl
from .errors import (
    ConfigurationError,
    ContentConsumedError,
    ElementNotFoundError,
    HttpStatusError,
    QueryCancelledError,
    SessionClosedError,
    TempFileCreationError,
    UnacceptableMediaError,
    WebQueryError,
)
from .html import HtmlForm, ParsedHtml
from .options import QuerySetup
from .query import (
    FunctionQuery,
    HttpQuery,
    Query,
    cookies,
    for_each,
    form_request,
    get,
    post,
    post_json,
    post_text,
    submit,
)
from .readers import ContentReader
from .session import ResponseBody, Session
from .types import ErrorTolerance, Fetch, FetchInfo, HttpHeaders

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "ContentConsumedError",
    "ContentReader",
    "CrawlFrontier",
    "CrawlStats",
    "Decompression",
    "ElementNotFoundError",
    "EnqueueResult",
    "EnqueueStatus",
    "ErrorTolerance",
    "Fetch",
    "FetchInfo",
    "FunctionQuery",
    "HtmlForm",
    "HttpConfig",
    "HttpHeaders",
    "HttpQuery",
    "HttpStatusError",
    "ParsedHtml",
    "Query",
    "QueryCancelledError",
    "QuerySetup",
    "ResponseBody",
    "Session",
    "SessionClosedError",
    "TempFileCreationError",
    "TransportSettings",
    "UnacceptableMediaError",
    "WebQueryError",
    "cookies",
    "crawl",
    "for_each",
    "form_request",
    "get",
    "load_config",
    "post",
    "post_json",
    "post_text",
    "readers",
    "save_config",
    "submit",
]
