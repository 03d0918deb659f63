"""Exception types raised by webquery pipelines."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .types import FetchInfo


class WebQueryError(Exception):
    """Base class for every error raised by webquery itself."""


class ConfigurationError(WebQueryError, ValueError):
    """Invalid header, unsupported transport option, bad charset or config file."""


class UnacceptableMediaError(WebQueryError):
    """Response media type is not one of the accepted ones."""

    def __init__(self, actual: str | None, expected: Sequence[str]) -> None:
        self.actual = actual
        self.expected = tuple(expected)
        acceptable = ", ".join(self.expected)
        if actual is None:
            message = f"Content has unspecified type when acceptable types are: {acceptable}"
        else:
            message = f'Unexpected content of type "{actual}". Acceptable types are: {acceptable}'
        super().__init__(message)


class ElementNotFoundError(WebQueryError, LookupError):
    """A required HTML element (typically a form) is missing."""


class HttpStatusError(WebQueryError):
    """Non-success status code on a stage that does not tolerate it."""

    def __init__(self, info: "FetchInfo") -> None:
        self.info = info
        super().__init__(
            f"Response status code does not indicate success: "
            f"{info.status_code} ({info.reason}) for {info.request_url}"
        )

    @property
    def status_code(self) -> int:
        return self.info.status_code


class ContentConsumedError(WebQueryError, RuntimeError):
    """A response body was read more than once."""


class QueryCancelledError(WebQueryError):
    """The traversal was cancelled through its cancellation token."""


class SessionClosedError(WebQueryError, RuntimeError):
    """A closed session was asked to send a request."""


class TempFileCreationError(WebQueryError, OSError):
    """No unique temporary file could be created within the retry budget."""

    def __init__(self, message: str, attempts: Sequence[OSError]) -> None:
        super().__init__(message)
        self.attempts = list(attempts)


__all__ = [
    "ConfigurationError",
    "ContentConsumedError",
    "ElementNotFoundError",
    "HttpStatusError",
    "QueryCancelledError",
    "SessionClosedError",
    "TempFileCreationError",
    "UnacceptableMediaError",
    "WebQueryError",
]
