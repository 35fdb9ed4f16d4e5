from __future__ import annotations


class HttpClientError(Exception):
    """Base class for HTTP client errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class HttpUsageError(HttpClientError, ValueError):
    """Raised when a request is configured or used incorrectly."""


class HttpTransportError(HttpClientError):
    """Wraps the failure of a single attempt; stored in ``HttpResponse.failure``."""


class HttpTimeoutError(HttpClientError):
    """Raised when an attempt exceeds the configured timeout."""


class HttpSizeLimitError(HttpClientError):
    """Raised when a decoded response body grows past the configured limit."""

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.limit = limit
