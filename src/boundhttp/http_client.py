from __future__ import annotations

import gzip
import http.client
import logging
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
import zlib
from dataclasses import dataclass, field
from typing import Any, Mapping

from boundhttp import config as boundhttp_config

from .exceptions import HttpClientError, HttpTimeoutError, HttpTransportError, HttpUsageError
from .proxy import ProxySettings, resolve_proxy
from .request import BinaryEntity, HttpRequest
from .response import FAILURE_CODE, HttpMethod, HttpResponse, snapshot_headers
from .streams import read_body

logger = logging.getLogger(__name__)

APPLICATION_OCTET_STREAM = "application/octet-stream"
APPLICATION_X_WWW_FORM_URLENCODED = "application/x-www-form-urlencoded"

_READ_ERRORS = (HttpClientError, OSError, EOFError, zlib.error, http.client.HTTPException)


@dataclass(frozen=True)
class HttpClientSettings:
    """Configuration shared by every request an ``HttpClient`` executes."""

    proxy: ProxySettings = field(default_factory=ProxySettings)
    user_agent: str | None = "boundhttp/0.1"

    @classmethod
    def from_config(cls, request_section: Mapping[str, Any] | None = None) -> HttpClientSettings:
        section = request_section if request_section is not None else boundhttp_config.get_section("request")
        return cls(proxy=ProxySettings.from_config(), user_agent=section.get("user_agent") or None)


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout)):
        return True
    return isinstance(exc, urllib.error.URLError) and isinstance(exc.reason, (TimeoutError, socket.timeout))


def _as_cause(exc: BaseException, timeout_millis: int) -> BaseException:
    """Reports socket timeouts as deadline errors, everything else as is."""
    if _is_timeout(exc):
        return HttpTimeoutError(f"No response within {timeout_millis} ms.", cause=exc)
    return exc


def _set_read_timeout(response, seconds: float) -> None:
    """Applies ``seconds`` to the socket behind an urllib response, if reachable."""
    http_response = response.fp if isinstance(response, urllib.error.HTTPError) else response
    raw = getattr(getattr(http_response, "fp", None), "raw", None)
    sock = getattr(raw, "_sock", None)
    if sock is not None:
        sock.settimeout(seconds)


def _release(response) -> None:
    if isinstance(response, urllib.error.HTTPError) and response.fp is None:
        return
    response.close()


class HttpClient:
    """Runs ``HttpRequest`` objects attempt by attempt.

    Every attempt opens a fresh connection (``Connection: close``), so one
    client can serve requests from several threads at once.
    """

    def __init__(
        self,
        settings: HttpClientSettings | None = None,
        opener: urllib.request.OpenerDirector | None = None,
    ) -> None:
        self.settings = settings or HttpClientSettings()
        self._opener = opener

    def execute(self, request: HttpRequest) -> int:
        """Runs ``request`` without reading the body and returns the final status code."""
        return self._request_with_retries(request, read_bytes=False).code

    def execute_and_return_response(self, request: HttpRequest) -> HttpResponse:
        return self._request_with_retries(request, read_bytes=True)

    def _request_with_retries(self, request: HttpRequest, read_bytes: bool) -> HttpResponse:
        url = request.build_url()

        if not request.method.allows_body and request.has_binary_entity():
            raise HttpUsageError(
                f"Can't write binary entity to '{url}' with {request.method.value} method."
            )

        max_retry_count = request.max_retry_count
        for attempt_index in range(1, max_retry_count):
            response = self._attempt(request, url, read_bytes)
            if request.response_checker(response):
                return response

            delay = request.retry_strategy(attempt_index)
            logger.debug(
                "Attempt %d/%d of %s %s was not accepted (code %d, failure: %s); retrying in %.3f s",
                attempt_index,
                max_retry_count,
                request.method.value,
                url,
                response.code,
                response.failure,
                delay,
            )
            time.sleep(delay)

        response = self._attempt(request, url, read_bytes)
        if response.has_failure:
            logger.warning(
                "%s %s failed after %d attempt(s): %s",
                request.method.value,
                url,
                max_retry_count,
                response.failure.cause or response.failure,
            )
        return response

    def _build_opener(self, url: str) -> urllib.request.OpenerDirector:
        if self._opener is not None:
            return self._opener

        scheme = urllib.parse.urlsplit(url).scheme.lower()
        proxy = resolve_proxy(scheme, self.settings.proxy)
        # An empty mapping also keeps urllib from picking proxies up from the environment.
        proxies = {scheme: f"http://{proxy[0]}:{proxy[1]}"} if proxy else {}
        return urllib.request.build_opener(urllib.request.ProxyHandler(proxies))

    def _build_http_request(self, request: HttpRequest, url: str) -> urllib.request.Request:
        http_request = urllib.request.Request(url, method=request.method.value)
        http_request.add_header("Connection", "close")
        if self.settings.user_agent:
            http_request.add_header("User-Agent", self.settings.user_agent)

        body = request.encode_body()
        if body is not None:
            if isinstance(request.payload, BinaryEntity):
                http_request.add_header("Content-Type", APPLICATION_OCTET_STREAM)
            else:
                http_request.add_header("Content-Type", APPLICATION_X_WWW_FORM_URLENCODED)

            if request.gzip:
                http_request.add_header("Content-Encoding", "gzip")
                body = gzip.compress(body)
            http_request.data = body

        # Configured headers win over the ones set above.
        for name, values in request.headers_by_name.items():
            http_request.add_header(name, ", ".join(values))

        return http_request

    def _attempt(self, request: HttpRequest, url: str, read_bytes: bool) -> HttpResponse:
        started_at = time.monotonic()
        timeout_millis = request.timeout_millis

        try:
            opener = self._build_opener(url)
            http_request = self._build_http_request(request, url)
        except (ValueError, OSError) as exc:
            return HttpResponse(
                FAILURE_CODE, failure=HttpTransportError(f"Can't create connection to '{url}'.", cause=exc)
            )

        try:
            response = opener.open(http_request, timeout=timeout_millis / 1000.0)
        except urllib.error.HTTPError as exc:
            # 4xx/5xx: the error itself carries the status, headers and body stream.
            response = exc
        except (OSError, ValueError, http.client.HTTPException) as exc:
            logger.debug("Can't send %s request to %s: %s", request.method.value, url, exc)
            return HttpResponse(
                FAILURE_CODE,
                failure=HttpTransportError(
                    f"Can't send request to '{url}'.", cause=_as_cause(exc, timeout_millis)
                ),
            )

        try:
            status = getattr(response, "status", None) or response.getcode()
            headers = snapshot_headers(response.headers)

            if not read_bytes:
                return HttpResponse(status, headers=headers)

            if isinstance(response, urllib.error.HTTPError) and response.fp is None:
                return HttpResponse(
                    FAILURE_CODE,
                    headers=headers,
                    failure=HttpTransportError(f"Can't read response from '{url}'.", cause=response),
                )

            try:
                body = read_body(
                    response,
                    response.headers.get("Content-Encoding"),
                    started_at,
                    timeout_millis,
                    request.max_size_bytes,
                    set_timeout=lambda seconds: _set_read_timeout(response, seconds),
                )
            except _READ_ERRORS as exc:
                logger.debug("Can't read response from %s: %s", url, exc)
                return HttpResponse(
                    FAILURE_CODE,
                    headers=headers,
                    failure=HttpTransportError(
                        f"Can't read response from '{url}'.", cause=_as_cause(exc, timeout_millis)
                    ),
                )

            logger.debug(
                "%s %s -> %d (%d bytes in %.0f ms)",
                request.method.value,
                url,
                status,
                len(body),
                (time.monotonic() - started_at) * 1000.0,
            )
            return HttpResponse(status, body, headers)
        finally:
            _release(response)


def new_request(url: str, *parameters) -> HttpRequest:
    return HttpRequest.create(url, *parameters)


def _configured(url: str, parameters: tuple, method: HttpMethod, timeout_millis: int | None) -> HttpRequest:
    request = new_request(url, *parameters).set_method(method)
    if timeout_millis is not None:
        request.set_timeout_millis(timeout_millis)
    return request


def execute_get_request(
    url: str, *parameters, timeout_millis: int | None = None, client: HttpClient | None = None
) -> int:
    return _configured(url, parameters, HttpMethod.GET, timeout_millis).execute(client)


def execute_get_request_and_return_response(
    url: str, *parameters, timeout_millis: int | None = None, client: HttpClient | None = None
) -> HttpResponse:
    return _configured(url, parameters, HttpMethod.GET, timeout_millis).execute_and_return_response(client)


def execute_post_request(
    url: str, *parameters, timeout_millis: int | None = None, client: HttpClient | None = None
) -> int:
    return _configured(url, parameters, HttpMethod.POST, timeout_millis).execute(client)


def execute_post_request_and_return_response(
    url: str, *parameters, timeout_millis: int | None = None, client: HttpClient | None = None
) -> HttpResponse:
    return _configured(url, parameters, HttpMethod.POST, timeout_millis).execute_and_return_response(client)
