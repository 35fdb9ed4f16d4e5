"""End-to-end checks against a local HTTP server (see ``conftest.http_server``)."""

import gzip
import json
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from boundhttp.exceptions import HttpSizeLimitError, HttpTimeoutError
from boundhttp.http_client import HttpClient, execute_get_request, execute_get_request_and_return_response
from boundhttp.request import HttpRequest
from boundhttp.retry import RetryStrategy, RetryStrategyType, accept_codes, reject_server_errors

from conftest import make_body


def echo(response):
    assert response.code == 200, response
    return json.loads(response.body)


def sent_header(info, name):
    values = [value for header, value in info["headers"] if header.lower() == name.lower()]
    return values[0] if values else None


def test_get_sends_parameters_in_query(http_server):
    _, base_url = http_server

    info = echo(HttpRequest(f"{base_url}/echo", "size", 1024, "q", "a b").execute_and_return_response())

    assert info["method"] == "GET"
    assert info["path"] == "/echo?size=1024&q=a+b"
    assert info["body"] == ""
    assert sent_header(info, "Connection") == "close"


def test_get_returns_body_of_requested_size(http_server):
    _, base_url = http_server

    response = execute_get_request_and_return_response(f"{base_url}/data", "size", 1024)

    assert response.code == 200
    assert response.body == make_body(1024)
    assert response.get_header("content-length") == "1024"


def test_post_sends_form_body(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/echo", "name", "Ann Lee", "tag", "a&b").set_method("POST")

    info = echo(request.execute_and_return_response())

    assert info["path"] == "/echo"
    assert info["body"] == "name=Ann+Lee&tag=a%26b"
    assert sent_header(info, "Content-Type") == "application/x-www-form-urlencoded"


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
def test_binary_entity_is_sent_with_write_methods(http_server, method):
    _, base_url = http_server
    payload = bytes(range(200))
    request = HttpRequest(f"{base_url}/echo").set_method(method).set_binary_entity(payload)

    info = echo(request.execute_and_return_response())

    assert info["method"] == method
    assert info["body"].encode("latin-1") == payload
    assert sent_header(info, "Content-Type") == "application/octet-stream"


def test_gzip_request_body(http_server):
    handler, base_url = http_server
    request = HttpRequest(f"{base_url}/echo").set_method("POST").set_binary_entity(b"x" * 5000).set_gzip(True)

    info = echo(request.execute_and_return_response())

    assert info["body"] == "x" * 5000
    assert sent_header(info, "Content-Encoding") == "gzip"
    assert int(sent_header(info, "Content-Length")) == len(gzip.compress(b"x" * 5000))


@pytest.mark.parametrize("encoding", ["gzip", "deflate", "zip"])
def test_compressed_responses_are_decoded(http_server, encoding):
    _, base_url = http_server

    response = HttpRequest(f"{base_url}/data", "size", 100_000, "encoding", encoding).execute_and_return_response()

    assert response.code == 200
    assert response.body == make_body(100_000)
    assert response.get_header("Content-Encoding") == encoding


def test_unknown_encoding_is_returned_undecoded(http_server):
    _, base_url = http_server

    response = HttpRequest(
        f"{base_url}/data", "size", 10, "encoding", "none", "header", "br"
    ).execute_and_return_response()

    assert response.body == make_body(10)


def test_head_with_compressed_headers_has_empty_body(http_server):
    _, base_url = http_server

    response = HttpRequest(f"{base_url}/data", "encoding", "gzip").set_method("HEAD").execute_and_return_response()

    assert response.code == 200
    assert response.body == b""


def test_response_within_timeout_succeeds(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/data", "delay", 1000).set_timeout_millis(1500)

    response = request.execute_and_return_response()

    assert response.code == 200
    assert response.body == make_body(1024)


def test_slow_response_times_out(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/data", "delay", 1000).set_timeout_millis(950)

    started = time.monotonic()
    response = request.execute_and_return_response()
    elapsed = time.monotonic() - started

    assert response.code == -1
    assert isinstance(response.failure.cause, HttpTimeoutError)
    assert elapsed < 1.5


def test_slow_body_is_cut_at_deadline(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/data", "size", 20 * 1024, "drip", 200).set_timeout_millis(1000)

    started = time.monotonic()
    response = request.execute_and_return_response()
    elapsed = time.monotonic() - started

    assert response.code == -1
    assert response.get_header("Content-Length") == str(20 * 1024)
    assert isinstance(response.failure.cause, HttpTimeoutError)
    assert elapsed < 2.0


def test_size_limit_fails_attempt(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/data", "size", 100_000, "encoding", "gzip").set_max_size_bytes(10_000)

    response = request.execute_and_return_response()

    assert response.code == -1
    assert response.body is None
    assert isinstance(response.failure.cause, HttpSizeLimitError)


def test_error_status_returns_error_body(http_server):
    _, base_url = http_server

    response = HttpRequest(f"{base_url}/missing").execute_and_return_response()

    assert response.code == 404
    assert response.body == b"not found"
    assert not response.has_failure


def test_execute_returns_only_code(http_server):
    _, base_url = http_server

    assert execute_get_request(f"{base_url}/missing") == 404
    assert execute_get_request(f"{base_url}/data", "size", 10) == 200


def test_redirect_is_followed(http_server):
    _, base_url = http_server

    info = echo(HttpRequest(f"{base_url}/redirect").execute_and_return_response())

    assert info["path"] == "/echo"


def test_retries_until_checker_accepts(http_server):
    handler, base_url = http_server
    handler.statuses = [503, 503, 200]
    request = HttpRequest(f"{base_url}/status").set_retry_policy(
        5, accept_codes(200), RetryStrategy(10, RetryStrategyType.CONSTANT)
    )

    response = request.execute_and_return_response()

    assert response.code == 200
    assert response.body == b"status 200"
    assert len(handler.requests) == 3


def test_exhausted_retries_return_last_response(http_server):
    handler, base_url = http_server
    handler.statuses = [503, 502]
    request = HttpRequest(f"{base_url}/status").set_retry_policy(
        2, accept_codes(200), RetryStrategy(10, RetryStrategyType.CONSTANT)
    )

    response = request.execute_and_return_response()

    assert response.code == 502
    assert len(handler.requests) == 2


def test_connection_refused_is_transport_failure():
    request = HttpRequest("http://127.0.0.1:9/unreachable").set_timeout_millis(1000)

    response = HttpClient().execute_and_return_response(request)

    assert response.code == -1
    assert response.headers is None
    assert response.failure is not None


def test_server_errors_are_retried_until_success(http_server):
    handler, base_url = http_server
    handler.statuses = [500, 500, 500, 500, 200]
    request = HttpRequest(f"{base_url}/status").set_retry_policy(5, reject_server_errors)

    with patch("boundhttp.http_client.time.sleep") as sleep_mock:
        response = request.execute_and_return_response()

    assert response.code == 200
    assert len(handler.requests) == 5
    assert sleep_mock.call_count == 4


def test_stalled_body_is_cut_at_remaining_budget(http_server):
    _, base_url = http_server
    request = HttpRequest(f"{base_url}/data", "delay", 600, "stall", 1500).set_timeout_millis(1000)

    started = time.monotonic()
    response = request.execute_and_return_response()
    elapsed = time.monotonic() - started

    assert response.code == -1
    assert isinstance(response.failure.cause, HttpTimeoutError)
    assert elapsed < 1.5


def test_shared_client_serves_parallel_requests(http_server):
    handler, base_url = http_server
    client = HttpClient()
    sizes = [1000 + index for index in range(20)]

    def fetch(size):
        request = HttpRequest(f"{base_url}/data", "size", size, "delay", 50)
        return size, client.execute_and_return_response(request)

    with ThreadPoolExecutor(max_workers=len(sizes)) as executor:
        results = list(executor.map(fetch, sizes))

    for size, response in results:
        assert response.code == 200, response
        assert response.body == make_body(size)
    assert len(handler.requests) == len(sizes)
