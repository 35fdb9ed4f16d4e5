"""Fluent, validating description of an HTTP request."""

from __future__ import annotations

import datetime
import urllib.parse
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Sequence, Union

from .exceptions import HttpUsageError
from .multimap import NamedMultiValueMap
from .response import HttpMethod, HttpResponse
from .retry import DelayForAttempt, ResponseChecker, RetryStrategy, accept_no_failure
from .utils import BYTES_PER_GB, append_parameter_to_url, is_blank, is_valid_url

if TYPE_CHECKING:
    from .http_client import HttpClient

DEFAULT_TIMEOUT_MILLIS = 10 * 60 * 1000
DEFAULT_MAX_SIZE_BYTES = BYTES_PER_GB

_EXCLUSIVE_PAYLOAD_MESSAGE = "Can't send parameters and binary entity with a single request."


@dataclass(frozen=True)
class NoBody:
    pass


@dataclass(frozen=True)
class FormParameters:
    parameters: NamedMultiValueMap = field(default_factory=NamedMultiValueMap)


@dataclass(frozen=True)
class BinaryEntity:
    data: bytes = b""


Payload = Union[NoBody, FormParameters, BinaryEntity]


def _check_positive_int(value, argument_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise HttpUsageError(f"Argument '{argument_name}' must be an integer, got {value!r}.")
    if value <= 0:
        raise HttpUsageError(f"Argument '{argument_name}' is zero or negative.")
    return value


def _check_pairs(items: Sequence, kind: str) -> None:
    if len(items) % 2 != 0:
        raise HttpUsageError(
            f"Argument '{kind}s' should contain even number of elements, "
            "i.e. should consist of key-value pairs."
        )

    for index in range(0, len(items), 2):
        name, value = items[index], items[index + 1]
        if not isinstance(name, str) or is_blank(name):
            raise HttpUsageError(f"Each {kind} name should be non-blank string, but found: '{name}'.")
        if value is None:
            raise HttpUsageError(f"Value of {kind} '{name}' is null.")


def _remove_value(values: NamedMultiValueMap, name: str, index: int, kind: str) -> None:
    try:
        values.remove_at(name, index)
    except KeyError as exc:
        raise HttpUsageError(f"Can't remove {kind} '{name}': no such {kind}.", cause=exc)
    except IndexError as exc:
        raise HttpUsageError(f"Can't remove value #{index} of {kind} '{name}': no such value.", cause=exc)


def _pairwise(items: Sequence) -> list[tuple[str, str]]:
    return [(items[index], items[index + 1]) for index in range(0, len(items), 2)]


def validate_and_encode_parameters(url: str, parameters: Sequence) -> list[tuple[str, str]]:
    """Validates alternating name/value ``parameters`` and form-encodes them."""
    if not is_valid_url(url):
        raise HttpUsageError(f"'{url}' is not a valid URL.")

    _check_pairs(parameters, "parameter")
    return [
        (urllib.parse.quote_plus(name, encoding="utf-8"), urllib.parse.quote_plus(str(value), encoding="utf-8"))
        for name, value in _pairwise(parameters)
    ]


def validate_headers(headers: Sequence) -> list[tuple[str, str]]:
    _check_pairs(headers, "header")
    for name, value in _pairwise(headers):
        if not isinstance(value, str):
            raise HttpUsageError(f"Value of header '{name}' should be a string, but found: {value!r}.")
        if any(ch in name + value for ch in "\r\n"):
            raise HttpUsageError(f"Header '{name}' contains a line break.")
    return _pairwise(headers)


class HttpRequest:
    """Mutable request configuration; every setter returns ``self``.

    Setters validate their arguments before touching any state, so a failed
    call leaves the request unchanged. Parameters and a binary entity are
    mutually exclusive: the payload is always exactly one of ``NoBody``,
    ``FormParameters`` or ``BinaryEntity``.
    """

    def __init__(self, url: str, *parameters) -> None:
        self._url = url
        self._payload: Payload = NoBody()
        self._gzip = False
        self._headers = NamedMultiValueMap()
        self._method = HttpMethod.GET
        self._timeout_millis = DEFAULT_TIMEOUT_MILLIS
        self._max_retry_count = 1
        self._response_checker: ResponseChecker = accept_no_failure
        self._retry_strategy: DelayForAttempt = RetryStrategy()
        self._max_size_bytes = DEFAULT_MAX_SIZE_BYTES
        self.append_parameters(*parameters)

    @classmethod
    def create(cls, url: str, *parameters) -> HttpRequest:
        return cls(url, *parameters)

    @property
    def url(self) -> str:
        return self._url

    @property
    def payload(self) -> Payload:
        return self._payload

    # Parameters

    def _parameter_map(self) -> NamedMultiValueMap:
        if isinstance(self._payload, FormParameters):
            return self._payload.parameters
        return NamedMultiValueMap()

    def _update_parameters(self, parameters: NamedMultiValueMap) -> None:
        self._payload = FormParameters(parameters) if parameters else NoBody()

    @property
    def parameters_by_name(self) -> Mapping[str, tuple[str, ...]]:
        return self._parameter_map().snapshot()

    def get_parameters(self, name: str) -> tuple[str, ...]:
        return self._parameter_map().get_all(name)

    def get_parameter(self, name: str, throw_if_many: bool = False) -> str | None:
        return self._parameter_map().get_first(name, throw_if_many)

    def has_parameters(self) -> bool:
        return isinstance(self._payload, FormParameters)

    def append_parameters(self, *parameters) -> HttpRequest:
        if self.has_binary_entity():
            raise HttpUsageError(_EXCLUSIVE_PAYLOAD_MESSAGE)
        encoded = validate_and_encode_parameters(self._url, parameters)
        if encoded:
            updated = self._parameter_map().copy()
            updated.extend(encoded)
            self._update_parameters(updated)
        return self

    def append_parameter(self, name: str, value) -> HttpRequest:
        return self.append_parameters(name, value)

    def prepend_parameters(self, *parameters) -> HttpRequest:
        if self.has_binary_entity():
            raise HttpUsageError(_EXCLUSIVE_PAYLOAD_MESSAGE)
        encoded = validate_and_encode_parameters(self._url, parameters)
        if encoded:
            updated = self._parameter_map().copy()
            updated.extend_front(encoded)
            self._update_parameters(updated)
        return self

    def prepend_parameter(self, name: str, value) -> HttpRequest:
        return self.prepend_parameters(name, value)

    def remove_parameters(self, name: str) -> HttpRequest:
        if self.has_parameters():
            updated = self._parameter_map().copy()
            updated.remove_all(name)
            self._update_parameters(updated)
        return self

    def remove_parameter(self, name: str, index: int) -> HttpRequest:
        """Removes one value of ``name``; fails if there is no such name or index."""
        updated = self._parameter_map().copy()
        _remove_value(updated, name, index, "parameter")
        self._update_parameters(updated)
        return self

    def remove_first_parameter(self, name: str) -> HttpRequest:
        return self.remove_parameter(name, 0)

    def remove_last_parameter(self, name: str) -> HttpRequest:
        return self.remove_parameter(name, -1)

    def remove_all_parameters(self) -> HttpRequest:
        if isinstance(self._payload, FormParameters):
            self._payload = NoBody()
        return self

    # Binary entity

    @property
    def binary_entity(self) -> bytes | None:
        if isinstance(self._payload, BinaryEntity):
            return self._payload.data
        return None

    def set_binary_entity(self, binary_entity: bytes | bytearray | None) -> HttpRequest:
        """Sets the raw body sent by POST, PUT and DELETE requests.

        ``None`` clears the entity. Fails if parameters are present.
        """
        if self.has_parameters():
            raise HttpUsageError(_EXCLUSIVE_PAYLOAD_MESSAGE)
        if binary_entity is None:
            self._payload = NoBody()
        elif isinstance(binary_entity, (bytes, bytearray, memoryview)):
            self._payload = BinaryEntity(bytes(binary_entity))
        else:
            raise HttpUsageError(f"Binary entity should be bytes, but found: {type(binary_entity).__name__}.")
        return self

    def has_binary_entity(self) -> bool:
        return isinstance(self._payload, BinaryEntity)

    def remove_binary_entity(self) -> HttpRequest:
        if self.has_binary_entity():
            self._payload = NoBody()
        return self

    @property
    def gzip(self) -> bool:
        return self._gzip

    def set_gzip(self, gzip: bool) -> HttpRequest:
        """Compresses the request body before sending.

        Compressing a binary entity is safe, but many servers do not accept
        gzip-encoded form parameters in their default configuration.
        """
        if not isinstance(gzip, bool):
            raise HttpUsageError(f"Argument 'gzip' must be a boolean, got {gzip!r}.")
        self._gzip = gzip
        return self

    # Headers

    @property
    def headers_by_name(self) -> Mapping[str, tuple[str, ...]]:
        return self._headers.snapshot()

    def get_headers(self, name: str) -> tuple[str, ...]:
        return self._headers.get_all(name)

    def get_header(self, name: str, throw_if_many: bool = False) -> str | None:
        return self._headers.get_first(name, throw_if_many)

    def append_headers(self, *headers: str) -> HttpRequest:
        self._headers.extend(validate_headers(headers))
        return self

    def append_header(self, name: str, value: str) -> HttpRequest:
        return self.append_headers(name, value)

    def prepend_headers(self, *headers: str) -> HttpRequest:
        self._headers.extend_front(validate_headers(headers))
        return self

    def prepend_header(self, name: str, value: str) -> HttpRequest:
        return self.prepend_headers(name, value)

    def remove_headers(self, name: str) -> HttpRequest:
        self._headers.remove_all(name)
        return self

    def remove_header(self, name: str, index: int) -> HttpRequest:
        _remove_value(self._headers, name, index, "header")
        return self

    def remove_first_header(self, name: str) -> HttpRequest:
        _remove_value(self._headers, name, 0, "header")
        return self

    def remove_last_header(self, name: str) -> HttpRequest:
        _remove_value(self._headers, name, -1, "header")
        return self

    def remove_all_headers(self) -> HttpRequest:
        self._headers.clear()
        return self

    # Execution policy

    @property
    def method(self) -> HttpMethod:
        return self._method

    def set_method(self, method: HttpMethod | str) -> HttpRequest:
        if isinstance(method, HttpMethod):
            self._method = method
            return self
        if isinstance(method, str) and method in HttpMethod.__members__:
            self._method = HttpMethod[method]
            return self
        raise HttpUsageError(f"Unsupported HTTP method {method!r}.")

    @property
    def timeout_millis(self) -> int:
        return self._timeout_millis

    def set_timeout_millis(self, timeout_millis: int) -> HttpRequest:
        self._timeout_millis = _check_positive_int(timeout_millis, "timeout_millis")
        return self

    def set_timeout(self, timeout: datetime.timedelta) -> HttpRequest:
        if not isinstance(timeout, datetime.timedelta):
            raise HttpUsageError(f"Argument 'timeout' must be a timedelta, got {timeout!r}.")
        return self.set_timeout_millis(int(timeout.total_seconds() * 1000))

    @property
    def max_retry_count(self) -> int:
        return self._max_retry_count

    @property
    def response_checker(self) -> ResponseChecker:
        return self._response_checker

    @property
    def retry_strategy(self) -> DelayForAttempt:
        return self._retry_strategy

    def set_retry_policy(
        self,
        max_retry_count: int,
        response_checker: ResponseChecker,
        retry_strategy: DelayForAttempt | None = None,
    ) -> HttpRequest:
        """Sets the attempt budget and the policy deciding when to stop.

        ``max_retry_count`` counts every attempt, including the first one.
        Keeps the current strategy when ``retry_strategy`` is not given.
        """
        _check_positive_int(max_retry_count, "max_retry_count")
        if not callable(response_checker):
            raise HttpUsageError("Argument 'response_checker' is not callable.")
        if retry_strategy is not None and not callable(retry_strategy):
            raise HttpUsageError("Argument 'retry_strategy' is not callable.")

        self._max_retry_count = max_retry_count
        self._response_checker = response_checker
        if retry_strategy is not None:
            self._retry_strategy = retry_strategy
        return self

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    def set_max_size_bytes(self, max_size_bytes: int) -> HttpRequest:
        self._max_size_bytes = _check_positive_int(max_size_bytes, "max_size_bytes")
        return self

    # Wire form

    def build_url(self) -> str:
        """Returns the URL to request; GET and HEAD carry parameters in the query."""
        url = self._url
        if not self._method.allows_body:
            for name, value in self._parameter_map().pairs():
                url = append_parameter_to_url(url, name, value)
        return url

    def encode_body(self) -> bytes | None:
        """Returns the uncompressed body for write methods or ``None``."""
        if not self._method.allows_body:
            return None
        if isinstance(self._payload, BinaryEntity):
            return self._payload.data
        if isinstance(self._payload, FormParameters):
            return "&".join(f"{name}={value}" for name, value in self._payload.parameters.pairs()).encode("utf-8")
        return None

    def execute(self, client: HttpClient | None = None) -> int:
        """Runs the request and returns only the final status code."""
        from .http_client import HttpClient

        return (client or HttpClient()).execute(self)

    def execute_and_return_response(self, client: HttpClient | None = None) -> HttpResponse:
        from .http_client import HttpClient

        return (client or HttpClient()).execute_and_return_response(self)

    def __repr__(self) -> str:
        return f"HttpRequest({self._method.value} {self._url!r})"
