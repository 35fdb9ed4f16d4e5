from __future__ import annotations

import enum
from dataclasses import dataclass
from email.message import Message
from types import MappingProxyType
from typing import Mapping

from .exceptions import HttpClientError
from .utils import format_data_size

FAILURE_CODE = -1


class HttpMethod(str, enum.Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @property
    def allows_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.DELETE)


def snapshot_headers(headers: Message | None) -> Mapping[str, tuple[str, ...]]:
    """Freezes response headers into ``name -> values`` keeping wire order."""
    values_by_name: dict[str, list[str]] = {}
    if headers is not None:
        for name, value in headers.items():
            values_by_name.setdefault(name, []).append(value)
    return MappingProxyType({name: tuple(values) for name, values in values_by_name.items()})


@dataclass(frozen=True)
class HttpResponse:
    """Outcome of a single attempt.

    ``code`` is ``-1`` when the attempt failed at the transport level; in that
    case ``failure`` holds the wrapped cause and ``headers`` is ``None`` unless
    the status line had already been received.
    """

    code: int
    body: bytes | None = None
    headers: Mapping[str, tuple[str, ...]] | None = None
    failure: HttpClientError | None = None

    @property
    def has_failure(self) -> bool:
        return self.failure is not None

    def get_headers(self, name: str) -> tuple[str, ...]:
        """Returns every value of header ``name``, matched case-insensitively."""
        if not self.headers:
            return ()
        lowered = name.lower()
        values: list[str] = []
        for header_name, header_values in self.headers.items():
            if header_name.lower() == lowered:
                values.extend(header_values)
        return tuple(values)

    def get_header(self, name: str, throw_if_many: bool = False) -> str | None:
        values = self.get_headers(name)
        if not values:
            return None
        if throw_if_many and len(values) > 1:
            raise LookupError(
                f"Expected only one header with name '{name}' but {len(values)} have been found."
            )
        return values[0]

    def text(self, fallback_encoding: str = "utf-8") -> str:
        """Return the response body as text using charset hints."""
        if not self.body:
            return ""

        charset = None
        content_type = self.get_header("Content-Type")
        if content_type and "charset=" in content_type:
            charset = content_type.split("charset=")[-1].split(";")[0].strip().strip('"')

        try:
            return self.body.decode(charset or fallback_encoding, errors="ignore")
        except LookupError:
            return self.body.decode(fallback_encoding, errors="ignore")

    def __str__(self) -> str:
        size = "none" if self.body is None else format_data_size(len(self.body))
        return f"HttpResponse {{code={self.code}, size={size}, failure={self.failure!r}}}"
