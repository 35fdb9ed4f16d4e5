"""Bounded response body reading.

The body is pulled in chunks through a reader that checks the attempt deadline
at every chunk boundary, decoded according to ``Content-Encoding`` and
collected into a buffer that refuses to grow past the size limit. The deadline
is polled, not preemptive: a single blocked read can only be interrupted by
the socket timeout.
"""

from __future__ import annotations

import struct
import time
import zlib
from typing import BinaryIO, Callable, Iterator

from .exceptions import HttpSizeLimitError, HttpTimeoutError
from .utils import BYTES_PER_KB, format_data_size

CHUNK_SIZE = 64 * BYTES_PER_KB

_ZIP_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
_ZIP_LOCAL_HEADER_SIGNATURE = 0x04034B50
_ZIP_DATA_DESCRIPTOR_FLAG = 0x08
_ZIP_STORED = 0
_ZIP_DEFLATED = 8


class DeadlineReader:
    """Reads chunks from ``stream`` until the attempt deadline passes.

    ``set_timeout`` receives the remaining budget in seconds before every
    read, so a blocked read can be cut by the socket timeout at the deadline.
    """

    def __init__(
        self,
        stream: BinaryIO,
        started_at: float,
        timeout_millis: int,
        clock: Callable[[], float] = time.monotonic,
        set_timeout: Callable[[float], None] | None = None,
    ) -> None:
        self._stream = stream
        self._started_at = started_at
        self._timeout_millis = timeout_millis
        self._clock = clock
        self._set_timeout = set_timeout
        self._read = getattr(stream, "read1", None) or stream.read
        self.total_read = 0

    def _check_deadline(self) -> float:
        """Returns the remaining budget in milliseconds."""
        remaining_millis = self._timeout_millis - (self._clock() - self._started_at) * 1000.0
        if remaining_millis < 0:
            raise HttpTimeoutError(f"Can't read response within {self._timeout_millis} ms.")
        return remaining_millis

    def read(self, size: int = CHUNK_SIZE) -> bytes:
        remaining_millis = self._check_deadline()
        if self._set_timeout is not None:
            self._set_timeout(max(remaining_millis, 1.0) / 1000.0)
        chunk = self._read(size)
        self.total_read += len(chunk)
        if chunk:
            self._check_deadline()
        return chunk

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read()
            if not chunk:
                return
            yield chunk


class LimitedBuffer:
    """Byte buffer that raises instead of growing past ``max_size_bytes``."""

    def __init__(self, max_size_bytes: int) -> None:
        self._max_size_bytes = max_size_bytes
        self._buffer = bytearray()

    def write(self, data: bytes) -> None:
        if len(self._buffer) + len(data) > self._max_size_bytes:
            raise HttpSizeLimitError(
                f"Response size exceeds the limit of {format_data_size(self._max_size_bytes)}.",
                limit=self._max_size_bytes,
            )
        self._buffer += data

    def __len__(self) -> int:
        return len(self._buffer)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class IdentityDecoder:
    def decode(self, chunk: bytes) -> Iterator[bytes]:
        if chunk:
            yield chunk

    def flush(self) -> Iterator[bytes]:
        return iter(())


class ZlibDecoder:
    """Streaming gzip/deflate decoder with output bounded per step.

    With ``multi_member`` set, a new stream starts wherever the previous one
    ends, so concatenated gzip members decode to the concatenation of their
    contents. Trailing zero padding after the last member is ignored.
    """

    def __init__(self, wbits: int, max_output: int = CHUNK_SIZE, multi_member: bool = False) -> None:
        self._wbits = wbits
        self._decompressor = zlib.decompressobj(wbits)
        self._max_output = max_output
        self._multi_member = multi_member
        self._fed = False

    @property
    def eof(self) -> bool:
        return self._decompressor.eof

    def decode(self, chunk: bytes) -> Iterator[bytes]:
        data = chunk
        while data:
            if self._decompressor.eof:
                if not self._multi_member or not data.strip(b"\0"):
                    return
                self._decompressor = zlib.decompressobj(self._wbits)

            self._fed = True
            output = self._decompressor.decompress(data, self._max_output)
            if output:
                yield output
            if self._decompressor.eof:
                data = self._decompressor.unused_data
            else:
                data = self._decompressor.unconsumed_tail

    def flush(self) -> Iterator[bytes]:
        output = self._decompressor.flush()
        if output:
            yield output
        if self._fed and not self._decompressor.eof:
            raise zlib.error("Compressed response body is truncated.")


class ZipDecoder:
    """Decodes the first entry of a zip stream, ignoring anything after it.

    Only stored and deflated entries are supported. An archive without entries
    decodes to nothing.
    """

    def __init__(self, max_output: int = CHUNK_SIZE) -> None:
        self._max_output = max_output
        self._pending = b""
        self._skip = 0
        self._entry_decoder: ZlibDecoder | None = None
        self._stored_remaining: int | None = None
        self._done = False

    def _parse_header(self) -> bool:
        if len(self._pending) < 4:
            return False
        signature = struct.unpack_from("<I", self._pending)[0]
        if signature != _ZIP_LOCAL_HEADER_SIGNATURE:
            # Central directory or end record: no entries.
            self._done = True
            return False
        if len(self._pending) < _ZIP_LOCAL_HEADER.size:
            return False

        (
            _signature,
            _version,
            flags,
            method,
            _mtime,
            _mdate,
            _crc,
            compressed_size,
            _size,
            name_length,
            extra_length,
        ) = _ZIP_LOCAL_HEADER.unpack_from(self._pending)

        if method == _ZIP_DEFLATED:
            self._entry_decoder = ZlibDecoder(-zlib.MAX_WBITS, self._max_output)
        elif method == _ZIP_STORED and not flags & _ZIP_DATA_DESCRIPTOR_FLAG:
            self._stored_remaining = compressed_size
        else:
            raise zlib.error(f"Unsupported zip entry (method {method}, flags {flags:#x}).")

        self._skip = name_length + extra_length
        self._pending = self._pending[_ZIP_LOCAL_HEADER.size :]
        return True

    def _entry_started(self) -> bool:
        return self._entry_decoder is not None or self._stored_remaining is not None

    def decode(self, chunk: bytes) -> Iterator[bytes]:
        if self._done:
            return
        self._pending += chunk

        if not self._entry_started() and not self._parse_header():
            return

        if self._skip:
            skipped = min(self._skip, len(self._pending))
            self._skip -= skipped
            self._pending = self._pending[skipped:]
            if self._skip:
                return

        data, self._pending = self._pending, b""
        if self._entry_decoder is not None:
            yield from self._entry_decoder.decode(data)
            self._done = self._entry_decoder.eof
        else:
            data = data[: self._stored_remaining]
            self._stored_remaining -= len(data)
            self._done = self._stored_remaining == 0
            for start in range(0, len(data), self._max_output):
                yield data[start : start + self._max_output]

    def flush(self) -> Iterator[bytes]:
        if self._entry_decoder is not None and not self._done:
            yield from self._entry_decoder.flush()
        if self._stored_remaining:
            raise zlib.error("Zip entry is truncated.")


def new_decoder(content_encoding: str | None):
    """Picks a decoder for a ``Content-Encoding`` value; unknown means identity."""
    encoding = (content_encoding or "").strip().lower()
    if encoding == "gzip":
        return ZlibDecoder(16 + zlib.MAX_WBITS, multi_member=True)
    if encoding == "deflate":
        return ZlibDecoder(zlib.MAX_WBITS)
    if encoding == "zip":
        return ZipDecoder()
    return IdentityDecoder()


def read_body(
    stream: BinaryIO,
    content_encoding: str | None,
    started_at: float,
    timeout_millis: int,
    max_size_bytes: int,
    clock: Callable[[], float] = time.monotonic,
    set_timeout: Callable[[float], None] | None = None,
) -> bytes:
    """Reads and decodes ``stream`` under the deadline and size limit."""
    reader = DeadlineReader(stream, started_at, timeout_millis, clock=clock, set_timeout=set_timeout)
    decoder = new_decoder(content_encoding)
    buffer = LimitedBuffer(max_size_bytes)

    for chunk in reader:
        for decoded in decoder.decode(chunk):
            buffer.write(decoded)
    for decoded in decoder.flush():
        buffer.write(decoded)

    return buffer.getvalue()
