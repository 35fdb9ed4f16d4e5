import gzip
import io
import json
import sys
import threading
import time
import urllib.parse
import zipfile
import zlib
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

DEFAULT_RESPONSE_SIZE = 1024


def make_body(size: int) -> bytes:
    return (b"0123456789abcdef" * (size // 16 + 1))[:size]


def compress(body: bytes, encoding: str) -> bytes:
    if encoding == "gzip":
        return gzip.compress(body)
    if encoding == "deflate":
        return zlib.compress(body)
    if encoding == "zip":
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("body.bin", body)
        return buffer.getvalue()
    return body


class _TestHandler(BaseHTTPRequestHandler):
    """Serves synthetic bodies driven by query parameters.

    ``size`` sets the body length, ``delay`` sleeps before answering (ms),
    ``encoding`` compresses the body, ``drip`` sends 1 kB chunks that many
    ms apart and ``stall`` sends the headers, then waits before the body. ``/echo`` describes the received request as JSON, ``/status``
    answers with the next code queued in ``statuses``.
    """

    statuses: list[int] = []
    requests: list[dict] = []

    def _query(self) -> dict:
        parsed = urllib.parse.urlsplit(self.path)
        return {name: values[-1] for name, values in urllib.parse.parse_qs(parsed.query).items()}

    def _read_request_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        if self.headers.get("Content-Encoding", "").lower() == "gzip":
            body = gzip.decompress(body)
        return body

    def _record(self, body: bytes) -> None:
        self.__class__.requests.append(
            {
                "method": self.command,
                "path": self.path,
                "headers": [[name, value] for name, value in self.headers.items()],
                "body": body.decode("latin-1"),
            }
        )

    def _send(self, status: int, body: bytes, headers: dict | None = None) -> None:
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _handle(self) -> None:
        body = self._read_request_body()
        self._record(body)
        path = urllib.parse.urlsplit(self.path).path
        query = self._query()

        if path == "/echo":
            self._send(200, json.dumps(self.__class__.requests[-1]).encode("utf-8"), {"Content-Type": "application/json"})
            return

        if path == "/status":
            status = self.__class__.statuses.pop(0) if self.__class__.statuses else 500
            self._send(status, f"status {status}".encode("ascii"), {"Content-Type": "text/plain"})
            return

        if path == "/missing":
            self._send(404, b"not found", {"Content-Type": "text/plain"})
            return

        if path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/echo")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        if "delay" in query:
            time.sleep(int(query["delay"]) / 1000.0)

        payload = make_body(int(query.get("size", DEFAULT_RESPONSE_SIZE)))

        if "stall" in query:
            self.send_response(200)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.flush()
            time.sleep(int(query["stall"]) / 1000.0)
            try:
                self.wfile.write(payload)
            except (BrokenPipeError, ConnectionResetError):
                pass
            return

        if "drip" in query:
            self.send_response(200)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            try:
                for start in range(0, len(payload), 1024):
                    self.wfile.write(payload[start : start + 1024])
                    self.wfile.flush()
                    time.sleep(int(query["drip"]) / 1000.0)
            except (BrokenPipeError, ConnectionResetError):
                pass
            return

        headers = {"Content-Type": "application/octet-stream"}
        encoding = query.get("encoding")
        if encoding:
            payload = compress(payload, encoding)
            headers["Content-Encoding"] = query.get("header", encoding)
        self._send(200, payload, headers)

    do_GET = _handle
    do_HEAD = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle

    def log_message(self, format: str, *args: object) -> None:  # noqa: D401
        return


@pytest.fixture
def http_server():
    handler = _TestHandler
    handler.statuses = []
    handler.requests = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield handler, f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=1)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Points the config file at a temp dir and clears config env overrides."""
    monkeypatch.setenv("BOUNDHTTP_CONFIG_PATH", str(tmp_path / "config.json"))
    for name in (
        "BOUNDHTTP_TIMEOUT_MILLIS",
        "BOUNDHTTP_MAX_RETRY_COUNT",
        "BOUNDHTTP_MAX_SIZE",
        "BOUNDHTTP_PROXY_ENABLED",
        "BOUNDHTTP_HTTP_PROXY_HOST",
        "BOUNDHTTP_HTTP_PROXY_PORT",
        "BOUNDHTTP_HTTPS_PROXY_HOST",
        "BOUNDHTTP_HTTPS_PROXY_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
