"""Shared fixtures: a Qt core application and a stub compile bridge."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator

import pytest
from PyQt6.QtCore import QCoreApplication


@pytest.fixture(scope="session")
def qapp() -> QCoreApplication:
    return QCoreApplication.instance() or QCoreApplication([])


@dataclass
class BridgeScript:
    """What the stub bridge answers, and what it received."""

    health_status: int = 200
    compile_status: int = 200
    compile_lines: list[str] = field(default_factory=list)
    error_body: str = ""
    requests: list[dict] = field(default_factory=list)


def _read_chunked(rfile) -> bytes:
    out = b""
    while True:
        size = int(rfile.readline().strip().split(b";")[0], 16)
        if size == 0:
            rfile.readline()
            return out
        out += rfile.read(size)
        rfile.readline()


def _handler_for(script: BridgeScript) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format, *args) -> None:
            pass

        def do_GET(self) -> None:
            script.requests.append({"method": "GET", "path": self.path, "headers": {k.lower(): v for k, v in self.headers.items()}})
            self.send_response(script.health_status)
            self.send_header("Content-Length", "0")
            self.end_headers()

        def do_POST(self) -> None:
            if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
                body = _read_chunked(self.rfile)
            else:
                body = self.rfile.read(int(self.headers.get("Content-Length", "0")))
            script.requests.append(
                {"method": "POST", "path": self.path, "headers": {k.lower(): v for k, v in self.headers.items()}, "body": body}
            )

            if script.compile_status != 200:
                data = script.error_body.encode("utf-8")
                self.send_response(script.compile_status)
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)
                return

            self.send_response(200)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.end_headers()
            for line in script.compile_lines:
                self.wfile.write(line.encode("utf-8"))
                self.wfile.flush()

    return Handler


@dataclass
class StubBridge:
    host: str
    port: int
    script: BridgeScript


@pytest.fixture
def stub_bridge() -> Iterator[StubBridge]:
    script = BridgeScript()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _handler_for(script))
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    try:
        yield StubBridge("127.0.0.1", server.server_address[1], script)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


BROKEN_STREAM_REPLY = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Transfer-Encoding: chunked\r\n"
    b"\r\n"
    b"d\r\nCompiling...\n\r\n"
    b"20\r\npartial"
)


@pytest.fixture
def broken_stream_port() -> Iterator[int]:
    """A bridge that sends one whole chunk, starts a second one and hangs up."""
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)

    def serve() -> None:
        conn, _ = srv.accept()
        with conn:
            buf = b""
            while not buf.endswith(b"0\r\n\r\n"):
                data = conn.recv(4096)
                if not data:
                    break
                buf += data
            conn.sendall(BROKEN_STREAM_REPLY)

    t = threading.Thread(target=serve, daemon=True)
    t.start()
    try:
        yield srv.getsockname()[1]
    finally:
        srv.close()
        t.join(timeout=5)
