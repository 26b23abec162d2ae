"""Compiler bridge client, compile-stream parsing and the session state machine.

Wire contract (loopback bridge, usually reached through `adb reverse tcp:8177 tcp:8177`):
  - GET  /health   -> 200 when the bridge is up
  - POST /compile  -> body {"filename": ..., "code": ...} sent chunked; the reply is a
    stream of text lines ending with {"ok": true, "jar": "/path"} or
    {"ok": false, "message": "..."}
"""

from __future__ import annotations

import http.client
import json
import re
import urllib.error
import urllib.request
from typing import Any, Callable, Iterable, Iterator

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from ktedit_core import BRIDGE_HOST, BRIDGE_PORT, LOG, BridgeUnreachable, TransportError
from ktedit_models import CompileState, Compiling, Connecting, Failure, Idle, Success


DIAGNOSTIC_RE = re.compile(r"^.*?:(\d+):(\d+):\s+error:")

NOT_CONNECTED = "Not connected to compiler bridge"
NO_RESULT = "Compilation failed (bridge closed the stream without a result)"
GENERIC_FAILURE = "Compilation failed"


def diagnostic_line(line: str) -> int | None:
    """1-based source line of an `error:` diagnostic, or None. Warnings are not collected."""

    m = DIAGNOSTIC_RE.search(line)
    if m is None:
        return None
    return int(m.group(1))


def parse_terminal_line(line: str) -> dict[str, Any] | None:
    """Decode a result line; anything that is not a JSON object with a boolean `ok` is None."""

    s = line.strip()
    if not (s.startswith("{") and s.endswith("}")):
        return None
    try:
        obj = json.loads(s)
    except ValueError:
        return None
    if not isinstance(obj, dict) or not isinstance(obj.get("ok"), bool):
        return None
    return obj


def outcome_from_terminal(obj: dict[str, Any] | None) -> Success | Failure:

    if obj is None:
        return Failure(NO_RESULT)
    if obj["ok"]:
        jar = obj.get("jar")
        return Success(jar if isinstance(jar, str) and jar else None)
    msg = obj.get("message")
    return Failure(msg if isinstance(msg, str) and msg.strip() else GENERIC_FAILURE)


def fold_compile_stream(lines: Iterable[str], on_line: Callable[[str], None]) -> Success | Failure:
    """Hand every line to `on_line` in order; the outcome is decided once the stream ends."""

    terminal: dict[str, Any] | None = None
    for line in lines:
        on_line(line)
        obj = parse_terminal_line(line)
        if obj is not None:
            terminal = obj
    return outcome_from_terminal(terminal)


def _iter_lines(resp) -> Iterator[str]:

    for raw in resp:
        yield raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _read_error_body(e: urllib.error.HTTPError) -> str:

    try:
        return e.read().decode("utf-8", errors="replace").strip()
    except Exception:
        return ""
    finally:
        e.close()


class BridgeClient:
    """HTTP client for the loopback compiler bridge."""

    def __init__(
        self,
        host: str = BRIDGE_HOST,
        port: int = BRIDGE_PORT,
        health_timeout_s: float = 2.0,
        compile_timeout_s: float = 120.0,
    ):

        self.host = host
        self.port = int(port)
        self.health_timeout_s = float(health_timeout_s)
        self.compile_timeout_s = float(compile_timeout_s)

    @property
    def base_url(self) -> str:

        return f"http://{self.host}:{self.port}"

    def check_health(self) -> None:

        url = f"{self.base_url}/health"
        LOG.debug("HTTP GET %s timeout=%.1fs", url, self.health_timeout_s)
        req = urllib.request.Request(url, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.health_timeout_s) as resp:
                code = int(resp.status)
                resp.read()
        except urllib.error.HTTPError as e:
            code = int(e.code)
            e.close()
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            LOG.warning("Bridge health check failed url=%s err=%s", url, e)
            raise BridgeUnreachable(self.host, self.port, str(e)) from e

        if code != 200:
            LOG.warning("Bridge health check failed url=%s status=%d", url, code)
            raise BridgeUnreachable(self.host, self.port, f"HTTP {code}")

    def stream_compile(self, filename: str, code: str, on_line: Callable[[str], None]) -> Success | Failure:
        """POST the source and fold the streamed reply; transport failures raise TransportError."""

        url = f"{self.base_url}/compile"
        body = json.dumps({"filename": filename, "code": code}).encode("utf-8")
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "text/plain",
            "Transfer-Encoding": "chunked",
        }
        # An iterable body is sent with chunked transfer encoding, so no length is computed up front.
        req = urllib.request.Request(url, data=iter((body,)), headers=headers, method="POST")

        LOG.debug("HTTP POST %s filename=%s source_len=%d timeout=%.1fs", url, filename, len(code), self.compile_timeout_s)
        try:
            with urllib.request.urlopen(req, timeout=self.compile_timeout_s) as resp:
                return fold_compile_stream(_iter_lines(resp), on_line)
        except urllib.error.HTTPError as e:
            err_text = _read_error_body(e)
            LOG.error("Compile HTTPError code=%d url=%s body=%s", e.code, url, err_text[:4000])
            raise TransportError(err_text or str(e)) from e
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            LOG.error("Compile transport error url=%s err=%s", url, e)
            raise TransportError(str(e) or type(e).__name__) from e


class BridgeHealthWorker(QObject):

    connected = pyqtSignal()
    failed = pyqtSignal(str)

    def __init__(self, client: BridgeClient):

        super().__init__()
        self._client = client

    def run(self):

        try:
            self._client.check_health()
            self.connected.emit()
        except BridgeUnreachable as e:
            self.failed.emit(str(e))
        except Exception:
            LOG.exception("Health check failed")
            self.failed.emit(str(BridgeUnreachable(self._client.host, self._client.port)))


class BridgeCompileWorker(QObject):

    line = pyqtSignal(str)
    finished = pyqtSignal(object)

    def __init__(self, client: BridgeClient, filename: str, code: str):

        super().__init__()
        self._client = client
        self._filename = filename
        self._code = code

    def run(self):

        try:
            outcome = self._client.stream_compile(self._filename, self._code, self.line.emit)
        except TransportError as e:
            outcome = Failure(str(e).strip() or GENERIC_FAILURE)
        except Exception as e:
            LOG.exception("Compile failed")
            outcome = Failure(str(e).strip() or type(e).__name__)
        self.finished.emit(outcome)


def run_in_thread(
    worker: QObject,
    done_signals: Iterable[Any],
    parent: QObject | None = None,
    on_finished: Callable[[], None] | None = None,
) -> QThread:
    """Start `worker.run` on a fresh QThread that quits when any of `done_signals` fires.

    The worker and the thread are both deleted once the thread has finished.
    """

    th = QThread(parent)
    worker.moveToThread(th)
    th.started.connect(worker.run)
    for sig in done_signals:
        sig.connect(th.quit)
    th.finished.connect(worker.deleteLater)
    th.finished.connect(th.deleteLater)
    if on_finished is not None:
        th.finished.connect(on_finished)
    th.start()
    return th


class CompileSession(QObject):
    """Owns CompileState, the compile log and the error-line set for one editor.

    Mutated only from slots running on the session's own thread; workers reach it
    through queued signals.
    """

    state_changed = pyqtSignal(object)
    line_received = pyqtSignal(str)
    diagnostics_changed = pyqtSignal(object)
    connection_changed = pyqtSignal(bool)

    def __init__(self, parent: QObject | None = None):

        super().__init__(parent)
        self._state: CompileState = Idle()
        self._connected = False
        self._log: list[str] = []
        self._errors: set[int] = set()
        self._artifact: str | None = None

    @property
    def state(self) -> CompileState:

        return self._state

    @property
    def connected(self) -> bool:

        return self._connected

    @property
    def artifact_path(self) -> str | None:

        return self._artifact

    def log_lines(self) -> list[str]:

        return list(self._log)

    def error_lines(self) -> frozenset[int]:

        return frozenset(self._errors)

    def _set_state(self, state: CompileState) -> None:

        LOG.debug("Compile state %s -> %s", type(self._state).__name__, state)
        self._state = state
        self.state_changed.emit(state)

    def _set_connected(self, on: bool) -> None:

        if on != self._connected:
            self._connected = on
            self.connection_changed.emit(on)

    def can_compile(self) -> bool:

        return self._connected and not isinstance(self._state, (Compiling, Connecting))

    def begin_connect(self) -> bool:

        if isinstance(self._state, (Compiling, Connecting)):
            return False
        self._set_state(Connecting())
        return True

    def on_health_ok(self) -> None:

        if not isinstance(self._state, Connecting):
            return
        self._set_connected(True)
        self._set_state(Idle())

    def on_health_failed(self, reason: str) -> None:

        if not isinstance(self._state, Connecting):
            return
        self._set_connected(False)
        self._set_state(Failure(reason or str(BridgeUnreachable())))

    def begin_compile(self) -> bool:

        if isinstance(self._state, (Compiling, Connecting)):
            return False
        if not self._connected:
            self._set_state(Failure(NOT_CONNECTED))
            return False
        self._log.clear()
        self._artifact = None
        if self._errors:
            self._errors.clear()
            self.diagnostics_changed.emit(frozenset())
        self._set_state(Compiling())
        return True

    def on_compile_line(self, line: str) -> None:

        if not isinstance(self._state, Compiling):
            LOG.debug("Dropping compile line outside an attempt: %r", line)
            return
        self._log.append(line)
        self.line_received.emit(line)
        ln = diagnostic_line(line)
        if ln is not None and ln not in self._errors:
            self._errors.add(ln)
            self.diagnostics_changed.emit(frozenset(self._errors))

    def on_compile_finished(self, outcome: Success | Failure) -> None:

        if not isinstance(self._state, Compiling):
            return
        if isinstance(outcome, Success):
            self._artifact = outcome.artifact_path
        self._set_state(outcome)

    def attach_health_worker(self, worker: BridgeHealthWorker) -> None:

        worker.connected.connect(self.on_health_ok)
        worker.failed.connect(self.on_health_failed)

    def attach_compile_worker(self, worker: BridgeCompileWorker) -> None:

        worker.line.connect(self.on_compile_line)
        worker.finished.connect(self.on_compile_finished)


def status_label(state: CompileState, connected: bool) -> tuple[str, str]:
    """(chip text, colour) for the status chip."""

    if isinstance(state, Compiling):
        return "Compiling...", "#1976d2"
    if isinstance(state, Success):
        return "Success", "#2e7d32"
    if isinstance(state, Failure):
        return "Failure", "#c62828"
    if isinstance(state, Connecting):
        return "Connecting...", "#6a1b9a"
    if isinstance(state, Idle):
        return ("Connected", "#2e7d32") if connected else ("Disconnected", "#9e9e9e")
    raise TypeError(f"unknown compile state: {state!r}")


def result_text(state: CompileState) -> str:

    if isinstance(state, Success):
        return f"Compilation succeeded.\nArtifact: {state.artifact_path or '(artifact path not provided)'}"
    if isinstance(state, Failure):
        return f"Compilation failed.\n{state.reason.strip() or 'See log above for details.'}"
    if isinstance(state, Compiling):
        return "Compiling…"
    if isinstance(state, Connecting):
        return "Connecting to bridge…"
    if isinstance(state, Idle):
        return ""
    raise TypeError(f"unknown compile state: {state!r}")
