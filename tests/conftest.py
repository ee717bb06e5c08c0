import itertools
import os
import threading
import time
from typing import Callable

import pytest
from PySide6.QtCore import QCoreApplication, Qt

from presencebar.core.events import HelperEvents
from presencebar.core.protocol import decode_command
from presencebar.core.supervisor import Supervisor


_pids = itertools.count(40000)


class RecordingStdin:
    """Stands in for the helper's stdin pipe and keeps every line written."""

    def __init__(self):
        self.lines: list[bytes] = []
        self.broken = False

    def write(self, data: bytes) -> int:
        if self.broken:
            raise BrokenPipeError(32, "Broken pipe")
        self.lines.append(data)
        return len(data)

    def flush(self):
        pass

    def commands(self):
        return [decode_command(line) for line in self.lines]


class FakeHelperProcess:
    """
    A Popen look-alike backed by real OS pipes, so the reader threads block
    and wake up exactly as they would on a live helper.
    """

    def __init__(self):
        out_r, self._out_w = os.pipe()
        err_r, self._err_w = os.pipe()
        self.stdout = os.fdopen(out_r, "rb")
        self.stderr = os.fdopen(err_r, "rb")
        self.stdin = RecordingStdin()
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.killed = False
        self._exited = threading.Event()
        self._lock = threading.Lock()

    def write_stdout(self, data: bytes):
        _ = os.write(self._out_w, data)

    def write_stderr(self, data: bytes):
        _ = os.write(self._err_w, data)

    def exit(self, code: int = 0):
        with self._lock:
            if self._exited.is_set():
                return
            self.returncode = code
            os.close(self._out_w)
            os.close(self._err_w)
            self._exited.set()

    def kill(self):
        self.killed = True
        self.exit(-9)

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int | None:
        _ = self._exited.wait(timeout)
        return self.returncode

    def close(self):
        self.exit(0)
        self.stdout.close()
        self.stderr.close()


class Spawner:
    def __init__(self, calls: list[str]):
        self.calls = calls
        self.processes: list[FakeHelperProcess] = []
        self.commands: list[list[str]] = []
        self.error: Exception | None = None

    def __call__(self, command) -> FakeHelperProcess:
        self.calls.append("spawn")
        self.commands.append(list(command))
        if self.error is not None:
            raise self.error
        proc = FakeHelperProcess()
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeHelperProcess:
        return self.processes[-1]


class Sweeper:
    def __init__(self, calls: list[str]):
        self.calls = calls
        self.args: list[tuple[str, float]] = []

    def __call__(self, process_name: str, settle_seconds: float):
        self.calls.append("sweep")
        self.args.append((process_name, settle_seconds))
        return 0


class EventRecorder:
    """Collects every HelperEvents emission, in order, from any thread."""

    def __init__(self, events: HelperEvents):
        self.all: list[tuple[str, object]] = []
        direct = Qt.ConnectionType.DirectConnection
        _ = events.service_status.connect(lambda value: self.all.append(("service", value)), type=direct)
        _ = events.track_status.connect(lambda value: self.all.append(("track", value)), type=direct)
        _ = events.config_updated.connect(lambda value: self.all.append(("config", value)), type=direct)
        _ = events.diagnostic_log.connect(lambda value: self.all.append(("diagnostic", value)), type=direct)

    def of(self, kind: str) -> list[object]:
        return [value for k, value in list(self.all) if k == kind]

    @property
    def diagnostics(self) -> list[str]:
        return [str(value) for value in self.of("diagnostic")]


@pytest.fixture(scope="session", autouse=True)
def qt_core_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def events() -> HelperEvents:
    return HelperEvents()


@pytest.fixture
def recorder(events) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def spawner(calls) -> Spawner:
    return Spawner(calls)


@pytest.fixture
def sweeper(calls) -> Sweeper:
    return Sweeper(calls)


@pytest.fixture
def supervisor(events, spawner, sweeper):
    sup = Supervisor(["tini-presence-core"], events, spawn=spawner, sweep=sweeper, settle_seconds=0)
    yield sup
    sup.close()
    for proc in spawner.processes:
        proc.close()


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait_for
