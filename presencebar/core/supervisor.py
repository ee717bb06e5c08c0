import enum
import logging
import subprocess
import threading
from collections.abc import Sequence
from typing import Any, Callable, final

from presencebar.core.errors import HelperWriteError, NotRunningError, SpawnError
from presencebar.core.events import HelperEvents
from presencebar.core.orphans import DEFAULT_SETTLE_SECONDS, sweep_orphans
from presencebar.core.protocol import encode_command
from presencebar.core.reader import HelperProcess, HelperReader
from presencebar.core.router import MessageRouter
from presencebar.core.state import StateStore


HELPER_PROCESS_NAME = "tini-presence-core"
READER_JOIN_TIMEOUT = 2.0

log = logging.getLogger(__name__)


class Phase(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


def spawn_helper(command: Sequence[str]) -> HelperProcess:
    return subprocess.Popen(
        list(command),
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


@final
class Supervisor:
    """
    Owns the helper process. Only this object ever touches the child handle:
    spawn, kill and stdin writes all happen under one lock, which is never
    held while waiting on helper output. Cached status/config live in the
    StateStore and are updated by the router on the reader thread.

    Use it as a context manager so the helper is always killed on exit.
    """

    def __init__(
        self,
        command: Sequence[str],
        events: HelperEvents,
        state: StateStore | None = None,
        process_name: str = HELPER_PROCESS_NAME,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        spawn: Callable[[Sequence[str]], HelperProcess] = spawn_helper,
        sweep: Callable[[str, float], Any] = sweep_orphans,
    ):
        self.command = list(command)
        self.events = events
        self.state = state or StateStore()
        self.router = MessageRouter(self.state, events)
        self.process_name = process_name
        self.settle_seconds = settle_seconds
        self._spawn = spawn
        self._sweep = sweep

        self._lock = threading.RLock()
        self._proc: HelperProcess | None = None
        self._reader: HelperReader | None = None
        self._phase = Phase.STOPPED

    def __enter__(self) -> "Supervisor":
        return self

    def __exit__(self, *_exc_info):
        self.close()

    @property
    def phase(self) -> Phase:
        return self._phase

    def is_running(self) -> bool:
        return self.state.running

    @property
    def pid(self) -> int | None:
        proc = self._proc
        return proc.pid if proc is not None else None

    def start(self) -> bool:
        """
        Launches the helper unless one is already running. Returns True if a
        new helper was started. Spawn failures are reported as diagnostics and
        never raised.
        """

        with self._lock:
            if self._proc is not None:
                return False

            self._phase = Phase.STARTING
            self._sweep(self.process_name, self.settle_seconds)

            try:
                proc = self._launch()
            except SpawnError as e:
                self._phase = Phase.STOPPED
                self.events.diagnostic(str(e), logging.ERROR)
                return False

            self._proc = proc
            self._phase = Phase.RUNNING
            self.state.set_running(True)
            self.events.service_status.emit(True)
            self.events.diagnostic("Helper started")
            log.info(f"Started {self.process_name} (pid {proc.pid})")

            # started last so helper output never overtakes the running event
            self._reader = HelperReader(proc, self.router.route, self.events.diagnostic, self._on_child_exited)
            self._reader.start()

        try:
            self.send("get-config")
        except (NotRunningError, HelperWriteError):
            self.events.diagnostic("Failed to request config", logging.WARNING)
        return True

    def _launch(self) -> HelperProcess:
        try:
            return self._spawn(self.command)
        except (OSError, ValueError) as e:
            raise SpawnError(f"Failed to spawn helper: {e}") from e

    def stop(self) -> bool:
        """Kills the helper and clears cached state. Returns False if nothing was running."""

        with self._lock:
            proc = self._proc
            if proc is None:
                return False

            reader = self._reader
            self._proc = None
            self._reader = None
            try:
                proc.kill()
            except OSError as e:
                log.warning(f"Failed to kill helper (pid {proc.pid}): {e}")
            self._mark_stopped(reader)
            log.info(f"Stopped {self.process_name}")

        if reader is not None and reader.thread is not threading.current_thread():
            if not reader.join(READER_JOIN_TIMEOUT):
                log.warning("Helper reader did not finish after stop")
        return True

    def close(self):
        """Tears the supervisor down; safe to call more than once."""

        self.stop()

    def send(self, command: str, payload: Any = None):
        """
        Writes one command line to the helper. Raises NotRunningError if no
        helper is active and HelperWriteError if the write fails; a failed
        write does not by itself change the running state.
        """

        with self._lock:
            proc = self._proc
            if proc is None or proc.stdin is None:
                raise NotRunningError(f"Cannot send '{command}': helper is not running")

            line = encode_command(command, payload)
            try:
                proc.stdin.write(line)
                proc.stdin.flush()
            except (OSError, ValueError) as e:
                self.events.diagnostic(f"Failed to send {command}: {e}", logging.WARNING)
                raise HelperWriteError(str(e)) from e
            log.debug(f"Sent command '{command}'")

    def _on_child_exited(self, proc: HelperProcess, code: int | None):
        """Called on the reader thread once a child has fully exited."""

        with self._lock:
            # stop() or a newer start() already replaced this child
            if self._proc is not proc:
                return

            log.warning(f"{self.process_name} exited unexpectedly (code={code})")
            reader = self._reader
            self._proc = None
            self._reader = None
            self._mark_stopped(reader)

    def _mark_stopped(self, reader: HelperReader | None):
        # cancel before reset so output still in flight cannot refill the cache
        if reader is not None:
            reader.cancel()
        self._phase = Phase.STOPPED
        self.state.reset()
        self.events.service_status.emit(False)
        self.events.track_status.emit(None)
        self.events.config_updated.emit(None)
