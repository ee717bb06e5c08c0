import logging
import queue
from threading import Event, Thread
from typing import IO, Any, Callable, Protocol, final

from presencebar.core.protocol import ENCODING, LineDecoder
from presencebar.core.models import ProtocolMessage


READ_CHUNK_SIZE = 4096

log = logging.getLogger(__name__)


class HelperProcess(Protocol):
    """The subset of subprocess.Popen the supervisor relies on."""

    pid: int
    stdin: IO[bytes] | None
    stdout: IO[bytes] | None
    stderr: IO[bytes] | None

    def poll(self) -> int | None: ...

    def wait(self, timeout: float | None = None) -> int: ...

    def kill(self) -> None: ...


# Queue item kinds
_STDOUT = "stdout"
_STDERR = "stderr"
_ERROR = "error"
_EOF = "eof"


@final
class HelperReader:
    """
    The worker that drains one helper process. Two pump threads read stdout
    (raw chunks) and stderr (lines) into a single queue; one dispatch thread
    consumes that queue in order, so every callback runs on the dispatch
    thread and helper output is never reordered.

    The worker ends by itself once both streams are closed and the process
    has exited, which is exactly what killing the child causes. Once
    cancelled, output still in flight is drained but dropped; only the
    termination diagnostic is reported.
    """

    def __init__(
        self,
        proc: HelperProcess,
        on_item: Callable[[ProtocolMessage | str, Callable[[], bool]], None],
        on_diagnostic: Callable[[str], None],
        on_exit: Callable[[HelperProcess, int | None], None],
    ):
        self._proc = proc
        self._on_item = on_item
        self._on_diagnostic = on_diagnostic
        self._on_exit = on_exit
        self._queue: queue.Queue[tuple[str, Any]] = queue.Queue()
        self._decoder = LineDecoder()
        self._pumps: list[Thread] = []
        self._cancelled = Event()
        self._thread = Thread(target=self._dispatch, name=f"helper-reader-{proc.pid}", daemon=True)

    def is_active(self) -> bool:
        return not self._cancelled.is_set()

    def cancel(self):
        """Stops forwarding helper output; the threads still run to EOF."""

        self._cancelled.set()

    @property
    def thread(self) -> Thread:
        return self._thread

    def start(self):
        if self._proc.stdout is not None:
            self._pumps.append(Thread(target=self._pump_stdout, args=(self._proc.stdout,), name="helper-stdout", daemon=True))
        if self._proc.stderr is not None:
            self._pumps.append(Thread(target=self._pump_stderr, args=(self._proc.stderr,), name="helper-stderr", daemon=True))

        for pump in self._pumps:
            pump.start()
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Waits for the dispatch thread. Returns True if it has finished."""

        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _pump_stdout(self, stream: IO[bytes]):
        read = getattr(stream, "read1", stream.read)
        try:
            while True:
                chunk = read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self._queue.put((_STDOUT, chunk))
        except (OSError, ValueError) as e:
            self._queue.put((_ERROR, f"Helper stream error: {e}"))
        finally:
            self._queue.put((_EOF, None))

    def _pump_stderr(self, stream: IO[bytes]):
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode(ENCODING, errors="replace").strip()
                if line:
                    self._queue.put((_STDERR, line))
        except (OSError, ValueError) as e:
            self._queue.put((_ERROR, f"Helper stream error: {e}"))
        finally:
            self._queue.put((_EOF, None))

    def _dispatch(self):
        open_streams = len(self._pumps)
        while open_streams > 0:
            kind, data = self._queue.get()
            try:
                if kind == _STDOUT:
                    for item in self._decoder.feed(data):
                        if self.is_active():
                            self._on_item(item, self.is_active)
                elif kind in (_STDERR, _ERROR):
                    if self.is_active():
                        self._on_diagnostic(data)
                elif kind == _EOF:
                    open_streams -= 1
            except Exception:
                # A failing observer must not stop the stream from draining.
                log.exception("Error while handling helper output")

        code = self._proc.wait()
        self._on_diagnostic(f"Helper terminated: code={code if code is not None else 'unknown'}")
        self._on_exit(self._proc, code)
