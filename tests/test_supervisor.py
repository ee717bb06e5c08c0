import threading
import time

import pytest
from PySide6.QtCore import Qt

from presencebar.core.errors import HelperWriteError, NotRunningError
from presencebar.core import supervisor as supervisor_module
from presencebar.core.models import AppConfig, Command, TrackStatus
from presencebar.core.supervisor import Phase, Supervisor


STATUS_LINE = b'{"type":"status","payload":{"playing":true,"title":"Song"}}\n'
CONFIG_LINE = b'{"type":"config","payload":{"musicFolders":["/music"]}}\n'


def reader_alive(pid: int) -> bool:
    return any(t.name == f"helper-reader-{pid}" and t.is_alive() for t in threading.enumerate())


def test_start_launches_helper_and_requests_config(supervisor, spawner, recorder):
    assert supervisor.start() is True

    assert supervisor.phase is Phase.RUNNING
    assert supervisor.is_running()
    assert supervisor.pid == spawner.last.pid
    assert spawner.commands == [["tini-presence-core"]]
    assert spawner.last.stdin.commands() == [Command("get-config")]
    assert recorder.of("service") == [True]
    assert "Helper started" in recorder.diagnostics


def test_start_twice_keeps_a_single_child(supervisor, spawner, recorder):
    assert supervisor.start() is True
    assert supervisor.start() is False

    assert len(spawner.processes) == 1
    assert recorder.of("service") == [True]
    assert len(spawner.last.stdin.lines) == 1


def test_orphan_sweep_always_precedes_spawn(supervisor, sweeper, calls):
    supervisor.start()
    supervisor.stop()
    supervisor.start()

    assert calls == ["sweep", "spawn", "sweep", "spawn"]
    assert sweeper.args[0] == ("tini-presence-core", 0)


def test_spawn_failure_is_reported_and_leaves_stopped(supervisor, spawner, recorder):
    spawner.error = FileNotFoundError(2, "No such file or directory")

    assert supervisor.start() is False

    assert supervisor.phase is Phase.STOPPED
    assert not supervisor.is_running()
    assert recorder.of("service") == []
    assert len(recorder.diagnostics) == 1
    assert recorder.diagnostics[0].startswith("Failed to spawn helper:")
    assert "No such file or directory" in recorder.diagnostics[0]


def test_concurrent_starts_spawn_once(supervisor, spawner, recorder):
    barrier = threading.Barrier(4)

    def start():
        barrier.wait()
        supervisor.start()

    threads = [threading.Thread(target=start) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert len(spawner.processes) == 1
    assert recorder.of("service") == [True]


def test_messages_update_cached_state(supervisor, spawner, recorder, wait_for):
    supervisor.start()
    proc = spawner.last

    proc.write_stdout(b'{"typ')
    proc.write_stdout(b'e":"status","payload":{"playing":true}}\n')

    assert wait_for(lambda: supervisor.state.status is not None)
    assert supervisor.state.status == TrackStatus(playing=True)
    assert recorder.of("track") == [TrackStatus(playing=True)]


def test_output_order_is_preserved(supervisor, spawner, recorder, wait_for):
    supervisor.start()
    recorder.all.clear()

    spawner.last.write_stdout(STATUS_LINE + b"not json at all\n" + CONFIG_LINE)

    assert wait_for(lambda: len(recorder.all) == 3)
    assert [kind for kind, _ in recorder.all] == ["track", "diagnostic", "config"]
    assert recorder.diagnostics == ["not json at all"]


def test_stderr_lines_become_diagnostics(supervisor, spawner, recorder, wait_for):
    supervisor.start()

    spawner.last.write_stderr(b"  [sidecar] booted  \n\n   \n")

    assert wait_for(lambda: "[sidecar] booted" in recorder.diagnostics)
    assert "" not in recorder.diagnostics


def test_stop_clears_state_and_emits_cleared_events(supervisor, spawner, recorder, wait_for):
    supervisor.start()
    proc = spawner.last
    proc.write_stdout(STATUS_LINE + CONFIG_LINE)
    assert wait_for(lambda: supervisor.state.config is not None)

    assert supervisor.stop() is True

    assert proc.killed
    assert supervisor.phase is Phase.STOPPED
    assert supervisor.state.snapshot().running is False
    assert supervisor.state.status is None
    assert supervisor.state.config is None
    assert recorder.of("service") == [True, False]
    assert recorder.of("track")[-1] is None
    assert recorder.of("config")[-1] is None
    assert not reader_alive(proc.pid)


def test_second_stop_is_a_noop(supervisor, recorder):
    supervisor.start()
    supervisor.stop()
    seen = len(recorder.all)

    assert supervisor.stop() is False
    assert len(recorder.all) == seen


def test_stop_without_start_emits_nothing(supervisor, recorder):
    assert supervisor.stop() is False
    assert recorder.all == []


def test_send_requires_running_helper(supervisor):
    with pytest.raises(NotRunningError):
        supervisor.send("get-config")


def test_send_writes_one_line_per_command(supervisor, spawner):
    supervisor.start()
    supervisor.send("update-config", AppConfig(theme="orange").to_payload())
    supervisor.send("something-new", {"x": 1})

    assert spawner.last.stdin.commands()[1:] == [
        Command("update-config", AppConfig(theme="orange").to_payload()),
        Command("something-new", {"x": 1}),
    ]


def test_write_failure_is_reported_without_stopping(supervisor, spawner, recorder):
    supervisor.start()
    spawner.last.stdin.broken = True

    with pytest.raises(HelperWriteError):
        supervisor.send("open-config")

    assert supervisor.is_running()
    assert any(d.startswith("Failed to send open-config:") for d in recorder.diagnostics)


def test_failed_config_request_on_start_is_reported(events, spawner, sweeper, recorder):
    def spawn_broken(command):
        proc = spawner(command)
        proc.stdin.broken = True
        return proc

    with Supervisor(["helper"], events, spawn=spawn_broken, sweep=sweeper, settle_seconds=0) as supervisor:
        assert supervisor.start() is True
        assert supervisor.is_running()
        assert "Failed to request config" in recorder.diagnostics

    for proc in spawner.processes:
        proc.close()


def test_unexpected_exit_returns_to_stopped(supervisor, spawner, recorder, wait_for):
    supervisor.start()
    proc = spawner.last
    proc.write_stdout(STATUS_LINE + CONFIG_LINE)
    assert wait_for(lambda: supervisor.state.config is not None)

    proc.exit(1)

    # config_updated(None) is the last event of the transition
    assert wait_for(lambda: recorder.of("config")[-1:] == [None])
    assert supervisor.phase is Phase.STOPPED
    assert not supervisor.is_running()
    assert supervisor.state.status is None
    assert supervisor.state.config is None
    assert recorder.of("service") == [True, False]
    assert "Helper terminated: code=1" in recorder.diagnostics
    assert wait_for(lambda: not reader_alive(proc.pid))

    # recoverable with a plain start, no double toggle needed
    assert supervisor.start() is True
    assert len(spawner.processes) == 2


def test_context_manager_kills_helper(events, spawner, sweeper):
    with Supervisor(["helper"], events, spawn=spawner, sweep=sweeper, settle_seconds=0) as supervisor:
        supervisor.start()
        proc = spawner.last

    assert proc.killed
    assert not supervisor.is_running()
    proc.close()


def test_output_queued_before_stop_never_reaches_the_cache(supervisor, spawner, events, recorder, wait_for, monkeypatch):
    monkeypatch.setattr(supervisor_module, "READER_JOIN_TIMEOUT", 0.1)
    entered = threading.Event()
    gate = threading.Event()

    def hold_on_marker(message):
        if message == "hold":
            entered.set()
            _ = gate.wait(5.0)

    _ = events.diagnostic_log.connect(hold_on_marker, type=Qt.ConnectionType.DirectConnection)
    supervisor.start()
    proc = spawner.last

    # the reader is parked inside the "hold" diagnostic while more output queues up
    proc.write_stdout(b"hold\n")
    assert entered.wait(3.0)
    proc.write_stdout(STATUS_LINE + CONFIG_LINE)
    proc.write_stderr(b"late stderr\n")

    supervisor.stop()

    assert supervisor.state.snapshot().running is False
    assert supervisor.state.status is None
    assert supervisor.state.config is None
    cleared_at = len(recorder.all)

    gate.set()
    assert wait_for(lambda: not reader_alive(proc.pid))

    assert supervisor.state.status is None
    assert supervisor.state.config is None
    late = recorder.all[cleared_at:]
    assert all(kind == "diagnostic" for kind, _ in late)
    assert "late stderr" not in recorder.diagnostics
    assert [d for _, d in late] == ["Helper terminated: code=-9"]


def test_output_from_a_stopped_child_cannot_leak_into_the_next_one(supervisor, spawner, events, wait_for, monkeypatch):
    monkeypatch.setattr(supervisor_module, "READER_JOIN_TIMEOUT", 0.1)
    entered = threading.Event()
    gate = threading.Event()

    def hold_on_marker(message):
        if message == "hold":
            entered.set()
            _ = gate.wait(5.0)

    _ = events.diagnostic_log.connect(hold_on_marker, type=Qt.ConnectionType.DirectConnection)
    supervisor.start()
    first = spawner.last
    first.write_stdout(b"hold\n")
    assert entered.wait(3.0)
    first.write_stdout(STATUS_LINE)

    supervisor.stop()
    supervisor.start()
    gate.set()

    assert wait_for(lambda: not reader_alive(first.pid))
    assert supervisor.is_running()
    assert supervisor.state.status is None


def test_silent_helper_stays_running_without_status(supervisor, spawner, recorder):
    supervisor.start()

    # no timeout on startup: a helper that never writes leaves us Running
    time.sleep(0.3)

    assert supervisor.phase is Phase.RUNNING
    assert supervisor.is_running()
    assert supervisor.state.status is None
    assert supervisor.state.config is None
    assert recorder.of("track") == []
    assert recorder.of("config") == []
    assert reader_alive(spawner.last.pid)
