import threading
from dataclasses import dataclass, replace
from typing import Callable, final

from presencebar.core.models import AppConfig, TrackStatus


@dataclass(frozen=True)
class Snapshot:
    running: bool = False
    status: TrackStatus | None = None
    config: AppConfig | None = None


@final
class StateStore:
    """
    Holds the last known helper state as one immutable snapshot. Writers swap
    the whole snapshot under a lock; readers just take the current reference,
    so they never see a half-applied update and never share mutable data.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._snapshot.running

    @property
    def status(self) -> TrackStatus | None:
        return self._snapshot.status

    @property
    def config(self) -> AppConfig | None:
        return self._snapshot.config

    def set_running(self, running: bool):
        with self._lock:
            self._snapshot = replace(self._snapshot, running=running)

    def set_status(self, status: TrackStatus | None, is_current: Callable[[], bool] | None = None) -> bool:
        """
        Replaces the cached status. With `is_current`, the check and the swap
        happen under the same lock as reset(), so a writer that lost the race
        with a stop can never repopulate a cleared store. Returns True if applied.
        """

        with self._lock:
            if is_current is not None and not is_current():
                return False
            self._snapshot = replace(self._snapshot, status=status)
            return True

    def set_config(self, config: AppConfig | None, is_current: Callable[[], bool] | None = None) -> bool:
        with self._lock:
            if is_current is not None and not is_current():
                return False
            self._snapshot = replace(self._snapshot, config=config)
            return True

    def reset(self):
        """Marks the helper stopped and drops cached status and config together."""

        with self._lock:
            self._snapshot = Snapshot()
