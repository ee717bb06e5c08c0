import logging
from typing import Any, Callable, final

from presencebar.core.errors import HelperWriteError, NotRunningError
from presencebar.core.models import AppConfig, TrackStatus
from presencebar.core.supervisor import Supervisor


log = logging.getLogger(__name__)


@final
class CommandGateway:
    """
    The synchronous API the UI layer calls. Each method is a thin translation
    into a supervisor lifecycle action or a single command write; none of
    them wait for the helper to reply.
    """

    def __init__(self, supervisor: Supervisor, quit_app: Callable[[], Any] | None = None):
        self._supervisor = supervisor
        self._quit_app = quit_app

    def toggle_service(self) -> bool:
        """Stops a running helper or starts a stopped one. Returns the requested state."""

        if self._supervisor.is_running():
            self._supervisor.stop()
            return False
        self._supervisor.start()
        return True

    def get_service_status(self) -> bool:
        return self._supervisor.state.running

    def get_track_status(self) -> TrackStatus | None:
        return self._supervisor.state.status

    def get_config(self) -> AppConfig | None:
        return self._supervisor.state.config

    def request_config(self) -> bool:
        return self._send("get-config")

    def update_config(self, config: AppConfig) -> bool:
        return self._send("update-config", config.to_payload())

    def add_folder(self) -> bool:
        return self._send("add-folder")

    def open_config(self) -> bool:
        return self._send("open-config")

    def quit_app(self):
        """Stops the helper, then asks the host application to exit."""

        log.info("Quit requested.")
        self._supervisor.stop()
        if self._quit_app is not None:
            self._quit_app()

    def _send(self, command: str, payload: Any = None) -> bool:
        try:
            self._supervisor.send(command, payload)
        except NotRunningError:
            return False
        except HelperWriteError:
            # already surfaced as a diagnostic by the supervisor
            return False
        return True
