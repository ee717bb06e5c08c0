# pyright: reportUnknownMemberType=false, reportAttributeAccessIssue=false, reportUnknownArgumentType=false, reportUnknownParameterType=false, reportMissingParameterType=false

import logging
from logging.handlers import RotatingFileHandler
import os
import signal
import sys
from typing import final

from PySide6.QtCore import QObject
from PySide6.QtWidgets import QApplication
from qt_material import apply_stylesheet

from presencebar.core.config import APP_NAME, Settings, load_settings, resolve_helper_command
from presencebar.core.events import HelperEvents
from presencebar.core.gateway import CommandGateway
from presencebar.core.models import DEFAULT_THEME, AppConfig
from presencebar.core.supervisor import Supervisor
from presencebar.ui.tray_icon import TrayIcon


APP_DISPLAY_NAME = "PresenceBar"
TRAY_ICON_PATH = os.path.join("assets", "tray-icon.png")
DEFAULT_STYLESHEET = "dark_cyan.xml"

# qt_material has no plain green or orange sheet; the nearest ones stand in
THEME_STYLESHEETS = {
    "cyan": "dark_cyan.xml",
    "red": "dark_red.xml",
    "green": "dark_lightgreen.xml",
    "purple": "dark_purple.xml",
    "orange": "dark_amber.xml",
}

log = logging.getLogger(__name__)


def theme_stylesheet(theme: str | None) -> str:
    return THEME_STYLESHEETS.get(theme or DEFAULT_THEME, DEFAULT_STYLESHEET)


@final
class PresenceBarApp(QObject):
    """
    Wires the helper supervisor, the command gateway and the tray icon
    together. The supervisor is created here and handed to everything that
    needs it; main() owns its lifetime.
    """

    def __init__(self, settings: Settings):
        super().__init__()
        log.info("Starting initialization.")
        self.settings = settings
        self._theme: str | None = None

        command = resolve_helper_command(settings)
        log.info(f"Helper command resolved to: {command}")

        self.events = HelperEvents()
        self.supervisor = Supervisor(
            command,
            self.events,
            process_name=settings.helper.process_name,
            settle_seconds=settings.helper.settle_ms / 1000.0,
        )
        self.gateway = CommandGateway(self.supervisor, quit_app=QApplication.instance().quit)  # pyright: ignore[reportOptionalMemberAccess]
        log.info("Supervisor and command gateway have been created.")

        icon_path = os.path.join(settings.app_directory, TRAY_ICON_PATH)
        if not os.path.exists(icon_path):
            log.warning(f"Icon not found at {icon_path}, tray may not have an icon.")

        self.tray_icon = TrayIcon(APP_DISPLAY_NAME, icon_path, self.gateway, self.events)
        log.info("TrayIcon has been initialized.")

        self._connect_signals()
        self._setup_shutdown_hooks()

    def _connect_signals(self):
        """Connects the helper events to application-level handlers."""

        _ = self.events.config_updated.connect(self._on_config_updated)
        _ = self.events.service_status.connect(self._on_service_status)
        log.info("Application signals connected.")

    def _setup_shutdown_hooks(self):
        """Sets up handlers for graceful application shutdown."""

        QApplication.instance().aboutToQuit.connect(self._on_about_to_quit)  # pyright: ignore[reportUnusedCallResult, reportOptionalMemberAccess]
        _ = signal.signal(signal.SIGINT, self._on_os_signal)
        _ = signal.signal(signal.SIGTERM, self._on_os_signal)

        log.info("Shutdown hooks registered.")

    def run(self):
        """Starts the helper unless auto-start is disabled in the settings."""

        if self.settings.helper.auto_start:
            log.info("Auto-starting helper...")
            self.supervisor.start()
        else:
            log.info("Helper auto-start disabled; waiting for the user.")

    def _on_config_updated(self, config: AppConfig | None):
        """Applies the helper's theme choice to the whole application."""

        if config is None or config.theme == self._theme:
            return

        self._theme = config.theme
        log.info(f"Applying theme '{config.theme}'.")
        apply_stylesheet(QApplication.instance(), theme_stylesheet(config.theme), invert_secondary=False, extra={"density_scale": "-1"})

    def _on_service_status(self, running: bool):
        log.info(f"Helper service is now {'running' if running else 'stopped'}.")

    def _on_about_to_quit(self):
        """Stops the helper before the application exits."""

        log.info("Shutdown sequence initiated...")
        self.supervisor.close()
        log.info(f"--- Stopped {APP_DISPLAY_NAME} ---")

    def _on_os_signal(self, *_args):
        """Handles OS signals like Ctrl+C for a graceful exit."""

        log.info("OS shutdown signal received, quitting application.")
        self.gateway.quit_app()


def setup_logging(settings: Settings):
    """Configures logging to output to both console and log file."""

    log_formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    root_logger.addHandler(console_handler)

    try:
        os.makedirs(settings.data_directory, exist_ok=True)

        # Create a rotating file handler. 1MB per file, keeping 5 old files
        file_handler = RotatingFileHandler(settings.log_path, maxBytes=1 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)
    except Exception as e:
        root_logger.error(f"Failed to set up file logging: {e}")


def main() -> None:
    settings = load_settings()
    setup_logging(settings)
    log.info(f"--- Starting {APP_DISPLAY_NAME} ---")

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)
    app.setApplicationName(APP_NAME)
    app.setApplicationDisplayName(APP_DISPLAY_NAME)

    apply_stylesheet(app, DEFAULT_STYLESHEET, invert_secondary=False, extra={"density_scale": "-1"})

    presence_app = PresenceBarApp(settings)
    with presence_app.supervisor:
        presence_app.run()
        log.info("Entering Qt main event loop...")
        exit_code = app.exec()

    sys.exit(exit_code)
