# pyright: reportAttributeAccessIssue=false, reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownParameterType=false, reportAny=false, reportUnannotatedClassAttribute=false, reportUnknownArgumentType=false, reportOptionalMemberAccess=false

import logging

from PySide6.QtGui import QAction, QIcon
from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from presencebar.core.events import HelperEvents
from presencebar.core.gateway import CommandGateway
from presencebar.core.models import TrackStatus
from presencebar.ui.configure_window import ConfigureWindow


ACTION_SERVICE = "Service Running"
ACTION_SETTINGS = "Settings…"
ACTION_ADD_FOLDER = "Add Music Folder"
ACTION_OPEN_CONFIG = "Open Config File"
ACTION_QUIT = "Quit"
TEXT_STOPPED = "Service stopped"

log = logging.getLogger(__name__)


class TrayIcon(QSystemTrayIcon):
    """
    The status-bar entry point. Every menu action goes through the command
    gateway; the menu itself only mirrors the helper events it receives.
    """

    def __init__(self, app_name: str, icon_path: str, gateway: CommandGateway, events: HelperEvents):
        app_instance = QApplication.instance()
        super().__init__(app_instance)

        self._app_name = app_name
        self._gateway = gateway

        self.setIcon(QIcon(icon_path))
        self.setToolTip(app_name)

        self.configure_window = ConfigureWindow(gateway)
        self._now_playing_action = QAction(TEXT_STOPPED, self)
        self._service_action = QAction(ACTION_SERVICE, self)
        self._add_folder_action = QAction(ACTION_ADD_FOLDER, self)
        self._open_config_action = QAction(ACTION_OPEN_CONFIG, self)
        self.setContextMenu(self._build_menu())

        _ = events.service_status.connect(self.on_service_status)
        _ = events.track_status.connect(self.on_track_status)
        _ = events.config_updated.connect(self.configure_window.on_config_updated)

        self.on_service_status(gateway.get_service_status())
        self.show()
        log.info("System tray icon initialized.")

    def _build_menu(self) -> QMenu:
        """Creates and returns the context menu for the tray icon."""

        menu = QMenu()

        self._now_playing_action.setEnabled(False)
        menu.addAction(self._now_playing_action)
        _ = menu.addSeparator()

        self._service_action.setCheckable(True)
        _ = self._service_action.triggered.connect(self._on_toggle_service)
        menu.addAction(self._service_action)

        settings_action = QAction(ACTION_SETTINGS, self)
        _ = settings_action.triggered.connect(self._show_configure_window)
        menu.addAction(settings_action)

        _ = self._add_folder_action.triggered.connect(self._gateway.add_folder)
        menu.addAction(self._add_folder_action)

        _ = self._open_config_action.triggered.connect(self._gateway.open_config)
        menu.addAction(self._open_config_action)

        _ = menu.addSeparator()

        quit_action = QAction(ACTION_QUIT, self)
        _ = quit_action.triggered.connect(self._gateway.quit_app)
        menu.addAction(quit_action)

        return menu

    def _on_toggle_service(self, _checked: bool):
        running = self._gateway.toggle_service()
        log.info(f"Service toggled from tray, requested running={running}")

    def on_service_status(self, running: bool):
        self._service_action.setChecked(running)
        self._add_folder_action.setEnabled(running)
        self._open_config_action.setEnabled(running)
        if not running:
            self.on_track_status(None)

    def on_track_status(self, status: TrackStatus | None):
        if status is None:
            text = TEXT_STOPPED if not self._gateway.get_service_status() else "Waiting for playback…"
        else:
            text = status.display_text()

        self._now_playing_action.setText(text)
        self.setToolTip(f"{self._app_name}\n{text}")

    def _show_configure_window(self):
        """Shows the settings window, ensuring it is raised to the front."""

        log.info("Opening settings window.")
        self.configure_window.show()
        self.configure_window.raise_()
        self.configure_window.activateWindow()
