import logging
from typing import final, override

from PySide6.QtCore import Qt
from PySide6.QtGui import QShowEvent
from PySide6.QtWidgets import (
    QComboBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from presencebar.core.gateway import CommandGateway
from presencebar.core.models import THEME_COLORS, AppConfig


WINDOW_TITLE = "PresenceBar Settings"
WINDOW_WIDTH, WINDOW_HEIGHT = 420, 460

LABEL_DISCORD_CLIENT_ID = "Discord Client ID:"
LABEL_COPYPARTY_URL = "Copyparty URL:"
LABEL_COPYPARTY_PATH = "Copyparty Path:"
LABEL_COPYPARTY_API_KEY = "Copyparty API Key:"
LABEL_THEME = "Theme:"

BUTTON_ADD_FOLDER = "Add Folder…"
BUTTON_SAVE = "Save && Apply"
BUTTON_CANCEL = "Cancel"

log = logging.getLogger(__name__)


def _text_or_none(field: QLineEdit) -> str | None:
    return field.text().strip() or None


def theme_options(current: str | None) -> list[str]:
    """The known accent colours, plus the current value if the helper uses one we do not know."""

    options = list(THEME_COLORS)
    if current is not None and current not in options:
        options.append(current)
    return options


@final
class ConfigureWindow(QWidget):
    """
    Edits the helper-owned AppConfig. The window never keeps its own copy of
    the settings: it shows whatever the helper last reported and sends a new
    AppConfig back through the gateway on save.
    """

    def __init__(self, gateway: CommandGateway):
        super().__init__()

        self._gateway = gateway
        self._config: AppConfig | None = None

        self.folders_list: QListWidget
        self.discord_client_id_input: QLineEdit
        self.copyparty_url_input: QLineEdit
        self.copyparty_path_input: QLineEdit
        self.copyparty_api_key_input: QLineEdit
        self.theme_choice: QComboBox
        self.status_label: QLabel

        self._create_widgets()
        self._layout_widgets()
        self._connect_signals()
        self._setup_window_flags()

    def _create_widgets(self):
        """Initializes all the child widgets for the settings window."""

        self.folders_list = QListWidget()
        self.discord_client_id_input = QLineEdit()
        self.copyparty_url_input = QLineEdit()
        self.copyparty_url_input.setPlaceholderText("https://example.com")
        self.copyparty_path_input = QLineEdit()
        self.copyparty_api_key_input = QLineEdit()
        self.copyparty_api_key_input.setEchoMode(QLineEdit.EchoMode.Password)

        self.theme_choice = QComboBox()
        self.theme_choice.addItems(theme_options(None))

        self.status_label = QLabel("")
        self.status_label.setStyleSheet("color: #888;")

    def _layout_widgets(self):
        """Arranges the created widgets using layouts."""

        main_layout = QVBoxLayout(self)
        main_layout.setSpacing(15)

        main_layout.addWidget(QLabel("<b>Music Folders</b>"))
        main_layout.addWidget(self.folders_list)

        folder_buttons = QHBoxLayout()
        self.add_folder_button = QPushButton(BUTTON_ADD_FOLDER)
        folder_buttons.addStretch()
        folder_buttons.addWidget(self.add_folder_button)
        main_layout.addLayout(folder_buttons)

        form_layout = QFormLayout()
        form_layout.setFieldGrowthPolicy(QFormLayout.FieldGrowthPolicy.AllNonFixedFieldsGrow)
        form_layout.setLabelAlignment(Qt.AlignmentFlag.AlignLeft)
        form_layout.setSpacing(10)

        form_layout.addRow(QLabel("<b>Presence & Sync</b>"))
        form_layout.addRow(LABEL_DISCORD_CLIENT_ID, self.discord_client_id_input)
        form_layout.addRow(LABEL_COPYPARTY_URL, self.copyparty_url_input)
        form_layout.addRow(LABEL_COPYPARTY_PATH, self.copyparty_path_input)
        form_layout.addRow(LABEL_COPYPARTY_API_KEY, self.copyparty_api_key_input)
        form_layout.addRow(LABEL_THEME, self.theme_choice)
        main_layout.addLayout(form_layout)

        main_layout.addWidget(self.status_label)

        button_layout = QHBoxLayout()
        self.save_button = QPushButton(BUTTON_SAVE)
        self.save_button.setDefault(True)
        self.close_button = QPushButton(BUTTON_CANCEL)

        button_layout.addStretch()
        button_layout.addWidget(self.close_button)
        button_layout.addWidget(self.save_button)
        main_layout.addLayout(button_layout)

    def _connect_signals(self):
        _ = self.add_folder_button.clicked.connect(self._on_add_folder)
        _ = self.save_button.clicked.connect(self._on_save)
        _ = self.close_button.clicked.connect(self.close)

    def on_config_updated(self, config: AppConfig | None):
        """Slot for the helper's config events; refreshes the form if visible."""

        self._config = config
        if self.isVisible():
            self._load_config_into_ui(config)

    def _load_config_into_ui(self, source: AppConfig | None):
        """Populates the UI fields from a given config object."""

        enabled = source is not None
        self.save_button.setEnabled(enabled)
        self.add_folder_button.setEnabled(enabled)
        self.status_label.setText("" if enabled else "Waiting for the helper to report its settings…")

        self.folders_list.clear()
        if source is None:
            return

        self.folders_list.addItems(list(source.music_folders))
        self.discord_client_id_input.setText(source.discord_client_id or "")
        self.copyparty_url_input.setText(source.copyparty_url or "")
        self.copyparty_path_input.setText(source.copyparty_path or "")
        self.copyparty_api_key_input.setText(source.copyparty_api_key or "")
        self.theme_choice.clear()
        self.theme_choice.addItems(theme_options(source.theme))
        # no selection when the helper has not picked a theme, so saving keeps it unset
        self.theme_choice.setCurrentIndex(-1 if source.theme is None else self.theme_choice.findText(source.theme))

    def _on_add_folder(self):
        if not self._gateway.add_folder():
            self.status_label.setText("Helper is not running.")

    def _on_save(self):
        """Sends a new AppConfig built from the form to the helper and closes."""

        if self._config is None:
            return

        new_config = AppConfig(
            music_folders=self._config.music_folders,
            discord_client_id=_text_or_none(self.discord_client_id_input),
            copyparty_api_key=_text_or_none(self.copyparty_api_key_input),
            copyparty_url=_text_or_none(self.copyparty_url_input),
            copyparty_path=_text_or_none(self.copyparty_path_input),
            theme=self.theme_choice.currentText() or self._config.theme,
        )

        log.info("Saving new helper configuration.")
        if self._gateway.update_config(new_config):
            _ = self.close()
        else:
            self.status_label.setText("Could not send settings, is the helper running?")

    @override
    def showEvent(self, event: QShowEvent):
        """
        Populates the form from the cached config every time the window is
        shown, and asks the helper for a fresh copy if none is cached yet.
        """

        self._config = self._gateway.get_config()
        self._load_config_into_ui(self._config)
        if self._config is None:
            _ = self._gateway.request_config()
        super().showEvent(event)

    def _setup_window_flags(self):
        """Sets the window title, flags, and size."""

        self.setWindowTitle(WINDOW_TITLE)
        self.setWindowFlags(Qt.WindowType.Dialog | Qt.WindowType.WindowStaysOnTopHint)
        self.setFixedSize(WINDOW_WIDTH, WINDOW_HEIGHT)
