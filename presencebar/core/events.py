# pyright: reportUnknownMemberType=false

import logging
from typing import final

from PySide6.QtCore import QObject, Signal


log = logging.getLogger(__name__)


@final
class HelperEvents(QObject):
    """
    Signals raised toward the UI layer. They are emitted from whichever thread
    produced them (usually the helper reader); slots on GUI objects connected
    with the default connection type are queued onto the GUI thread in order.
    """

    service_status = Signal(bool)
    track_status = Signal(object)  # TrackStatus | None
    config_updated = Signal(object)  # AppConfig | None
    diagnostic_log = Signal(str)

    def diagnostic(self, message: str, level: int = logging.INFO):
        """Writes a diagnostic to the log and forwards it to the UI."""

        log.log(level, f"[helper] {message}")
        self.diagnostic_log.emit(message)
