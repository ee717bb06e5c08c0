import json
import logging
from typing import Any, Callable, final

from presencebar.core.errors import DecodeError
from presencebar.core.events import HelperEvents
from presencebar.core.models import AppConfig, ProtocolMessage, TrackStatus
from presencebar.core.state import StateStore


log = logging.getLogger(__name__)


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _always_current() -> bool:
    return True


@final
class MessageRouter:
    """
    Applies decoded helper output to the state store, one item at a time and
    in arrival order. Never raises on bad input; anything it cannot use is
    surfaced as a diagnostic instead.

    `is_current` tells whether the child that produced the item is still the
    one being supervised; output from a stopped child is dropped.
    """

    def __init__(self, state: StateStore, events: HelperEvents):
        self._state = state
        self._events = events

    def route(self, item: ProtocolMessage | str, is_current: Callable[[], bool] = _always_current):
        if not is_current():
            return

        if isinstance(item, str):
            self._events.diagnostic(item)
            return

        if item.type == "status":
            self._on_status(item, is_current)
        elif item.type == "config":
            self._on_config(item, is_current)
        else:
            self._events.diagnostic(f"Unknown message: {item.raw}")

    def _on_status(self, message: ProtocolMessage, is_current: Callable[[], bool]):
        try:
            status = TrackStatus.from_payload(message.payload)
        except DecodeError as e:
            log.debug(f"Status payload rejected: {e}")
            self._events.diagnostic(f"Failed to decode status payload: {_dump(message.payload)}", logging.WARNING)
            return

        if self._state.set_status(status, is_current):
            self._events.track_status.emit(status)

    def _on_config(self, message: ProtocolMessage, is_current: Callable[[], bool]):
        try:
            config = AppConfig.from_payload(message.payload)
        except DecodeError as e:
            log.debug(f"Config payload rejected: {e}")
            self._events.diagnostic(f"Failed to decode config payload: {_dump(message.payload)}", logging.WARNING)
            return

        if self._state.set_config(config, is_current):
            self._events.config_updated.emit(config)
