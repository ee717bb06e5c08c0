import json
import logging
from typing import Any

from presencebar.core.errors import DecodeError
from presencebar.core.models import Command, ProtocolMessage


LINE_SEPARATOR = b"\n"
ENCODING = "utf-8"

log = logging.getLogger(__name__)


def encode_command(command: str, payload: Any = None) -> bytes:
    """
    Serializes one command into a single protocol line. Compact JSON never
    contains a raw line break, so the trailing separator is the only one.
    """

    message = {"type": "command", "command": command, "payload": payload}
    line = json.dumps(message, separators=(",", ":"), ensure_ascii=False)
    return line.encode(ENCODING) + LINE_SEPARATOR


def decode_command(line: bytes | str) -> Command:
    """Parses an encoded command line back into a Command."""

    text = line.decode(ENCODING) if isinstance(line, bytes) else line
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid command line: {e}") from e

    if not isinstance(data, dict) or data.get("type") != "command" or not isinstance(data.get("command"), str):
        raise DecodeError(f"Not a command message: {text.strip()}")
    return Command(command=data["command"], payload=data.get("payload"))


def parse_message(line: str) -> ProtocolMessage:
    """
    Parses one trimmed protocol line into a ProtocolMessage. The envelope must
    be a JSON object with a string `type`; a missing `payload` is read as null.
    """

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise DecodeError("Protocol message must be an object with a string 'type'")
    return ProtocolMessage(type=data["type"], payload=data.get("payload"), raw=line)


class LineDecoder:
    """
    Incremental decoder for the helper's stdout. Chunks may split a line
    anywhere (including inside a multi-byte character) or carry many lines;
    complete lines are emitted in order and the tail stays buffered.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[ProtocolMessage | str]:
        """
        Appends a chunk and returns every item completed by it. Parsed lines
        come back as ProtocolMessage; unparseable non-empty lines come back as
        their raw text. Blank lines are dropped.
        """

        self._buffer.extend(chunk)
        items: list[ProtocolMessage | str] = []

        while True:
            pos = self._buffer.find(LINE_SEPARATOR)
            if pos < 0:
                break
            raw = bytes(self._buffer[:pos])
            del self._buffer[: pos + 1]

            line = raw.decode(ENCODING, errors="replace").rstrip()
            if not line:
                continue
            try:
                items.append(parse_message(line))
            except DecodeError:
                log.debug(f"Passing through non-protocol line: {line!r}")
                items.append(line)

        return items
