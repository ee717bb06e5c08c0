from dataclasses import dataclass, field
from typing import Any

from presencebar.core.errors import DecodeError


# Accent colours the helper understands for `theme`; anything else is passed through untouched
THEME_COLORS = ("cyan", "red", "green", "purple", "orange")
DEFAULT_THEME = "cyan"


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    raise DecodeError(f"'{key}' must be a string, got {type(value).__name__}")


def _optional_number(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    # bool is an int subclass but never a valid number on the wire
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"'{key}' must be a number, got {type(value).__name__}")
    return value


def _require_object(payload: Any, name: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise DecodeError(f"{name} payload must be an object, got {type(payload).__name__}")
    return payload


@dataclass(frozen=True)
class TrackStatus:
    playing: bool
    reason: str | None = None
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    cover_url: str | None = None
    source: str | None = None
    position_ms: float | None = None
    duration_ms: float | None = None
    track_id: str | None = None
    file_path: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TrackStatus":
        """
        Builds a TrackStatus from a decoded JSON payload using the helper's
        camelCase field names. Raises DecodeError on any schema mismatch.
        """

        data = _require_object(payload, "status")
        playing = data.get("playing")
        if not isinstance(playing, bool):
            raise DecodeError("'playing' is required and must be a boolean")

        return cls(
            playing=playing,
            reason=_optional_str(data, "reason"),
            title=_optional_str(data, "title"),
            artist=_optional_str(data, "artist"),
            album=_optional_str(data, "album"),
            cover_url=_optional_str(data, "coverUrl"),
            source=_optional_str(data, "source"),
            position_ms=_optional_number(data, "positionMs"),
            duration_ms=_optional_number(data, "durationMs"),
            track_id=_optional_str(data, "trackId"),
            file_path=_optional_str(data, "filePath"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "playing": self.playing,
            "reason": self.reason,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "coverUrl": self.cover_url,
            "source": self.source,
            "positionMs": self.position_ms,
            "durationMs": self.duration_ms,
            "trackId": self.track_id,
            "filePath": self.file_path,
        }

    def display_text(self) -> str:
        """One-line summary used by the tray menu and tooltip."""

        if not self.title:
            return self.reason or "Nothing playing"
        text = f"{self.title} - {self.artist}" if self.artist else self.title
        return text if self.playing else f"{text} (paused)"


@dataclass(frozen=True)
class AppConfig:
    music_folders: tuple[str, ...] = field(default_factory=tuple)
    discord_client_id: str | None = None
    copyparty_api_key: str | None = None
    copyparty_url: str | None = None
    copyparty_path: str | None = None
    theme: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "AppConfig":
        """
        Builds an AppConfig from the helper's config payload. `musicFolders`
        is required and must be a list of strings.
        """

        data = _require_object(payload, "config")
        folders = data.get("musicFolders")
        if not isinstance(folders, list) or not all(isinstance(f, str) for f in folders):
            raise DecodeError("'musicFolders' is required and must be a list of strings")

        return cls(
            music_folders=tuple(folders),
            discord_client_id=_optional_str(data, "discordClientId"),
            copyparty_api_key=_optional_str(data, "copypartyApiKey"),
            copyparty_url=_optional_str(data, "copypartyUrl"),
            copyparty_path=_optional_str(data, "copypartyPath"),
            theme=_optional_str(data, "theme"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "musicFolders": list(self.music_folders),
            "discordClientId": self.discord_client_id,
            "copypartyApiKey": self.copyparty_api_key,
            "copypartyUrl": self.copyparty_url,
            "copypartyPath": self.copyparty_path,
            "theme": self.theme,
        }


@dataclass(frozen=True)
class ProtocolMessage:
    type: str
    payload: Any = None
    raw: str = ""


@dataclass(frozen=True)
class Command:
    command: str
    payload: Any = None
    type: str = "command"
