# pyright: reportAny=false, reportUnknownMemberType=false

import logging
import os
import shutil
import sys
from dataclasses import dataclass, field

import toml

from presencebar.core.orphans import DEFAULT_SETTLE_SECONDS
from presencebar.core.supervisor import HELPER_PROCESS_NAME


APP_NAME = "PresenceBar"
SETTINGS_FILE_NAME = "settings.toml"
LOG_FILE_NAME = "presencebar.log"
HELPER_ENV_VAR = "PRESENCEBAR_HELPER"
LOG_LEVEL_ENV_VAR = "PRESENCEBAR_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

log = logging.getLogger(__name__)


@dataclass
class HelperSettings:
    executable: str = ""
    args: list[str] = field(default_factory=list)
    process_name: str = HELPER_PROCESS_NAME
    settle_ms: int = int(DEFAULT_SETTLE_SECONDS * 1000)
    auto_start: bool = True


@dataclass
class LoggingSettings:
    level: str = DEFAULT_LOG_LEVEL


@dataclass
class Settings:
    helper: HelperSettings
    logging: LoggingSettings
    app_directory: str
    data_directory: str
    config_path: str

    @property
    def log_path(self) -> str:
        return os.path.join(self.data_directory, LOG_FILE_NAME)

    @property
    def log_level(self) -> int:
        name = os.environ.get(LOG_LEVEL_ENV_VAR) or self.logging.level
        level = logging.getLevelName(name.strip().upper())
        return level if isinstance(level, int) else logging.INFO


def user_data_dir() -> str:
    home = os.path.expanduser("~")
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA", os.path.join(home, "AppData", "Roaming"))
    else:
        base = os.environ.get("XDG_CONFIG_HOME", os.path.join(home, ".config"))
    return os.path.join(base, APP_NAME)


def get_default_settings() -> Settings:
    app_directory = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
    data_directory = user_data_dir()

    return Settings(
        helper=HelperSettings(),
        logging=LoggingSettings(),
        app_directory=app_directory,
        data_directory=data_directory,
        config_path=os.path.join(data_directory, SETTINGS_FILE_NAME),
    )


def save_settings(settings: Settings):
    settings_to_save = {
        "helper": {
            "executable": settings.helper.executable,
            "args": settings.helper.args,
            "process_name": settings.helper.process_name,
            "settle_ms": settings.helper.settle_ms,
            "auto_start": settings.helper.auto_start,
        },
        "logging": {
            "level": settings.logging.level,
        },
    }

    try:
        os.makedirs(os.path.dirname(settings.config_path), exist_ok=True)
        with open(settings.config_path, "w") as f:
            _ = toml.dump(settings_to_save, f)
    except (IOError, OSError) as e:
        log.error(f"Failed to save settings to {settings.config_path}: {e}")


def load_settings(config_path: str | None = None) -> Settings:
    """
    Loads settings from the user's file, falling back to defaults for any
    missing or invalid values. Creates the file if it doesn't exist.
    """

    settings = get_default_settings()
    if config_path:
        settings.config_path = config_path
        settings.data_directory = os.path.dirname(config_path)

    if not os.path.exists(settings.config_path):
        save_settings(settings)
        return settings

    try:
        with open(settings.config_path, "r") as f:
            user_settings = toml.load(f)
    except toml.TomlDecodeError as e:
        log.warning(f"Failed to decode settings file, using defaults. Error: {e}")
        return settings

    helper_section = user_settings.get("helper", {})
    if isinstance(helper_section, dict):
        try:
            helper = settings.helper
            helper.executable = str(helper_section.get("executable", helper.executable))
            helper.process_name = str(helper_section.get("process_name", helper.process_name)) or HELPER_PROCESS_NAME
            helper.settle_ms = max(0, int(helper_section.get("settle_ms", helper.settle_ms)))
            helper.auto_start = bool(helper_section.get("auto_start", helper.auto_start))
            args = helper_section.get("args", helper.args)
            if not isinstance(args, list):
                raise TypeError("'args' must be a list")
            helper.args = [str(arg) for arg in args]
        except (ValueError, TypeError):
            log.warning("Invalid value in 'helper' section of settings, using defaults for affected keys.")

    logging_section = user_settings.get("logging", {})
    if isinstance(logging_section, dict):
        settings.logging.level = str(logging_section.get("level", settings.logging.level))

    return settings


def resolve_helper_command(settings: Settings) -> list[str]:
    """
    Locates the helper executable: environment override, then the settings
    file, then a bundled copy under <app dir>/bin, then PATH. Falls back to
    the bare process name so that a missing helper shows up as a spawn
    failure rather than a crash.
    """

    name = settings.helper.process_name
    executable = os.environ.get(HELPER_ENV_VAR) or settings.helper.executable

    if not executable:
        bundled = os.path.join(settings.app_directory, "bin", name)
        if sys.platform.startswith("win"):
            bundled += ".exe"
        if os.path.isfile(bundled):
            executable = bundled
        else:
            executable = shutil.which(name) or name

    return [executable, *settings.helper.args]
