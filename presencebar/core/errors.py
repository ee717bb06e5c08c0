class HelperError(Exception):
    """Base class for failures talking to the helper process."""


class SpawnError(HelperError):
    """The helper process could not be launched."""


class HelperWriteError(HelperError):
    """Writing a command to the helper's stdin failed."""


class DecodeError(HelperError):
    """A protocol line or payload did not match the expected schema."""


class NotRunningError(HelperError):
    """A command was requested while no helper process is active."""
