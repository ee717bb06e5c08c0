import logging
import os
import time

import psutil


DEFAULT_SETTLE_SECONDS = 0.1

log = logging.getLogger(__name__)


def _matches(proc: psutil.Process, process_name: str) -> bool:
    info = proc.info  # pyright: ignore[reportAttributeAccessIssue, reportUnknownMemberType]
    if info.get("name") == process_name:
        return True
    cmdline = info.get("cmdline") or []
    return any(process_name in os.path.basename(arg) for arg in cmdline)


def find_orphans(process_name: str) -> list[psutil.Process]:
    """Lists running processes that look like a helper instance, excluding ourselves."""

    own_pid = os.getpid()
    found: list[psutil.Process] = []
    for proc in psutil.process_iter(["name", "cmdline"]):
        if proc.pid == own_pid:
            continue
        try:
            if _matches(proc, process_name):
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return found


def sweep_orphans(process_name: str, settle_seconds: float = DEFAULT_SETTLE_SECONDS) -> int:
    """
    Kills stray helper processes left behind by a previous app instance, then
    waits a short settle interval so their resources (e.g. a presence client
    connection) are released before a new helper starts. Best effort: safe to
    call when nothing matches. Returns the number of processes killed.
    """

    killed = 0
    for proc in find_orphans(process_name):
        try:
            proc.kill()
            killed += 1
            log.info(f"Killed orphaned helper process {proc.pid}")
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            log.debug(f"Could not kill process {proc.pid}: {e}")

    time.sleep(settle_seconds)
    return killed
