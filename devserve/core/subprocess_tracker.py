"""Tracks long-running child processes (tunnels) so they never outlive us.

Registered PIDs get SIGTERM when the interpreter exits.  The set is also
written to a PID file so a restart after a crash can reap the orphans.
"""
from __future__ import annotations

import atexit
import logging
import os
import signal
from pathlib import Path

logger = logging.getLogger(__name__)

PID_FILENAME = "subprocesses.pid"

_pids: set[int] = set()
_pid_file: Path | None = None


def configure(data_dir: str | Path) -> Path:
    """Persist tracked PIDs under *data_dir*. Returns the PID file path."""
    global _pid_file
    _pid_file = Path(data_dir) / PID_FILENAME
    return _pid_file


def track(pid: int) -> None:
    _pids.add(pid)
    _persist()


def untrack(pid: int) -> None:
    _pids.discard(pid)
    _persist()


def tracked() -> frozenset[int]:
    return frozenset(_pids)


def _terminate(pid: int) -> bool:
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return False
    except OSError as e:
        logger.debug("Could not signal PID %d: %s", pid, e)
        return False
    return True


def terminate_all() -> None:
    """SIGTERM every tracked PID and forget them."""
    for pid in sorted(_pids):
        if _terminate(pid):
            logger.debug("Sent SIGTERM to PID %d", pid)
    _pids.clear()
    _persist()


def reap_stale() -> int:
    """Terminate PIDs left in the PID file by a previous run.

    Returns the number of processes signalled.
    """
    if _pid_file is None or not _pid_file.exists():
        return 0
    try:
        lines = _pid_file.read_text().split()
    except OSError as e:
        logger.debug("Could not read %s: %s", _pid_file, e)
        return 0

    reaped = 0
    for token in lines:
        if token.isdigit() and _terminate(int(token)):
            logger.info("Terminated stale subprocess PID %s", token)
            reaped += 1
    _pid_file.unlink(missing_ok=True)
    return reaped


def _persist() -> None:
    if _pid_file is None:
        return
    try:
        _pid_file.parent.mkdir(parents=True, exist_ok=True)
        _pid_file.write_text("".join(f"{pid}\n" for pid in sorted(_pids)))
    except OSError as e:
        logger.debug("Could not write %s: %s", _pid_file, e)


# SIGKILL skips this; reap_stale() on the next start covers that case.
atexit.register(terminate_all)
