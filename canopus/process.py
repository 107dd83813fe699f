"""Child processes started in their own session so the whole tree can be signalled.

Each child is made a session and process-group leader, so its process-group
id equals its pid. Signals go to the group, which reaches any grandchildren
the service started too.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import time
from collections.abc import Sequence
from typing import IO

from .errors import ProcessSignalError, ProcessSpawnError, ProcessWaitError

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1
_KILL_TIMEOUT = 5.0


class ChildProcess:
    """A spawned process that leads its own process group.

    Exit statuses are return codes: zero or positive for a normal exit,
    ``-N`` when the process was ended by signal ``N``.
    """

    def __init__(self, popen: subprocess.Popen[bytes]) -> None:
        self._popen = popen
        self._pid = popen.pid

    def pid(self) -> int:
        """The process id."""
        return self._pid

    def pgid(self) -> int:
        """The process-group id, equal to the pid for a group leader."""
        return self._pid

    async def wait(self) -> int:
        """Wait for the process to exit without blocking the event loop."""
        try:
            return await asyncio.to_thread(self._popen.wait)
        except OSError as exc:
            raise ProcessWaitError(f"Failed to wait for process {self._pid}: {exc}") from exc

    def try_wait(self) -> int | None:
        """Return the exit status if the process has exited, else None."""
        try:
            return self._popen.poll()
        except OSError as exc:
            raise ProcessWaitError(
                f"Failed to try_wait for process {self._pid}: {exc}"
            ) from exc

    def take_stdout(self) -> IO[bytes] | None:
        """Hand over the piped stdout; None if it was already taken."""
        stream, self._popen.stdout = self._popen.stdout, None
        return stream

    def take_stderr(self) -> IO[bytes] | None:
        """Hand over the piped stderr; None if it was already taken."""
        stream, self._popen.stderr = self._popen.stderr, None
        return stream

    def __repr__(self) -> str:
        return f"ChildProcess(pid={self._pid}, returncode={self._popen.returncode})"


def spawn(cmd: str, args: Sequence[str] = ()) -> ChildProcess:
    """Start ``cmd`` with ``args`` in a new session, with stdout and stderr piped."""
    _log.debug("Spawning process: %s %s", cmd, list(args))
    try:
        popen = subprocess.Popen(
            [cmd, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        _log.error("Failed to spawn process '%s': %s", cmd, exc)
        raise ProcessSpawnError(f"Failed to spawn '{cmd}': {exc}") from exc
    _log.debug("Successfully spawned process %s in new process group", popen.pid)
    return ChildProcess(popen)


def _signal_group(child: ChildProcess, sig: signal.Signals) -> None:
    pgid = child.pgid()
    _log.debug("Sending %s to process group %s", sig.name, pgid)
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        _log.debug("Process group %s already exited", pgid)
    except PermissionError:
        _log.debug(
            "Permission denied signaling process group %s (likely already exited)", pgid
        )
    except OSError as exc:
        _log.error("Failed to send %s to process group %s: %s", sig.name, pgid, exc)
        raise ProcessSignalError(
            f"Failed to send {sig.name} to process group {pgid}: {exc}"
        ) from exc
    else:
        _log.debug("Successfully sent %s to process group %s", sig.name, pgid)


def signal_term_group(child: ChildProcess) -> None:
    """Send SIGTERM to the child's process group; a vanished group is not an error."""
    _signal_group(child, signal.SIGTERM)


def signal_kill_group(child: ChildProcess) -> None:
    """Send SIGKILL to the child's process group; a vanished group is not an error."""
    _signal_group(child, signal.SIGKILL)


def _poll_until(child: ChildProcess, timeout: float) -> int | None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = child.try_wait()
        if status is not None:
            return status
        time.sleep(_POLL_INTERVAL)
    return None


def terminate_with_timeout(child: ChildProcess, timeout: float) -> int:
    """SIGTERM the group, wait up to ``timeout`` seconds, then SIGKILL it.

    Returns the exit status; raises ProcessWaitError if the process survives
    SIGKILL for several more seconds.
    """
    signal_term_group(child)

    status = _poll_until(child, timeout)
    if status is not None:
        _log.debug("Process %s exited gracefully with status: %s", child.pid(), status)
        return status

    _log.warning(
        "Process %s did not exit gracefully within %ss, using SIGKILL", child.pid(), timeout
    )
    signal_kill_group(child)

    status = _poll_until(child, _KILL_TIMEOUT)
    if status is not None:
        _log.debug("Process %s exited after SIGKILL with status: %s", child.pid(), status)
        return status

    raise ProcessWaitError(
        f"Process {child.pid()} did not exit even after SIGKILL within {_KILL_TIMEOUT}s"
    )