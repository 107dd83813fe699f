"""Process adapters that let the supervisor drive real or simulated processes."""

from __future__ import annotations

import abc
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import IO

from . import process
from .models import ServiceExit, ServiceSpec, current_timestamp

_log = logging.getLogger(__name__)

_SIGKILL = 9
_SIGTERM = 15
_MOCK_POLL_INTERVAL = 0.01


class ManagedProcess(abc.ABC):
    """A running process the supervisor can wait on, signal and read from."""

    @abc.abstractmethod
    def pid(self) -> int:
        """The process id."""

    @abc.abstractmethod
    async def wait(self) -> ServiceExit:
        """Wait for the process to exit and describe how it ended."""

    @abc.abstractmethod
    async def terminate(self) -> None:
        """Ask the process to stop (SIGTERM)."""

    @abc.abstractmethod
    async def kill(self) -> None:
        """Stop the process forcefully (SIGKILL)."""

    @abc.abstractmethod
    def is_alive(self) -> bool:
        """Whether the process is believed to still be running."""

    @abc.abstractmethod
    def take_stdout(self) -> IO[bytes] | None:
        """Hand over the process's stdout; None if not piped or already taken."""

    @abc.abstractmethod
    def take_stderr(self) -> IO[bytes] | None:
        """Hand over the process's stderr; None if not piped or already taken."""


class ProcessAdapter(abc.ABC):
    """Starts managed processes from service specifications."""

    @abc.abstractmethod
    async def spawn(self, spec: ServiceSpec) -> ManagedProcess:
        """Start a process for ``spec``."""


class UnixManagedProcess(ManagedProcess):
    """A real child process leading its own process group."""

    def __init__(self, child: process.ChildProcess) -> None:
        self._child = child

    def pid(self) -> int:
        return self._child.pid()

    async def wait(self) -> ServiceExit:
        status = await self._child.wait()
        if status >= 0:
            exit_code, sig = status, None
        else:
            exit_code, sig = None, -status
        return ServiceExit(
            pid=self.pid(), exit_code=exit_code, signal=sig, timestamp=current_timestamp()
        )

    async def terminate(self) -> None:
        process.signal_term_group(self._child)

    async def kill(self) -> None:
        process.signal_kill_group(self._child)

    def is_alive(self) -> bool:
        # Liveness is only established by an explicit wait.
        return True

    def take_stdout(self) -> IO[bytes] | None:
        return self._child.take_stdout()

    def take_stderr(self) -> IO[bytes] | None:
        return self._child.take_stderr()

    def __repr__(self) -> str:
        return f"UnixManagedProcess({self._child!r})"


class UnixProcessAdapter(ProcessAdapter):
    """Spawns real processes, each in a new session."""

    async def spawn(self, spec: ServiceSpec) -> ManagedProcess:
        _log.debug("Spawning Unix process: %s %s", spec.command, spec.args)
        child = process.spawn(spec.command, list(spec.args))
        return UnixManagedProcess(child)

    def __repr__(self) -> str:
        return "UnixProcessAdapter()"


@dataclass(frozen=True)
class MockInstruction:
    """How a simulated process behaves."""

    exit_delay: float = 0.1
    """Seconds before the process exits on its own."""
    exit_code: int | None = 0
    """Exit code reported on a natural exit; None means killed by signal."""
    signal: int | None = None
    """Signal reported on a natural exit."""
    responds_to_signals: bool = True
    """Whether terminate and kill are reflected in the reported exit."""


class _PidGenerator:
    """Linear congruential generator for fake process ids."""

    def __init__(self) -> None:
        self._seed = 1
        self._lock = threading.Lock()

    def next_pid(self) -> int:
        with self._lock:
            self._seed = (self._seed * 1103515245 + 12345) % 2**32
            value = self._seed
        return value % 65536 + 1000


_pids = _PidGenerator()


class MockManagedProcess(ManagedProcess):
    """A simulated process driven by a MockInstruction."""

    def __init__(self, pid: int, instruction: MockInstruction) -> None:
        self._pid = pid
        self.instruction = instruction
        self._started_at = time.monotonic()
        self._terminated = False
        self._killed = False

    def _should_exit(self) -> bool:
        if self._killed or self._terminated:
            return True
        return time.monotonic() - self._started_at >= self.instruction.exit_delay

    def _create_exit(self) -> ServiceExit:
        responds = self.instruction.responds_to_signals
        if self._killed and responds:
            exit_code, sig = None, _SIGKILL
        elif self._terminated and responds:
            exit_code, sig = None, _SIGTERM
        else:
            exit_code, sig = self.instruction.exit_code, self.instruction.signal
        return ServiceExit(
            pid=self._pid, exit_code=exit_code, signal=sig, timestamp=current_timestamp()
        )

    def pid(self) -> int:
        return self._pid

    async def wait(self) -> ServiceExit:
        while not self._should_exit():
            await asyncio.sleep(_MOCK_POLL_INTERVAL)
        return self._create_exit()

    async def terminate(self) -> None:
        _log.debug("Terminating mock process %s", self._pid)
        self._terminated = True

    async def kill(self) -> None:
        _log.debug("Killing mock process %s", self._pid)
        self._killed = True

    def is_alive(self) -> bool:
        return not self._should_exit()

    def take_stdout(self) -> IO[bytes] | None:
        return None

    def take_stderr(self) -> IO[bytes] | None:
        return None

    def __repr__(self) -> str:
        return f"MockManagedProcess(pid={self._pid}, instruction={self.instruction!r})"


class MockProcessAdapter(ProcessAdapter):
    """Spawns simulated processes, consuming queued instructions in order.

    When the queue is empty each process gets the default MockInstruction.
    """

    def __init__(self) -> None:
        self._instructions: list[MockInstruction] = []
        self._lock = asyncio.Lock()

    async def add_instruction(self, instruction: MockInstruction) -> None:
        """Queue behaviour for the next spawned process."""
        async with self._lock:
            self._instructions.append(instruction)

    async def set_instructions(self, instructions: list[MockInstruction]) -> None:
        """Replace the whole instruction queue."""
        async with self._lock:
            self._instructions = list(instructions)

    @classmethod
    def success(cls) -> MockProcessAdapter:
        """An adapter whose next process exits quickly with code 0."""
        adapter = cls()
        adapter._instructions = [MockInstruction(exit_delay=0.05, exit_code=0)]
        return adapter

    @classmethod
    def failure(cls) -> MockProcessAdapter:
        """An adapter whose next process exits quickly with code 1."""
        adapter = cls()
        adapter._instructions = [MockInstruction(exit_delay=0.05, exit_code=1)]
        return adapter

    @classmethod
    def slow_start(cls) -> MockProcessAdapter:
        """An adapter whose next process runs for five seconds."""
        adapter = cls()
        adapter._instructions = [MockInstruction(exit_delay=5.0, exit_code=0)]
        return adapter

    async def spawn(self, spec: ServiceSpec) -> ManagedProcess:
        _log.debug("Spawning mock process for: %s %s", spec.command, spec.args)
        async with self._lock:
            instruction = self._instructions.pop(0) if self._instructions else MockInstruction()
        return MockManagedProcess(_pids.next_pid(), instruction)

    def __repr__(self) -> str:
        return f"MockProcessAdapter(pending={len(self._instructions)})"