"""Bounded in-memory log storage with drop counting and sequence-based tailing."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace

from .models import LogStream, current_timestamp

_SEQ_MODULUS = 2**64
_U64_MAX = _SEQ_MODULUS - 1


@dataclass(frozen=True)
class LogEntry:
    """A single line captured from a service's stdout or stderr."""

    stream: LogStream
    content: str
    timestamp: str = field(default_factory=current_timestamp)
    seq: int = 0


class LogRing:
    """Keeps the most recent log entries up to a fixed capacity.

    When full, the oldest entry is evicted and the drop counter grows.
    Every pushed entry receives the next sequence number.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("LogRing capacity must be > 0")
        self.capacity = capacity
        self._total_dropped = 0
        self._next_seq = 0
        self._entries: deque[LogEntry] = deque()

    def push(self, entry: LogEntry) -> LogEntry:
        """Store a copy of ``entry`` stamped with the next sequence number and return it."""
        stamped = replace(entry, seq=self._next_seq)
        self._next_seq = (self._next_seq + 1) % _SEQ_MODULUS

        if len(self._entries) == self.capacity:
            self._entries.popleft()
            self._total_dropped = min(self._total_dropped + 1, _U64_MAX)
        self._entries.append(stamped)
        return stamped

    def __len__(self) -> int:
        return len(self._entries)

    def total_dropped(self) -> int:
        """Number of entries evicted because the ring was full."""
        return self._total_dropped

    def next_seq(self) -> int:
        """Sequence number the next pushed entry will receive."""
        return self._next_seq

    def snapshot(self) -> tuple[int, list[LogEntry]]:
        """Return the next sequence number and a copy of the retained entries."""
        return self._next_seq, list(self._entries)

    def iter_after(self, after_seq: int) -> list[LogEntry]:
        """Return retained entries whose sequence number is greater than ``after_seq``."""
        return [entry for entry in self._entries if entry.seq > after_seq]