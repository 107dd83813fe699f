"""Deterministic, race-safe TCP port reservation.

Ports are probed by actually binding a listener, and every reservation is
recorded in an in-process table so that two callers in the same process never
receive the same port.
"""

from __future__ import annotations

import errno
import itertools
import logging
import os
import socket
import threading
import time
from dataclasses import dataclass
from typing import Iterator

from .errors import CoreIoError, NoAvailablePort, PortInUse

_log = logging.getLogger(__name__)

DEFAULT_PORT_RANGE_START = 30_000
"""First port of the default automatic allocation range."""

DEFAULT_PORT_RANGE_END = 60_000
"""End (exclusive) of the default automatic allocation range."""

MAX_ALLOCATION_ATTEMPTS = 1000
"""Maximum number of ports tried before giving up."""

_U64_MODULUS = 2**64


@dataclass(frozen=True)
class ReservationMeta:
    """Who reserved a port and when."""

    pid: int
    thread_id: int
    timestamp: int


_reservations: dict[int, ReservationMeta] = {}
_reservations_lock = threading.Lock()

_thread_counter = itertools.count()
_thread_counter_lock = threading.Lock()
_thread_local = threading.local()


def _thread_id() -> int:
    """A small identifier assigned to each thread on first use."""
    ident = getattr(_thread_local, "ident", None)
    if ident is None:
        with _thread_counter_lock:
            ident = next(_thread_counter)
        _thread_local.ident = ident
    return ident


def release_port(port: int) -> None:
    """Remove the in-process reservation for ``port``, if there is one."""
    with _reservations_lock:
        removed = _reservations.pop(port, None)
    if removed is not None:
        _log.debug("Explicitly released port %s", port)


def reservations() -> dict[int, ReservationMeta]:
    """A copy of the current in-process reservation table."""
    with _reservations_lock:
        return dict(_reservations)


def clear_reservations() -> None:
    """Forget every in-process reservation."""
    with _reservations_lock:
        _reservations.clear()


class PortGuard:
    """Holds a reserved port and its bound listener until released.

    Use as a context manager, or call :meth:`release`; the reservation is also
    dropped when the guard is garbage-collected.
    """

    def __init__(self, port: int, listener: socket.socket) -> None:
        self.port = port
        self._listener: socket.socket | None = listener

    def addr(self) -> tuple[str, int]:
        """The ``(host, port)`` address the listener is bound to."""
        if self._listener is None:
            raise CoreIoError(f"Port {self.port} has already been released")
        try:
            host, port = self._listener.getsockname()[:2]
        except OSError as exc:
            raise CoreIoError(str(exc)) from exc
        return host, port

    def release(self) -> None:
        """Close the listener and drop the reservation; safe to call more than once."""
        listener, self._listener = self._listener, None
        if listener is None:
            return
        listener.close()
        release_port(self.port)
        _log.debug("Released port %s", self.port)

    def __enter__(self) -> PortGuard:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()

    def __del__(self) -> None:
        try:
            self.release()
        except Exception:  # interpreter shutdown may have torn down globals
            pass

    def __repr__(self) -> str:
        state = "released" if self._listener is None else "held"
        return f"PortGuard(port={self.port}, {state})"


@dataclass(frozen=True)
class PortAllocator:
    """Reserves ports, trying a preferred one first and then a deterministic sequence."""

    range_start: int = DEFAULT_PORT_RANGE_START
    range_end: int = DEFAULT_PORT_RANGE_END

    def reserve(self, preferred: int | None = None) -> PortGuard:
        """Reserve ``preferred`` if free, otherwise the first free port of the sequence.

        Raises NoAvailablePort when the attempt budget or the range is exhausted.
        """
        attempts = 0

        if preferred is not None:
            attempts += 1
            try:
                guard = self.try_reserve_port(preferred)
            except PortInUse:
                _log.debug(
                    "Preferred port %s is already in use, falling back to sequence", preferred
                )
            else:
                _log.debug("Successfully reserved preferred port %s", preferred)
                return guard

        for port in self.port_sequence():
            if attempts >= MAX_ALLOCATION_ATTEMPTS:
                break
            attempts += 1
            try:
                guard = self.try_reserve_port(port)
            except PortInUse:
                continue
            _log.debug("Successfully reserved port %s after %s attempts", port, attempts)
            return guard

        raise NoAvailablePort(attempts)

    def try_reserve_port(self, port: int) -> PortGuard:
        """Reserve exactly ``port``; raises PortInUse if it is taken here or by the OS."""
        with _reservations_lock:
            if port in _reservations:
                raise PortInUse(port)

        listener = _bind_listener(port)

        meta = ReservationMeta(pid=os.getpid(), thread_id=_thread_id(), timestamp=int(time.time()))
        with _reservations_lock:
            if port in _reservations:
                raced = True
            else:
                _reservations[port] = meta
                raced = False
        if raced:
            _log.warning("Race condition detected for port %s, releasing", port)
            listener.close()
            raise PortInUse(port)

        return PortGuard(port, listener)

    def port_sequence(self) -> Iterator[int]:
        """Every port of the range once, starting at an offset fixed by process and thread."""
        range_size = self.range_end - self.range_start
        if range_size <= 0:
            return
        start_offset = self._seed() % range_size
        for i in range(range_size):
            yield self.range_start + (start_offset + i) % range_size

    @staticmethod
    def _seed() -> int:
        return (os.getpid() * 31 + _thread_id()) % _U64_MODULUS


def _bind_listener(port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("0.0.0.0", port))
        sock.listen()
    except OSError as exc:
        sock.close()
        if exc.errno == errno.EADDRINUSE:
            raise PortInUse(port) from exc
        raise CoreIoError(str(exc)) from exc
    except OverflowError as exc:
        sock.close()
        raise CoreIoError(str(exc)) from exc
    return sock