"""Proxy attach/detach interfaces with recording and no-op implementations."""

from __future__ import annotations

import abc
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachCall:
    """An attach operation for ``host`` to backend ``port``."""

    host: str
    port: int


@dataclass(frozen=True)
class DetachCall:
    """A detach operation for ``host``."""

    host: str


ProxyCall = AttachCall | DetachCall


class ProxyApi(abc.ABC):
    """Synchronous proxy control interface.

    Implementations must make both operations idempotent: attaching the same
    host twice, or detaching a host that is not attached, is not an error.
    """

    @abc.abstractmethod
    def attach(self, host: str, port: int) -> None:
        """Route ``host`` to ``port``."""

    @abc.abstractmethod
    def detach(self, host: str) -> None:
        """Stop routing ``host``."""


class NullProxy(ProxyApi):
    """A proxy that performs nothing but records every call and the attached hosts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: list[ProxyCall] = []
        self._attachments: set[str] = set()

    def attach(self, host: str, port: int) -> None:
        _log.info("NullProxy: Attaching proxy for %s:%s", host, port)
        with self._lock:
            self._calls.append(AttachCall(host, port))
            self._attachments.add(host)
        _log.debug("NullProxy: Successfully attached proxy for %s:%s", host, port)

    def detach(self, host: str) -> None:
        _log.info("NullProxy: Detaching proxy for %s", host)
        with self._lock:
            self._calls.append(DetachCall(host))
            self._attachments.discard(host)
        _log.debug("NullProxy: Successfully detached proxy for %s", host)

    def call_count(self) -> int:
        """Number of calls recorded so far."""
        with self._lock:
            return len(self._calls)

    def calls(self) -> list[ProxyCall]:
        """A copy of the recorded calls, in order."""
        with self._lock:
            return list(self._calls)

    def attachments(self) -> list[str]:
        """Currently attached hosts, sorted."""
        with self._lock:
            return sorted(self._attachments)

    def is_attached(self, host: str) -> bool:
        """Whether ``host`` is currently attached."""
        with self._lock:
            return host in self._attachments

    def reset(self) -> None:
        """Forget all recorded calls and attachments."""
        with self._lock:
            self._calls.clear()
            self._attachments.clear()


class ProxyAdapter(abc.ABC):
    """Asynchronous interface coupling the supervisor to a reverse proxy."""

    @abc.abstractmethod
    async def attach(self, host: str, port: int) -> None:
        """Route ``host`` to ``port``."""

    @abc.abstractmethod
    async def detach(self, host: str) -> None:
        """Stop routing ``host``."""


class NoopProxyAdapter(ProxyAdapter):
    """An adapter that does nothing; the default when no proxy is configured."""

    async def attach(self, host: str, port: int) -> None:
        return None

    async def detach(self, host: str) -> None:
        return None


class MockProxyAdapter(ProxyAdapter):
    """An adapter that records operations for later inspection."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._ops: list[ProxyCall] = []

    async def attach(self, host: str, port: int) -> None:
        async with self._lock:
            self._ops.append(AttachCall(host, port))

    async def detach(self, host: str) -> None:
        async with self._lock:
            self._ops.append(DetachCall(host))

    async def ops(self) -> list[ProxyCall]:
        """A copy of the recorded operations, in order."""
        async with self._lock:
            return list(self._ops)

    async def clear(self) -> None:
        """Forget all recorded operations."""
        async with self._lock:
            self._ops.clear()


_Api = TypeVar("_Api", bound=ProxyApi)


class ApiProxyAdapter(ProxyAdapter, Generic[_Api]):
    """An adapter that delegates to a synchronous ProxyApi."""

    def __init__(self, inner: _Api) -> None:
        self.inner = inner

    async def attach(self, host: str, port: int) -> None:
        self.inner.attach(host, port)

    async def detach(self, host: str) -> None:
        self.inner.detach(host)

    def __repr__(self) -> str:
        return f"ApiProxyAdapter({self.inner!r})"