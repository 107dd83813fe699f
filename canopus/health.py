"""Health probes for supervised services."""

from __future__ import annotations

import abc
import asyncio
import logging

from .models import CheckType, ExecCheck, HealthCheck, ReadinessCheck, TcpCheck

_log = logging.getLogger(__name__)


class HealthError(Exception):
    """Base class for health check failures."""


class ProbeTimeout(HealthError):
    """The probe did not complete within its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"timeout after {timeout:g}s")


class TcpProbeError(HealthError):
    """A TCP connection could not be established."""

    def __init__(self, error: OSError) -> None:
        self.error = error
        super().__init__(f"tcp connection failed: {error}")


class UnsupportedProbeType(HealthError):
    """The requested probe type has no implementation."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"unsupported probe type: {detail}")


class Probe(abc.ABC):
    """A health check that can be executed."""

    @abc.abstractmethod
    async def check(self) -> None:
        """Run the check; return normally on success, raise HealthError on failure."""


class TcpProbe(Probe):
    """Succeeds when a TCP connection to host:port can be opened in time."""

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    def address(self) -> str:
        """The target as ``host:port``."""
        return f"{self.host}:{self.port}"

    async def _connect(self) -> None:
        try:
            _reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as exc:
            _log.debug("TCP probe to %s failed: %s", self.address(), exc)
            raise TcpProbeError(exc) from exc
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    async def check(self) -> None:
        _log.debug("TCP probe connecting to %s", self.address())
        try:
            await asyncio.wait_for(self._connect(), self.timeout)
        except TimeoutError:
            _log.debug("TCP probe to %s timed out after %ss", self.address(), self.timeout)
            raise ProbeTimeout(self.timeout) from None
        _log.debug("TCP probe to %s succeeded", self.address())

    def __repr__(self) -> str:
        return f"TcpProbe(host={self.host!r}, port={self.port}, timeout={self.timeout})"


def create_probe(check_type: CheckType, timeout: float) -> Probe:
    """Build the probe for a configured check type."""
    match check_type:
        case TcpCheck(port=port):
            return TcpProbe("127.0.0.1", port, timeout)
        case ExecCheck():
            raise UnsupportedProbeType("Exec probes not yet implemented")
    raise UnsupportedProbeType(type(check_type).__name__)


async def run_probe(health_check: HealthCheck | ReadinessCheck) -> None:
    """Create and run the probe described by a health or readiness check."""
    probe = create_probe(health_check.check_type, health_check.timeout())
    await probe.check()