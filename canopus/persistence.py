"""Versioned JSON snapshots of the service registry, written atomically."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import CoreIoError, SerializationError, ValidationError
from .models import ServiceSpec, ServiceState, current_timestamp

SNAPSHOT_VERSION = 1


@dataclass
class ServiceSnapshot:
    """Specification and last known state of one service."""

    id: str
    spec: ServiceSpec
    last_state: ServiceState
    last_pid: int | None = None

    def _to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "spec": self.spec.to_dict(),
            "lastState": self.last_state.value,
        }
        if self.last_pid is not None:
            result["lastPid"] = self.last_pid
        return result

    @classmethod
    def _from_dict(cls, data: Any) -> ServiceSnapshot:
        if not isinstance(data, Mapping):
            raise ValueError("services: expected an object")
        service_id = data.get("id")
        if not isinstance(service_id, str):
            raise ValueError("id: expected a string")
        if "spec" not in data:
            raise ValueError("missing field `spec`")
        spec = ServiceSpec.from_dict(data["spec"])
        raw_state = data.get("lastState")
        try:
            last_state = ServiceState(raw_state)
        except ValueError:
            raise ValueError(f"lastState: unknown variant `{raw_state}`") from None
        last_pid = data.get("lastPid")
        if last_pid is not None and (
            isinstance(last_pid, bool) or not isinstance(last_pid, int) or last_pid < 0
        ):
            raise ValueError("lastPid: expected a non-negative integer")
        return cls(id=service_id, spec=spec, last_state=last_state, last_pid=last_pid)


@dataclass
class RegistrySnapshot:
    """Full registry snapshot as stored on disk."""

    version: int = SNAPSHOT_VERSION
    timestamp: str = field(default_factory=current_timestamp)
    services: list[ServiceSnapshot] = field(default_factory=list)

    @classmethod
    def empty(cls) -> RegistrySnapshot:
        """A snapshot of the current version with no services."""
        return cls(version=SNAPSHOT_VERSION, timestamp=current_timestamp(), services=[])

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready camelCase representation."""
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "services": [svc._to_dict() for svc in self.services],
        }

    @classmethod
    def from_dict(cls, data: Any) -> RegistrySnapshot:
        """Build a snapshot from its JSON representation; raises ValueError on bad structure."""
        if not isinstance(data, Mapping):
            raise ValueError("snapshot: expected an object")
        version = data.get("version")
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise ValueError("version: expected a non-negative integer")
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, str):
            raise ValueError("timestamp: expected a string")
        services = data.get("services")
        if not isinstance(services, list):
            raise ValueError("services: expected an array")
        return cls(
            version=version,
            timestamp=timestamp,
            services=[ServiceSnapshot._from_dict(item) for item in services],
        )


def default_snapshot_path() -> Path:
    """Where the snapshot lives by default.

    ``CANOPUS_STATE_FILE`` if set, else ``~/.canopus/state.json``,
    else ``canopus_state.json`` in the working directory.
    """
    override = os.environ.get("CANOPUS_STATE_FILE")
    if override is not None:
        return Path(override)
    try:
        home = Path.home()
    except (RuntimeError, KeyError):
        return Path("canopus_state.json")
    return home / ".canopus" / "state.json"


def load_snapshot(path: str | Path) -> RegistrySnapshot:
    """Read and validate a snapshot; raises so callers can fall back to a clean state."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise CoreIoError(f"Failed to read snapshot {path}: {exc}") from exc

    try:
        snap = RegistrySnapshot.from_dict(json.loads(text))
    except ValueError as exc:
        raise SerializationError(str(exc)) from exc

    if snap.version != SNAPSHOT_VERSION:
        raise ValidationError(
            f"Unsupported snapshot version {snap.version} (expected {SNAPSHOT_VERSION})"
        )
    return snap


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def write_snapshot_atomic(path: str | Path, snap: RegistrySnapshot) -> None:
    """Write ``snap`` to a temporary file beside ``path``, sync it and rename it into place."""
    path = Path(path)
    parent = path.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CoreIoError(f"Failed to create snapshot dir {parent}: {exc}") from exc

    tmp_path = path.with_suffix(".json.tmp")
    try:
        payload = json.dumps(snap.to_dict(), indent=2).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc

    try:
        with tmp_path.open("wb") as fh:
            fh.write(payload)
            fh.flush()
            try:
                os.fsync(fh.fileno())
            except OSError:
                pass
    except OSError as exc:
        raise CoreIoError(f"Failed to write temp snapshot {tmp_path}: {exc}") from exc

    try:
        os.replace(tmp_path, path)
    except OSError as exc:
        raise CoreIoError(
            f"Failed to replace snapshot {path} with {tmp_path}: {exc}"
        ) from exc

    _fsync_dir(parent)