"""Service specification types shared by configuration, supervision and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping

_MISSING: Any = object()


def current_timestamp() -> str:
    """Return the current UTC time as an RFC 3339 string with seconds precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class RestartPolicy(StrEnum):
    """When a supervised service is restarted after it exits."""

    ALWAYS = "always"
    ON_FAILURE = "onFailure"
    NEVER = "never"


class ServiceState(StrEnum):
    """Lifecycle state of a supervised service."""

    IDLE = "idle"
    SPAWNING = "spawning"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"

    def is_ready(self) -> bool:
        """Whether the service is ready to serve."""
        return self is ServiceState.READY


class LogStream(StrEnum):
    """Output stream a log line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


def _get(data: Mapping[str, Any], key: str, default: Any) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise ValueError(f"missing field `{key}`")
        return default
    return value


def _get_str(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> Any:
    value = _get(data, key, default)
    if value is not default and not isinstance(value, str):
        raise ValueError(f"{key}: expected a string")
    return value


def _get_int(
    data: Mapping[str, Any], key: str, default: Any = _MISSING, maximum: int | None = None
) -> int:
    value = _get(data, key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer")
    if value < 0 or (maximum is not None and value > maximum):
        raise ValueError(f"{key}: integer {value} out of range")
    return value


def _get_float(data: Mapping[str, Any], key: str, default: float) -> float:
    value = _get(data, key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key}: expected a number")
    return float(value)


def _get_str_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = _get(data, key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key}: expected a list of strings")
    return list(value)


def _get_mapping(data: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError(f"{key}: expected a table")
    return value


@dataclass
class BackoffConfig:
    """Exponential backoff settings for restarts."""

    base_delay_secs: int = 1
    multiplier: float = 2.0
    max_delay_secs: int = 60
    jitter: float = 0.1

    def _to_dict(self) -> dict[str, Any]:
        return {
            "baseDelaySecs": self.base_delay_secs,
            "multiplier": self.multiplier,
            "maxDelaySecs": self.max_delay_secs,
            "jitter": self.jitter,
        }

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> BackoffConfig:
        defaults = cls()
        return cls(
            base_delay_secs=_get_int(data, "baseDelaySecs", defaults.base_delay_secs),
            multiplier=_get_float(data, "multiplier", defaults.multiplier),
            max_delay_secs=_get_int(data, "maxDelaySecs", defaults.max_delay_secs),
            jitter=_get_float(data, "jitter", defaults.jitter),
        )


@dataclass(frozen=True)
class TcpCheck:
    """Probe that succeeds when a TCP connection to the port can be opened."""

    port: int


@dataclass(frozen=True)
class ExecCheck:
    """Probe that runs a command."""

    command: str
    args: list[str] = field(default_factory=list)


CheckType = TcpCheck | ExecCheck


def _check_type_to_dict(check: CheckType) -> dict[str, Any]:
    match check:
        case TcpCheck(port=port):
            return {"type": "tcp", "port": port}
        case ExecCheck(command=command, args=args):
            return {"type": "exec", "command": command, "args": list(args)}
    raise TypeError(f"unknown check type: {check!r}")


def _check_type_from_dict(data: Any) -> CheckType:
    if not isinstance(data, Mapping):
        raise ValueError("checkType: expected a table")
    match data.get("type"):
        case "tcp":
            return TcpCheck(port=_get_int(data, "port", maximum=65535))
        case "exec":
            return ExecCheck(command=_get_str(data, "command"), args=_get_str_list(data, "args"))
        case other:
            raise ValueError(f"checkType: unknown variant `{other}`")


@dataclass
class HealthCheck:
    """Liveness probe configuration."""

    check_type: CheckType
    interval_secs: int = 30
    timeout_secs: int = 5
    failure_threshold: int = 3
    success_threshold: int = 1

    def timeout(self) -> float:
        """Probe timeout in seconds."""
        return float(self.timeout_secs)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "checkType": _check_type_to_dict(self.check_type),
            "intervalSecs": self.interval_secs,
            "timeoutSecs": self.timeout_secs,
            "failureThreshold": self.failure_threshold,
            "successThreshold": self.success_threshold,
        }

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> HealthCheck:
        check_type = _check_type_from_dict(_get(data, "checkType", _MISSING))
        defaults = cls(check_type)
        return cls(
            check_type=check_type,
            interval_secs=_get_int(data, "intervalSecs", defaults.interval_secs),
            timeout_secs=_get_int(data, "timeoutSecs", defaults.timeout_secs),
            failure_threshold=_get_int(data, "failureThreshold", defaults.failure_threshold),
            success_threshold=_get_int(data, "successThreshold", defaults.success_threshold),
        )


@dataclass
class ReadinessCheck:
    """Readiness probe configuration."""

    check_type: CheckType
    interval_secs: int = 5
    timeout_secs: int = 5
    success_threshold: int = 1

    def timeout(self) -> float:
        """Probe timeout in seconds."""
        return float(self.timeout_secs)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "checkType": _check_type_to_dict(self.check_type),
            "intervalSecs": self.interval_secs,
            "timeoutSecs": self.timeout_secs,
            "successThreshold": self.success_threshold,
        }

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> ReadinessCheck:
        check_type = _check_type_from_dict(_get(data, "checkType", _MISSING))
        defaults = cls(check_type)
        return cls(
            check_type=check_type,
            interval_secs=_get_int(data, "intervalSecs", defaults.interval_secs),
            timeout_secs=_get_int(data, "timeoutSecs", defaults.timeout_secs),
            success_threshold=_get_int(data, "successThreshold", defaults.success_threshold),
        )


@dataclass
class ServiceSpec:
    """Full description of a supervised service."""

    id: str
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    route: str | None = None
    restart_policy: RestartPolicy = RestartPolicy.ALWAYS
    backoff_config: BackoffConfig = field(default_factory=BackoffConfig)
    health_check: HealthCheck | None = None
    readiness_check: ReadinessCheck | None = None
    graceful_timeout_secs: int = 30
    startup_timeout_secs: int = 60

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceSpec:
        """Build a spec from a camelCase mapping; raises ValueError on bad input."""
        if not isinstance(data, Mapping):
            raise ValueError("service: expected a table")

        environment = _get(data, "environment", {})
        if not isinstance(environment, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in environment.items()
        ):
            raise ValueError("environment: expected a table of strings")

        policy_raw = _get_str(data, "restartPolicy", RestartPolicy.ALWAYS.value)
        try:
            restart_policy = RestartPolicy(policy_raw)
        except ValueError:
            raise ValueError(f"restartPolicy: unknown variant `{policy_raw}`") from None

        backoff = _get_mapping(data, "backoffConfig")
        health = _get_mapping(data, "healthCheck")
        readiness = _get_mapping(data, "readinessCheck")

        return cls(
            id=_get_str(data, "id"),
            name=_get_str(data, "name"),
            command=_get_str(data, "command"),
            args=_get_str_list(data, "args"),
            environment=dict(environment),
            working_directory=_get_str(data, "workingDirectory", None),
            route=_get_str(data, "route", None),
            restart_policy=restart_policy,
            backoff_config=BackoffConfig._from_dict(backoff) if backoff else BackoffConfig(),
            health_check=HealthCheck._from_dict(health) if health is not None else None,
            readiness_check=(
                ReadinessCheck._from_dict(readiness) if readiness is not None else None
            ),
            graceful_timeout_secs=_get_int(data, "gracefulTimeoutSecs", 30),
            startup_timeout_secs=_get_int(data, "startupTimeoutSecs", 60),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a camelCase mapping; optional fields that are unset are omitted."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "environment": dict(self.environment),
            "restartPolicy": self.restart_policy.value,
            "backoffConfig": self.backoff_config._to_dict(),
            "gracefulTimeoutSecs": self.graceful_timeout_secs,
            "startupTimeoutSecs": self.startup_timeout_secs,
        }
        if self.working_directory is not None:
            result["workingDirectory"] = self.working_directory
        if self.route is not None:
            result["route"] = self.route
        if self.health_check is not None:
            result["healthCheck"] = self.health_check._to_dict()
        if self.readiness_check is not None:
            result["readinessCheck"] = self.readiness_check._to_dict()
        return result


@dataclass(frozen=True)
class ServiceExit:
    """How a supervised process ended."""

    pid: int
    exit_code: int | None = None
    signal: int | None = None
    timestamp: str = field(default_factory=current_timestamp)