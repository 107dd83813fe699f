"""Loading and validation of services configuration and daemon settings."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError, ValidationError
from .models import CheckType, ExecCheck, ServiceSpec, TcpCheck

_log = logging.getLogger(__name__)


@dataclass
class ServicesFile:
    """Top-level services configuration."""

    services: list[ServiceSpec] = field(default_factory=list)

    def validate(self) -> None:
        """Raise ValidationError naming the first offending field path."""
        if not self.services:
            raise ValidationError("services: must contain at least one service")

        seen: set[str] = set()
        for i, svc in enumerate(self.services):
            if not svc.id.strip():
                raise ValidationError(f"services[{i}].id: cannot be empty")
            if svc.id in seen:
                raise ValidationError(f"services[{i}].id: duplicate id '{svc.id}'")
            seen.add(svc.id)
            if not svc.name.strip():
                raise ValidationError(f"services[{i}].name: cannot be empty")
            if not svc.command.strip():
                raise ValidationError(f"services[{i}].command: cannot be empty")

            if any(not key.strip() for key in svc.environment):
                raise ValidationError(f"services[{i}].environment: keys cannot be empty")

            b = svc.backoff_config
            if b.base_delay_secs == 0:
                raise ValidationError(f"services[{i}].backoffConfig.baseDelaySecs: must be > 0")
            if not 0.0 <= b.jitter <= 1.0:
                raise ValidationError(
                    f"services[{i}].backoffConfig.jitter: must be between 0.0 and 1.0"
                )
            if b.multiplier <= 0.0:
                raise ValidationError(f"services[{i}].backoffConfig.multiplier: must be > 0")

            if svc.graceful_timeout_secs == 0:
                raise ValidationError(f"services[{i}].gracefulTimeoutSecs: must be > 0")
            if svc.startup_timeout_secs == 0:
                raise ValidationError(f"services[{i}].startupTimeoutSecs: must be > 0")

            if (h := svc.health_check) is not None:
                _validate_probe(
                    i, "healthCheck", h.check_type, h.interval_secs, h.timeout_secs,
                    (h.failure_threshold, h.success_threshold),
                )
            if (r := svc.readiness_check) is not None:
                _validate_probe(
                    i, "readinessCheck", r.check_type, r.interval_secs, r.timeout_secs,
                    (1, r.success_threshold),
                )


def _validate_probe(
    index: int,
    name: str,
    kind: CheckType,
    interval_secs: int,
    timeout_secs: int,
    thresholds: tuple[int, int] | None,
) -> None:
    prefix = f"services[{index}].{name}"
    if interval_secs == 0:
        raise ValidationError(f"{prefix}.intervalSecs: must be > 0")
    if timeout_secs == 0:
        raise ValidationError(f"{prefix}.timeoutSecs: must be > 0")
    if thresholds is not None:
        failure, success = thresholds
        if failure == 0:
            raise ValidationError(f"{prefix}.failureThreshold: must be > 0")
        if success == 0:
            raise ValidationError(f"{prefix}.successThreshold: must be > 0")

    match kind:
        case TcpCheck(port=0):
            raise ValidationError(f"{prefix}.type[Tcp].port: must be 1..=65535")
        case ExecCheck(command=command) if not command.strip():
            raise ValidationError(f"{prefix}.type[Exec].command: cannot be empty")


def _parse_services_file(data: dict[str, Any]) -> ServicesFile:
    raw = data.get("services")
    if raw is None:
        raise ValueError("missing field `services`")
    if not isinstance(raw, list):
        raise ValueError("services: expected an array")
    return ServicesFile(services=[ServiceSpec.from_dict(item) for item in raw])


def load_services_from_toml_path(path: str | Path) -> ServicesFile:
    """Read, parse and validate a services TOML file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f'Failed to read config "{path}": {exc}') from exc
    return load_services_from_toml_str(text)


def load_services_from_toml_str(text: str) -> ServicesFile:
    """Parse and validate services configuration from TOML text."""
    try:
        cfg = _parse_services_file(tomllib.loads(text))
    except (tomllib.TOMLDecodeError, ValueError) as exc:
        raise ConfigurationError(f"TOML parse error: {exc}") from exc
    cfg.validate()
    return cfg


@dataclass
class DaemonConfig:
    """Network settings for the daemon."""

    host: str = "127.0.0.1"
    port: int = 8080
    max_connections: int = 100


def validate_daemon_config(config: DaemonConfig) -> None:
    """Raise ConfigurationError if the daemon settings are unusable."""
    if config.port == 0:
        raise ConfigurationError("Port cannot be 0")
    if not config.host:
        raise ConfigurationError("Host cannot be empty")
    if config.max_connections == 0:
        raise ConfigurationError("Max connections must be greater than 0")
    _log.debug("Configuration validated successfully")