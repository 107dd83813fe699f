"""Service supervision building blocks: configuration, health probes, ports, processes, logs and snapshots."""

__version__ = "0.1.0"

__all__ = [
    "adapters",
    "config",
    "errors",
    "health",
    "logs",
    "models",
    "persistence",
    "port",
    "process",
    "proxy",
]