# canopus

Building blocks for supervising local services: declare services in a TOML
file and validate them with field-path errors, probe their health over TCP,
reserve ports without collisions, run commands in their own process groups,
keep a bounded history of their output and save a versioned snapshot of the
registry.

Plain Python 3.11+, no third-party runtime dependencies. Process handling
uses POSIX process groups and signals.

## Declaring services

Services are listed in a TOML document under `[[services]]`. Keys are
camelCase; anything left out takes its default (restart policy `always`,
graceful timeout 30 s, startup timeout 60 s, and so on).

```toml
[[services]]
id = "web"
name = "Web frontend"
command = "python"
args = ["-m", "http.server", "8000"]

[services.healthCheck.checkType]
type = "tcp"
port = 8000

[[services]]
id = "worker"
name = "Background worker"
command = "sh"
args = ["-c", "exit 0"]
```

Load and validate it:

```python
from canopus.config import load_services_from_toml_path
from canopus.errors import ConfigurationError, ValidationError

try:
    services_file = load_services_from_toml_path("services.toml")
except ConfigurationError as exc:
    print("could not read or parse the file:", exc)
except ValidationError as exc:
    print("invalid configuration:", exc)
else:
    for spec in services_file.services:
        print(spec.id, spec.command, spec.args)
```

`load_services_from_toml_str` does the same for a string. Validation stops
at the first problem and names the field, for example
`Validation error: services[1].id: duplicate id 'web'` or
`Validation error: services[0].healthCheck.type[Tcp].port: must be 1..=65535`.

The parsed services are `canopus.models.ServiceSpec` dataclasses;
`ServiceSpec.from_dict` and `ServiceSpec.to_dict` convert to and from the
camelCase form. Health checks are `HealthCheck` or `ReadinessCheck` holding
a `TcpCheck` or `ExecCheck`.

`canopus.config` also has a `DaemonConfig` (host, port, max connections)
and `validate_daemon_config`, which raises `ConfigurationError` for a zero
port, an empty host or zero max connections.

## Errors

Every core error derives from `canopus.errors.CoreError` and carries a
stable code:

```python
from canopus.errors import CoreError, ValidationError

try:
    raise ValidationError("bad input")
except CoreError as exc:
    print(exc.code, exc)   # CORE002 Validation error: bad input
```

Client-side error types derive from `canopus.errors.CliError` in the same
way (`CLI001`, `CLI002`, ...).

## Health probes

A TCP probe succeeds when a connection can be opened within its timeout:

```python
import asyncio
from canopus.health import TcpProbe, HealthError

async def main():
    probe = TcpProbe("127.0.0.1", 8000, 2.0)
    try:
        await probe.check()
        print(probe.address(), "is up")
    except HealthError as exc:
        print(probe.address(), "failed:", exc)

asyncio.run(main())
```

Failures raise `ProbeTimeout` or `TcpProbeError`. `create_probe` builds a
probe for `127.0.0.1` from a check type, and `run_probe` builds and runs the
probe of a `HealthCheck` or `ReadinessCheck`.

## Reserving ports

`PortAllocator` tries a preferred port first, then walks its range
(30000–59999 by default) from an offset fixed by process and thread,
skipping ports bound by the operating system or already reserved in this
process. The guard holds the bound listener until it is released:

```python
from canopus.port import PortAllocator

allocator = PortAllocator()
with allocator.reserve(45123) as guard:
    print("holding", guard.port, guard.addr())
```

It raises `NoAvailablePort` after 1000 attempts or when the range is used up.
`try_reserve_port` reserves one exact port or raises `PortInUse`.

## Running processes

`canopus.process.spawn` starts a command in a new session, with stdout and
stderr piped, so that signals reach the whole process tree:

```python
from canopus.process import spawn, terminate_with_timeout

child = spawn("sleep", ["30"])
status = terminate_with_timeout(child, 5.0)   # SIGTERM, then SIGKILL if needed
print(status)                                  # -15 or -9: ended by that signal
```

`canopus.adapters` wraps this behind the `ProcessAdapter` /
`ManagedProcess` interface: `UnixProcessAdapter` spawns real processes and
reports a `ServiceExit` with either an exit code or a signal.
`MockProcessAdapter` hands out scripted fake processes for tests:

```python
import asyncio
from canopus.adapters import MockInstruction, MockProcessAdapter
from canopus.models import ServiceSpec

async def main():
    adapter = MockProcessAdapter()
    await adapter.add_instruction(MockInstruction(exit_delay=10.0))
    proc = await adapter.spawn(ServiceSpec(id="svc", name="Svc", command="echo"))
    await proc.terminate()
    print(await proc.wait())   # exit_code=None, signal=15

asyncio.run(main())
```

## Capturing output

`LogRing` keeps the most recent entries, numbers each one and counts what it
had to drop:

```python
from canopus.logs import LogEntry, LogRing
from canopus.models import LogStream

ring = LogRing(3)
for line in ["a", "b", "c", "d"]:
    ring.push(LogEntry(stream=LogStream.STDOUT, content=line))

next_seq, entries = ring.snapshot()          # 4, entries "b", "c", "d"
print([e.content for e in ring.iter_after(1)])  # ['c', 'd']
print(len(ring), ring.total_dropped())       # 3 1
```

## Persisting state

`canopus.persistence` stores a versioned JSON `RegistrySnapshot` of
`ServiceSnapshot` entries. `write_snapshot_atomic` writes a temporary file,
syncs it and renames it into place; `load_snapshot` raises
`SerializationError` for corrupt files and `ValidationError` for an unknown
version. `default_snapshot_path()` uses `CANOPUS_STATE_FILE` if set, else
`~/.canopus/state.json`.

## Reverse proxy hooks

`canopus.proxy` defines the attach/detach interfaces: the synchronous
`ProxyApi` with a recording `NullProxy`, and the asynchronous
`ProxyAdapter` with `NoopProxyAdapter`, the recording `MockProxyAdapter`
and `ApiProxyAdapter`, which delegates to any `ProxyApi`.

## What this package does not do

It is a library of parts, not a running supervisor. There is no daemon, no
command-line tool and no control channel; nothing here applies restart
policies, schedules health checks or moves services through their states on
its own. Exec health checks are parsed and validated, but `create_probe`
raises `UnsupportedProbeType` for them. The proxy classes only record or
ignore calls; no actual reverse proxy is included.