"""Error hierarchy for the supervisor core and the command-line client."""

from __future__ import annotations

from typing import ClassVar


class _CodedError(Exception):
    """An exception carrying a stable error code and a display prefix."""

    code: ClassVar[str] = ""
    prefix: ClassVar[str] = ""

    def __init__(self, message: object = "") -> None:
        self.message = str(message)
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class CoreError(_CodedError):
    """Base class for all core errors."""

    code = "CORE999"
    prefix = "Generic error"


class ConfigurationError(CoreError):
    """Configuration file or value is invalid or unreadable."""

    code = "CORE001"
    prefix = "Configuration error"


class ValidationError(CoreError):
    """Input data failed validation."""

    code = "CORE002"
    prefix = "Validation error"


class InitializationError(CoreError):
    """Initialization or setup failed."""

    code = "CORE003"
    prefix = "Initialization error"


class ServiceError(CoreError):
    """A service operation failed."""

    code = "CORE004"
    prefix = "Service error"


class CoreIoError(CoreError):
    """An I/O operation failed."""

    code = "CORE005"
    prefix = "I/O error"


class SerializationError(CoreError):
    """JSON serialization or deserialization failed."""

    code = "CORE006"
    prefix = "Serialization error"


class PortInUse(CoreError):
    """The requested port is already taken."""

    code = "CORE007"

    def __init__(self, port: int) -> None:
        self.port = port
        super().__init__(str(port))

    def __str__(self) -> str:
        return f"Port {self.port} is already in use"


class NoAvailablePort(CoreError):
    """No free port was found within the attempt budget."""

    code = "CORE008"

    def __init__(self, tried: int) -> None:
        self.tried = tried
        super().__init__(str(tried))

    def __str__(self) -> str:
        return f"No available port found after trying {self.tried} ports"


class ProcessSpawnError(CoreError):
    """A child process could not be started."""

    code = "CORE009"
    prefix = "Process spawn error"


class ProcessSignalError(CoreError):
    """A signal could not be delivered to a process group."""

    code = "CORE010"
    prefix = "Process signal error"


class ProcessWaitError(CoreError):
    """Waiting for a child process failed."""

    code = "CORE011"
    prefix = "Process wait error"


class OtherError(CoreError):
    """Generic or unspecified error."""

    code = "CORE999"
    prefix = "Generic error"


class CliError(_CodedError):
    """Base class for command-line client errors."""

    code = "CLI001"
    prefix = "Command failed"


class CommandFailed(CliError):
    """A command did not complete successfully."""

    code = "CLI001"
    prefix = "Command failed"


class InvalidArgument(CliError):
    """A command-line argument is invalid."""

    code = "CLI002"
    prefix = "Invalid argument"


class CliConfigError(CliError):
    """Client configuration is invalid."""

    code = "CLI003"
    prefix = "Configuration error"


class ConnectionFailed(CliError):
    """The client could not reach the daemon."""

    code = "CLI004"
    prefix = "Connection failed"


class DaemonError(CliError):
    """The daemon reported an error."""

    code = "CLI005"
    prefix = "Daemon error"


class CliIoError(CliError):
    """An I/O operation in the client failed."""

    code = "CLI008"
    prefix = "I/O error"