"""Application-specific exceptions for pui.

This module provides a hierarchy of exceptions that lets the controller tell
a dropped daemon connection apart from a rejected request, and both apart
from a failure to start at all.

Exception Hierarchy:
    PuiError (base)
    ├── DaemonError
    │   ├── TransportError
    │   ├── OperationError
    │   └── ProtocolError
    ├── ConnectionFailedError
    └── ConfigurationError
"""


class PuiError(Exception):
    """Base exception for all pui errors.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        self.message = message
        if cause is not None:
            self.message = f"{message}: {cause}"
        super().__init__(self.message)


class DaemonError(PuiError):
    """Base exception for failures while talking to the daemon."""


class TransportError(DaemonError):
    """Raised when the connection to the daemon dropped or was refused.

    These errors are the only ones that trigger a reconnect attempt.
    """


class OperationError(DaemonError):
    """Raised when the daemon rejected a request.

    Attributes:
        operation: Name of the rejected operation (e.g. "start", "kill").
    """

    def __init__(
        self,
        operation: str,
        message: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message or f"Daemon rejected '{operation}'", cause)


class ProtocolError(DaemonError):
    """Raised when a reply from the daemon could not be understood."""


class ConnectionFailedError(PuiError):
    """Raised when the initial connection to the daemon cannot be established."""


class ConfigurationError(PuiError):
    """Raised when there is a configuration error.

    Attributes:
        parameter: The configuration parameter that is invalid.
    """

    def __init__(self, parameter: str, message: str | None = None) -> None:
        self.parameter = parameter
        super().__init__(message or f"Invalid configuration for '{parameter}'")
