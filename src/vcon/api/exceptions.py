"""Custom exceptions for vcon operations.

Every error carries the process exit code the CLI reports for it.
"""

from typing import Any

UNCLASSIFIED_EXIT_CODE = -1


class VconError(Exception):
    """Base exception for vcon."""

    exit_code: int = UNCLASSIFIED_EXIT_CODE

    def __init__(self, message: str) -> None:
        """Initialize error.

        Args:
            message: Human-readable error message
        """
        super().__init__(message)
        self.message = message

    def wrap(self, context: str) -> "VconError":
        """Return a copy of this error with one more layer of context.

        The copy keeps the class, so the exit code survives wrapping.

        Args:
            context: Call-site description (e.g. "Error while cloning VM")

        Returns:
            New error of the same class
        """
        wrapped = self.__class__.__new__(self.__class__)
        wrapped.__dict__.update(self.__dict__)
        wrapped.message = f"{context}: {self.message}"
        wrapped.args = (wrapped.message,)
        return wrapped

    def __str__(self) -> str:
        return self.message


class ConfigError(VconError):
    """Configuration related errors."""

    pass


class ConnectionFailure(VconError):
    """Connecting, logging in, or resolving the datacenter/datastore failed."""

    exit_code = 1


class NotFoundError(VconError):
    """A path, reference, or named sub-resource did not resolve."""

    exit_code = 2

    def __init__(self, resource: str, identifier: str) -> None:
        """Initialize not found error.

        Args:
            resource: Type of resource (VM, network, snapshot, ...)
            identifier: Path, name or reference that was looked up
        """
        super().__init__(f"Failed to find {resource} identified by '{identifier}'")
        self.resource = resource
        self.identifier = identifier


class DeadlineExceeded(VconError):
    """The shared deadline of an operation elapsed."""

    exit_code = 3

    def __init__(self, timeout: float, message: str | None = None) -> None:
        """Initialize deadline error.

        Args:
            timeout: Configured timeout in seconds
            message: Optional override for the default message
        """
        super().__init__(message or f"Timed out after {timeout:g} seconds")
        self.timeout = timeout


class PreconditionFailed(VconError):
    """The VM is not in a state that allows the requested operation."""

    pass


class RemoteTaskFailure(VconError):
    """A host-side task finished in the error state."""

    def __init__(self, localized_message: str) -> None:
        """Initialize task failure.

        Args:
            localized_message: Message reported by the host, kept verbatim
        """
        super().__init__(localized_message)
        self.localized_message = localized_message


class UnclassifiedError(VconError):
    """Anything else, wrapped with call-site context."""

    pass


def fault_message(error: BaseException) -> str:
    """Render an SDK fault or any other exception as one line.

    vSphere faults carry their text in ``msg`` and often have an empty
    ``str()``.
    """
    msg: Any = getattr(error, "msg", None)
    if msg:
        return str(msg)
    text = str(error).strip()
    return text or error.__class__.__name__
