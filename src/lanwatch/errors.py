"""Exception hierarchy shared by the store, registry, discovery and protocol layers."""

from __future__ import annotations


class LanwatchError(Exception):
    """Base class for lanwatch errors."""


class ProtocolError(LanwatchError):
    """A request line that does not name a command or has the wrong arity."""

    def __init__(self, message: str, *, unknown_command: bool = False) -> None:
        super().__init__(message)
        self.unknown_command = unknown_command


class ValidationError(LanwatchError, ValueError):
    """A malformed field value, such as a MAC or IPv4 address."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        super().__init__(f"Invalid {field} '{value}': {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class NotFoundError(LanwatchError):
    pass


class ConflictError(LanwatchError):
    pass


class PersistenceError(LanwatchError):
    """The durable copy of the allowlist could not be written."""


class DiscoveryError(LanwatchError):
    """One candidate address failed a discovery step."""

    def __init__(self, address: str, step: str, reason: str) -> None:
        super().__init__(f"{step} failed for {address}: {reason}")
        self.address = address
        self.step = step


class ClientConnectionError(LanwatchError):
    """Socket level failure on a single client connection."""
