"""Exception hierarchy for the port forwarder.

Everything raised to the command level derives from ``PortForwarderError``
so the CLI can report it and exit non-zero.
"""

from __future__ import annotations


class PortForwarderError(Exception):
    """Base class for all fatal forwarder errors."""


class InvalidPortError(PortForwarderError, ValueError):
    """A port supplied by the operator is outside 1..65535."""

    def __init__(self, port: int) -> None:
        super().__init__(f"port {port} is invalid (expected 1-65535)")
        self.port = port


class StateFileError(PortForwarderError):
    """The persisted port state could not be read, parsed or written."""


class CommandFailedError(PortForwarderError):
    """An external command could not be launched or exited non-zero."""

    def __init__(
        self,
        command: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        if returncode is None:
            message = f"failed to launch command: {command}"
        else:
            message = f"command failed ({returncode}): {command}"
            if stderr:
                message = f"{message}: {stderr}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class GuestAddressError(PortForwarderError):
    """The WSL guest IPv4 address could not be resolved."""


class DiscoveryError(PortForwarderError):
    """A discovery source returned unusable data. Never escapes a probe."""
