"""Exception taxonomy for the device pipeline.

Structural errors (bad lifecycle events, unknown connection types, unknown
commands) are raised to callers. Data-plane anomalies such as checksum
resend requests or unrecognized replies are absorbed by the command queue
and never raised.
"""

from __future__ import annotations


class HydraPrintError(Exception):
    """Base class for all hydra-print errors."""


class InvalidTransition(HydraPrintError):
    """A lifecycle event was fired from a state that does not define it."""

    def __init__(self, device_name: str, event: str, state: str) -> None:
        self.device_name = device_name
        self.event = event
        self.state = state
        super().__init__(
            f'Invalid {device_name} device state change action "{event}". State at "{state}".'
        )


class UnsupportedConnectionType(HydraPrintError):
    """No executor is registered for the device's connection type."""

    def __init__(self, connection_type: str) -> None:
        self.connection_type = connection_type
        super().__init__(f'connectionType "{connection_type}" is not supported.')


class TransportFailure(HydraPrintError):
    """A command could not reach the device."""


class UnsupportedCommand(HydraPrintError):
    """The device's capability table has no handler for the command."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Command {command} not supported.")


class CommandExecutionError(HydraPrintError):
    """A command handler failed; the original error is chained as ``__cause__``."""


class DeviceNotReady(HydraPrintError):
    """The device has no live queue because it is not in the ready state."""


__all__ = [
    "CommandExecutionError",
    "DeviceNotReady",
    "HydraPrintError",
    "InvalidTransition",
    "TransportFailure",
    "UnsupportedCommand",
    "UnsupportedConnectionType",
]
