"""Test doubles for transports and serial hardware."""

from .executor_mocks import FakeExecutor
from .serial_mocks import MockMarlinSerial, MockSerialConfig, MockSerialDevice

__all__ = [
    "FakeExecutor",
    "MockMarlinSerial",
    "MockSerialConfig",
    "MockSerialDevice",
]
