"""
Executors Package

Transport implementations behind one contract:
- BaseExecutor: Abstract base class
- SerialExecutor: pyserial line, replies streamed through the data handler
- TelnetExecutor: HTTP proxy with a bounded resend loop
- VirtualExecutor: in-process Marlin emulator (virtual and conductor devices)
- RemoteExecutor: pass-through to a downstream executor

The variant is picked once per discovery from the device's connection type.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Type, Union

from hydra_print.core.connection.failure_window import ChecksumFailureWindow
from hydra_print.core.errors import UnsupportedConnectionType
from hydra_print.core.logging_utils import LoggerLike
from hydra_print.core.protocol.validator import (
    ReplyValidator,
    SerialReplyValidator,
    VirtualReplyValidator,
)

from .base_executor import BaseExecutor, ExecutorConfig
from .emulator import MarlinEmulator
from .remote_executor import RemoteExecutor
from .serial_executor import SerialExecutor
from .telnet_executor import TelnetExecutor
from .virtual_executor import VirtualExecutor


class ConnectionType(str, Enum):
    SERIAL = "serial"
    TELNET = "telnet"
    VIRTUAL = "virtual"
    CONDUCTOR = "conductor"
    REMOTE = "remote"


EXECUTOR_REGISTRY: Dict[ConnectionType, Type[BaseExecutor]] = {
    ConnectionType.SERIAL: SerialExecutor,
    ConnectionType.TELNET: TelnetExecutor,
    ConnectionType.VIRTUAL: VirtualExecutor,
    ConnectionType.CONDUCTOR: VirtualExecutor,
    ConnectionType.REMOTE: RemoteExecutor,
}


def resolve_connection_type(connection_type: Union[ConnectionType, str]) -> ConnectionType:
    try:
        return ConnectionType(connection_type)
    except ValueError:
        raise UnsupportedConnectionType(str(connection_type)) from None


def create_executor(
    connection_type: Union[ConnectionType, str],
    config: ExecutorConfig,
    *,
    logger: LoggerLike = None,
) -> BaseExecutor:
    """Instantiate the executor registered for ``connection_type``.

    Raises:
        UnsupportedConnectionType: nothing is registered for the type
    """
    executor_cls = EXECUTOR_REGISTRY.get(resolve_connection_type(connection_type))
    if executor_cls is None:
        raise UnsupportedConnectionType(str(connection_type))
    return executor_cls(config, logger=logger)


def validator_for(
    connection_type: Union[ConnectionType, str],
    checksum_support: bool,
    failure_window: ChecksumFailureWindow,
    *,
    logger: LoggerLike = None,
) -> ReplyValidator:
    """Serial lines get the serial validator; everything else the virtual one."""
    if resolve_connection_type(connection_type) is ConnectionType.SERIAL:
        return SerialReplyValidator(checksum_support, failure_window, logger=logger)
    return VirtualReplyValidator(checksum_support, failure_window, logger=logger)


__all__ = [
    'BaseExecutor',
    'ConnectionType',
    'EXECUTOR_REGISTRY',
    'ExecutorConfig',
    'MarlinEmulator',
    'RemoteExecutor',
    'SerialExecutor',
    'TelnetExecutor',
    'VirtualExecutor',
    'create_executor',
    'resolve_connection_type',
    'validator_for',
]
