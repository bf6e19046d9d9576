"""
Base Executor

Abstract base class for the transports that carry rendered commands to a
device. Every variant exposes the same contract:

- ``open()`` establishes the channel and sends the prime command once
- ``send(line)`` transmits one rendered command; request/response variants
  return the reply, streaming variants return None and deliver replies
  through the data handler
- one data, close and error handler each (last registration wins)
- ``close()`` releases the transport; calling it again does nothing

Executors never serialize sends themselves; the command queue guarantees
a single outstanding ``send`` per executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from hydra_print.core.config import PipelineConfig
from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger

if TYPE_CHECKING:
    from hydra_print.core.devices.broadcast import Broadcaster

DataHandler = Callable[[str], None]
CloseHandler = Callable[[], None]
ErrorHandler = Callable[[Exception], None]


@dataclass
class ExecutorConfig:
    """Transport-specific configuration bundle handed to an executor."""
    device_id: str = ""
    port: Optional[str] = None
    baudrate: int = 230400
    open_prime: Optional[str] = None
    endpoint: Optional[str] = None
    broadcaster: Optional["Broadcaster"] = None
    downstream: Optional["BaseExecutor"] = None
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    extra: dict[str, Any] = field(default_factory=dict)


class BaseExecutor(ABC):
    """Common handler plumbing and open/close bookkeeping."""

    # True when replies arrive through the data handler instead of send()
    streaming = False

    def __init__(self, config: ExecutorConfig, *, logger: LoggerLike = None):
        self.config = config
        self.logger = ensure_structured_logger(logger, fallback_name=type(self).__name__)
        self._data_handler: Optional[DataHandler] = None
        self._close_handler: Optional[CloseHandler] = None
        self._error_handler: Optional[ErrorHandler] = None
        self._open = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Handler registration
    # =========================================================================

    def set_data_handler(self, handler: Optional[DataHandler]) -> None:
        self._data_handler = handler

    def set_close_handler(self, handler: Optional[CloseHandler]) -> None:
        self._close_handler = handler

    def set_error_handler(self, handler: Optional[ErrorHandler]) -> None:
        self._error_handler = handler

    def _emit_data(self, data: str) -> None:
        if self._data_handler is None:
            self.logger.debug("No data handler for %r", data)
            return
        try:
            self._data_handler(data)
        except Exception as e:
            self.logger.error("Data handler error: %s", e)

    def _emit_error(self, error: Exception) -> None:
        if self._error_handler is None:
            return
        try:
            self._error_handler(error)
        except Exception as e:
            self.logger.error("Error handler error: %s", e)

    def _emit_close(self) -> None:
        if self._close_handler is None:
            return
        try:
            self._close_handler()
        except Exception as e:
            self.logger.error("Close handler error: %s", e)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """Open the channel. Raises TransportFailure when the device is unreachable."""
        if self._closed:
            raise RuntimeError(f"{type(self).__name__} for {self.config.device_id} is closed")
        if self._open:
            return
        await self._open_transport()
        self._open = True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._close_transport()
        finally:
            self._open = False
            self.logger.info("%s closed for %s", type(self).__name__, self.config.device_id)
            self._emit_close()

    @abstractmethod
    async def _open_transport(self) -> None:
        ...

    @abstractmethod
    async def _close_transport(self) -> None:
        ...

    @abstractmethod
    async def send(self, line: str) -> Optional[str]:
        """Transmit one rendered command."""
        ...

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


__all__ = [
    "BaseExecutor",
    "CloseHandler",
    "DataHandler",
    "ErrorHandler",
    "ExecutorConfig",
]
