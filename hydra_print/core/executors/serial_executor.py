"""
Serial Executor

Streams commands to a device over a serial line. Wraps pyserial with an
async interface: blocking calls run through ``asyncio.to_thread``.

Replies are not returned from ``send``. A reader task delivers every
received line through the data handler and the command queue treats that
data as the reply to the command in flight.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Set

import serial

from hydra_print.core.errors import TransportFailure
from hydra_print.core.logging_utils import LoggerLike
from .base_executor import BaseExecutor, ExecutorConfig

DEFAULT_READ_TIMEOUT = 1.0
DEFAULT_WRITE_TIMEOUT = 1.0
IDLE_POLL_INTERVAL = 0.01


class SerialExecutor(BaseExecutor):
    """Serial line executor; replies arrive through the data handler."""

    streaming = True

    def __init__(
        self,
        config: ExecutorConfig,
        *,
        logger: LoggerLike = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
    ):
        super().__init__(config, logger=logger)
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def port(self) -> Optional[str]:
        return self.config.port

    @property
    def is_connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _open_transport(self) -> None:
        if not self.port:
            raise TransportFailure(f"No serial port assigned to {self.config.device_id}")

        try:
            self._serial = await asyncio.to_thread(
                serial.Serial,
                port=self.port,
                baudrate=self.config.baudrate,
                timeout=self.read_timeout,
                write_timeout=self.write_timeout,
            )
            await asyncio.to_thread(self._serial.reset_input_buffer)
            await asyncio.to_thread(self._serial.reset_output_buffer)
        except serial.SerialException as e:
            self._serial = None
            raise TransportFailure(f"Failed to open {self.port}: {e}") from e

        self.logger.info("Connected to %s at %d baud", self.port, self.config.baudrate)

        if self.config.open_prime:
            await self._prime(self.config.open_prime)

        self._reader_task = asyncio.create_task(self._read_loop())

    async def _close_transport(self) -> None:
        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._serial is not None:
            try:
                await asyncio.to_thread(self._serial.close)
                self.logger.info("Disconnected from %s", self.port)
            except serial.SerialException as e:
                self.logger.error("Error disconnecting from %s: %s", self.port, e)
            finally:
                self._serial = None

    async def _prime(self, prime: str) -> None:
        """Send the open string and wait for its ok before commands flow."""
        await self._write(f"{prime.rstrip()}\n")
        try:
            await asyncio.wait_for(self._await_ok(), timeout=self.config.pipeline.prime_timeout_s)
        except asyncio.TimeoutError:
            self.logger.warning(
                "No ok for open string %r on %s within %.1fs",
                prime, self.port, self.config.pipeline.prime_timeout_s,
            )

    async def _await_ok(self) -> None:
        while True:
            line = await self.read_line()
            if line is None:
                continue
            self.logger.debug("Open sequence from %s: %s", self.port, line)
            if 'ok' in line:
                return

    # =========================================================================
    # I/O
    # =========================================================================

    async def send(self, line: str) -> Optional[str]:
        await self._write(line if line.endswith('\n') else f"{line}\n")
        return None

    async def _write(self, text: str) -> None:
        if not self.is_connected:
            raise TransportFailure(f"Cannot write to {self.port}: not connected")

        data = text.encode('utf-8')
        try:
            await asyncio.to_thread(self._serial.write, data)
            await asyncio.to_thread(self._serial.flush)
        except (serial.SerialException, OSError) as e:
            self.logger.error("Write error on %s: %s", self.port, e)
            self._emit_error(e)
            self._spawn(self.close())
            raise TransportFailure(f"Write to {self.port} failed: {e}") from e
        self.logger.debug("Wrote to %s: %r", self.port, data)

    async def read_line(self) -> Optional[str]:
        """
        Read one line from the port.

        Returns:
            The decoded line without its terminator, or None if nothing is waiting

        Raises:
            serial.SerialException: the port failed
        """
        if not self.is_connected:
            raise serial.SerialException(f"{self.port} is not open")

        if not await asyncio.to_thread(lambda: self._serial.in_waiting > 0):
            await asyncio.sleep(IDLE_POLL_INTERVAL)
            return None

        line_bytes = await asyncio.to_thread(self._serial.readline)
        if not line_bytes:
            return None
        line = line_bytes.decode('utf-8', errors='replace').strip()
        self.logger.debug("Read from %s: %s", self.port, line)
        return line

    async def _read_loop(self) -> None:
        while not self._closed:
            try:
                line = await self.read_line()
            except asyncio.CancelledError:
                raise
            except (serial.SerialException, OSError) as e:
                self.logger.error("Read error on %s: %s", self.port, e)
                self._emit_error(e)
                self._spawn(self.close())
                return

            if line:
                self._emit_data(line)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task


__all__ = ["SerialExecutor"]
