"""
Virtual Executor

Drives the in-process Marlin emulator. Used for simulated devices and for
conductor rigs that fan commands out to several simulated heads.
"""

from __future__ import annotations

from typing import Optional

from hydra_print.core.logging_utils import LoggerLike
from hydra_print.core.protocol.gcode import ROUND_PLACES, round_move_axes
from .base_executor import BaseExecutor, ExecutorConfig
from .emulator import MarlinEmulator

SENT_CHANNEL = "deviceSent"
REPLY_CHANNEL = "deviceReply"


class VirtualExecutor(BaseExecutor):
    """Request/response executor backed by ``MarlinEmulator``."""

    streaming = False

    def __init__(
        self,
        config: ExecutorConfig,
        *,
        logger: LoggerLike = None,
        emulator: Optional[MarlinEmulator] = None,
    ):
        super().__init__(config, logger=logger)
        self.emulator = emulator or MarlinEmulator(delay=config.pipeline.virtual_delay_s)

    async def _open_transport(self) -> None:
        await self.emulator.open()
        self.logger.info("Virtual device %s online", self.config.device_id)
        if self.config.open_prime:
            reply = await self.emulator.send_gcode(self.config.open_prime)
            self.logger.debug("Open string reply: %r", reply)

    async def _close_transport(self) -> None:
        await self.emulator.close()

    def _broadcast(self, channel: str, data: str) -> None:
        broadcaster = self.config.broadcaster
        if broadcaster is not None:
            broadcaster.broadcast(channel, {"id": self.config.device_id, "data": data})

    async def send(self, line: str) -> Optional[str]:
        gcode = round_move_axes(line, ROUND_PLACES)
        self._broadcast(SENT_CHANNEL, gcode)
        self.logger.debug("sent: %s", gcode)

        # Firmware may answer in several chunks; the reply is complete at ok
        reply = ""
        async for chunk in self.emulator.stream(gcode):
            self._broadcast(REPLY_CHANNEL, chunk)
            reply += f"{chunk}\n"
            if 'ok' in chunk:
                break

        self.logger.debug("reply: %r", reply)
        return reply


__all__ = ["REPLY_CHANNEL", "SENT_CHANNEL", "VirtualExecutor"]
