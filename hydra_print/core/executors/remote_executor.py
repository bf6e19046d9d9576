"""
Remote Executor

Pass-through proxy: every call is delegated to a downstream executor. When
no downstream is configured a virtual executor stands in, so a remote
device can be exercised without the far end.

An injected downstream belongs to whoever configured it and outlives any
one RemoteExecutor: closing the proxy only detaches from it, so the next
discovery can attach again. A stand-in virtual executor is owned and
closed with the proxy.
"""

from __future__ import annotations

from typing import Optional

from hydra_print.core.logging_utils import LoggerLike
from .base_executor import BaseExecutor, ExecutorConfig
from .virtual_executor import VirtualExecutor


class RemoteExecutor(BaseExecutor):

    def __init__(self, config: ExecutorConfig, *, logger: LoggerLike = None):
        super().__init__(config, logger=logger)
        self._owns_downstream = config.downstream is None
        self.downstream: BaseExecutor = config.downstream or VirtualExecutor(config, logger=self.logger)
        self.streaming = self.downstream.streaming
        # Downstream events surface as this executor's events
        self.downstream.set_data_handler(self._emit_data)
        self.downstream.set_error_handler(self._emit_error)
        self.downstream.set_close_handler(self._on_downstream_closed)

    def _on_downstream_closed(self) -> None:
        if not self._closed:
            self.logger.warning("Downstream executor for %s closed", self.config.device_id)
            self._closed = True
            self._open = False
            self._emit_close()

    def _detach(self) -> None:
        self.downstream.set_data_handler(None)
        self.downstream.set_error_handler(None)
        self.downstream.set_close_handler(None)

    async def _open_transport(self) -> None:
        await self.downstream.open()

    async def _close_transport(self) -> None:
        self._detach()
        if self._owns_downstream:
            await self.downstream.close()

    async def send(self, line: str) -> Optional[str]:
        return await self.downstream.send(line)


__all__ = ["RemoteExecutor"]
