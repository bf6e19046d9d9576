"""
Telnet Executor

Forwards each command to a network proxy that owns the physical device.
Every line is POSTed as ``{"gcode": line}`` to
``{endpoint}/{api_version}/bot/processGcode`` and the response body is the
device reply.

A failed POST is resent unchanged on a fixed interval until the proxy
answers, the attempt cap is hit, or the executor is closed.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp

from hydra_print.core.connection.retry_policy import RetryOutcome, RetryPolicy
from hydra_print.core.errors import TransportFailure
from hydra_print.core.logging_utils import LoggerLike
from .base_executor import BaseExecutor, ExecutorConfig

PROCESS_GCODE_PATH = "bot/processGcode"


class TelnetExecutor(BaseExecutor):
    """HTTP request/response executor with a bounded resend loop."""

    streaming = False

    def __init__(
        self,
        config: ExecutorConfig,
        *,
        logger: LoggerLike = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(config, logger=logger)
        pipeline = config.pipeline
        self._session = session
        self._owns_session = session is None
        self._retry_policy = RetryPolicy.fixed(
            delay=pipeline.resend_delay_s,
            max_attempts=max(1, pipeline.resend_max_attempts),
        )

    @property
    def url(self) -> str:
        endpoint = (self.config.endpoint or "").rstrip('/')
        return f"{endpoint}/{self.config.pipeline.api_version}/{PROCESS_GCODE_PATH}"

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    async def _open_transport(self) -> None:
        if not self.config.endpoint:
            raise TransportFailure(f"No endpoint configured for {self.config.device_id}")

        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.pipeline.http_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)

        self.logger.info("Forwarding %s to %s", self.config.device_id, self.url)

        if self.config.open_prime:
            try:
                reply = await self._post(self.config.open_prime)
                self.logger.debug("Open string reply: %r", reply)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.warning("Open string %r not delivered: %s", self.config.open_prime, e)

    async def _close_transport(self) -> None:
        self._retry_policy.abort()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _post(self, line: str) -> str:
        if self._session is None:
            raise TransportFailure(f"Executor for {self.config.device_id} is not open")
        async with self._session.post(self.url, json={"gcode": line}) as response:
            response.raise_for_status()
            return await response.text()

    def _on_retry(self, attempt: int, error: Optional[str]) -> None:
        self.logger.warning(
            "Resending to %s (attempt %d/%d): %s",
            self.url, attempt, self._retry_policy.max_attempts, error,
        )
        self._emit_error(TransportFailure(error or "request failed"))

    async def send(self, line: str) -> Optional[str]:
        gcode = line.rstrip('\n')
        result = await self._retry_policy.execute_with_result(
            operation=lambda: self._post(gcode),
            on_retry=self._on_retry,
        )

        if result.outcome is RetryOutcome.SUCCESS:
            return result.result_data

        if result.outcome is RetryOutcome.ABORTED:
            raise TransportFailure(f"Resend of {gcode!r} aborted, executor closed")
        raise TransportFailure(
            f"Gave up on {gcode!r} after {result.attempt_count} attempts: {result.final_error}"
        )


__all__ = ["TelnetExecutor", "PROCESS_GCODE_PATH"]
