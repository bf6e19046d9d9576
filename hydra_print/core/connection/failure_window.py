"""
Checksum Failure Window - decaying count of checksum resend requests.

Each recorded failure is undone automatically after ``window_s`` seconds.
When the live count exceeds ``threshold`` the window latches into the
runaway state, which stays set until ``reset()`` is called explicitly.
"""

from __future__ import annotations

import asyncio
from functools import partial

from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger


class ChecksumFailureWindow:
    """Sliding failure counter with a sticky runaway flag."""

    def __init__(
        self,
        threshold: int = 100,
        window_s: float = 2.0,
        *,
        logger: LoggerLike = None,
    ):
        self.threshold = threshold
        self.window_s = window_s
        self.logger = ensure_structured_logger(logger, fallback_name="ChecksumFailureWindow")
        self._count = 0
        self._runaway = False
        # Bumped by reset() so decays scheduled earlier become no-ops
        self._epoch = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def runaway(self) -> bool:
        return self._runaway

    def record(self) -> bool:
        """Count one failure and schedule its decay.

        Must be called from the event loop thread. Returns True when this
        failure tipped the window into the runaway state.
        """
        loop = asyncio.get_running_loop()
        self._count += 1
        loop.call_later(self.window_s, partial(self._decay, self._epoch))

        if self._count > self.threshold and not self._runaway:
            self._runaway = True
            self.logger.warning(
                "Checksum runaway after %d resend requests within %.1fs. "
                "No longer resending lines on checksum errors",
                self._count, self.window_s,
            )
            return True
        return False

    def reset(self) -> None:
        """Clear the runaway flag and the live count."""
        if self._runaway:
            self.logger.info("Checksum runaway flag cleared")
        self._runaway = False
        self._count = 0
        self._epoch += 1

    def _decay(self, epoch: int) -> None:
        if epoch != self._epoch:
            return
        self._count = max(0, self._count - 1)


__all__ = ["ChecksumFailureWindow"]
