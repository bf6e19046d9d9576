"""
Broadcaster - fan-out of device events to subscribers.

Subscribers are plain callables ``(channel, payload)``; coroutine functions
are scheduled as background tasks. A failing subscriber is logged and never
affects the publisher or the other subscribers.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Set, Union

from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger

Subscriber = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]


class Broadcaster:

    def __init__(self, *, logger: LoggerLike = None):
        self.logger = ensure_structured_logger(logger, fallback_name="Broadcaster")
        self._subscribers: List[Subscriber] = []
        self._background_tasks: Set[asyncio.Task] = set()

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def broadcast(self, channel: str, payload: Dict[str, Any]) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(channel, payload)
            except Exception as e:
                self.logger.error("Subscriber error on %s: %s", channel, e)
                continue
            if inspect.isawaitable(result):
                self._create_background_task(result, channel)

    def _create_background_task(self, awaitable: Awaitable[None], channel: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._background_tasks.add(task)
        task.add_done_callback(lambda t: self._task_done(t, channel))

    def _task_done(self, task: asyncio.Task, channel: str) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Async subscriber error on %s: %s", channel, error)

    async def drain(self) -> None:
        """Wait for scheduled async subscribers to finish."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that keeps every message; handy for the CLI and tests."""

    def __init__(self, *, logger: LoggerLike = None):
        super().__init__(logger=logger)
        self.messages: List[tuple[str, Dict[str, Any]]] = []

    def broadcast(self, channel: str, payload: Dict[str, Any]) -> None:
        self.messages.append((channel, payload))
        super().broadcast(channel, payload)

    def on(self, channel: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.messages if name == channel]


__all__ = ["Broadcaster", "RecordingBroadcaster", "Subscriber"]
