"""
Command Queue - one command in flight per device.

Commands go out to the executor strictly in queue order. The head entry is
the only one ever in flight; the next send is issued only after the reply
to the previous one has been classified. The retry path reinserts a
command at the head instead of appending it.

Replies reach the queue either as the return value of ``executor.send``
(request/response transports) or through the executor's data handler
(streaming transports such as a serial line). Data that arrives while no
command is in flight is dropped.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Deque, List, Optional, Union

from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger
from .gcode import Command, coerce_command, expand_code
from .validator import ReplyOutcome, ReplyValidator

if TYPE_CHECKING:
    from hydra_print.core.executors.base_executor import BaseExecutor


@dataclass
class CommandResult:
    """Outcome of a command once it leaves the queue."""
    command: Command
    acknowledged: bool
    reply: Optional[str] = None
    retries: int = 0


@dataclass(eq=False)
class QueueEntry:
    """A queued command plus its bookkeeping.

    A retried entry hands its completion future to the entry that replaces
    it at the head and is marked ``superseded``.
    """
    command: Command
    order: int
    future: asyncio.Future
    retries: int = 0
    superseded: bool = False
    replies: List[str] = field(default_factory=list)

    async def wait(self) -> CommandResult:
        """Wait until the command is acknowledged or given up on."""
        return await self.future


class CommandQueue:
    """Sequences commands through one executor."""

    def __init__(
        self,
        executor: "BaseExecutor",
        validator: ReplyValidator,
        render: Callable[[Command], str] = expand_code,
        *,
        name: str = "device",
        logger: LoggerLike = None,
    ):
        self.name = name
        self.logger = ensure_structured_logger(logger, fallback_name="CommandQueue")
        self._executor = executor
        self._validator = validator
        self._render = render

        self._entries: Deque[QueueEntry] = deque()
        self._current: Optional[QueueEntry] = None
        self._inbox: asyncio.Queue[str] = asyncio.Queue()
        self._order = itertools.count()
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

        executor.set_data_handler(self._on_data)

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def executor(self) -> "BaseExecutor":
        return self._executor

    @property
    def current(self) -> Optional[QueueEntry]:
        return self._current

    @property
    def pending(self) -> int:
        return len(self._entries)

    @property
    def is_idle(self) -> bool:
        return self._current is None and not self._entries

    @property
    def closed(self) -> bool:
        return self._closed

    def queued_commands(self) -> List[Command]:
        return [entry.command for entry in self._entries]

    # =========================================================================
    # Public operations
    # =========================================================================

    def enqueue(self, command: Union[Command, str]) -> QueueEntry:
        """Append a command to the tail, dispatching at once if idle."""
        self._ensure_open()
        entry = QueueEntry(
            command=coerce_command(command),
            order=next(self._order),
            future=asyncio.get_running_loop().create_future(),
        )
        self._entries.append(entry)
        self._kick()
        return entry

    def prepend_command(
        self,
        command: Union[Command, str],
        *,
        origin: Optional[QueueEntry] = None,
    ) -> QueueEntry:
        """Insert a command at the head. Used by the checksum retry path."""
        self._ensure_open()
        if origin is not None:
            entry = QueueEntry(
                command=coerce_command(command),
                order=origin.order,
                future=origin.future,
                retries=origin.retries + 1,
            )
            origin.superseded = True
        else:
            entry = QueueEntry(
                command=coerce_command(command),
                order=next(self._order),
                future=asyncio.get_running_loop().create_future(),
            )
        self._entries.appendleft(entry)
        self._kick()
        return entry

    async def submit(self, command: Union[Command, str]) -> CommandResult:
        """Enqueue a command and wait for its result."""
        return await self.enqueue(command).wait()

    async def wait_idle(self) -> None:
        """Wait until nothing is queued or in flight."""
        await self._idle.wait()

    def close(self) -> None:
        """Stop dispatching and abandon every queued or in-flight command."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()

        abandoned = list(self._entries)
        if self._current is not None:
            abandoned.append(self._current)
        for entry in abandoned:
            if not entry.future.done():
                entry.future.cancel()
        if abandoned:
            self.logger.info("Queue for %s closed, abandoned %d command(s)", self.name, len(abandoned))

        self._entries.clear()
        self._current = None
        self._idle.set()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Command queue for {self.name} is closed")

    def _kick(self) -> None:
        self._idle.clear()
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while self._entries and not self._closed:
                entry = self._entries.popleft()
                self._current = entry
                try:
                    await self._dispatch(entry)
                finally:
                    self._current = None
        finally:
            self._task = None
            if not self._entries:
                self._idle.set()

    async def _dispatch(self, entry: QueueEntry) -> None:
        line = self._render(entry.command)
        self._drain_inbox()
        self.logger.debug("%s sending %r", self.name, line)

        try:
            reply = await self._executor.send(line)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Nothing reached the device, so no reply will follow
            self.logger.error("%s failed to send %r: %s", self.name, line.strip(), e)
            self._complete(entry, acknowledged=False)
            return

        while True:
            if reply is None:
                reply = await self._inbox.get()
            entry.replies.append(str(reply))

            outcome = self._validator.validate(self, entry, reply)
            if outcome is ReplyOutcome.OK:
                self._complete(entry, acknowledged=True)
                return

            if outcome is ReplyOutcome.RETRY:
                if self._validator.holds_on_retry and self._executor.streaming:
                    reply = None
                    continue
                return

            if self._executor.streaming:
                self.logger.debug("%s waiting past unrecognized line %r", self.name, reply)
                reply = None
                continue

            self.logger.error("%s got unrecognized reply %r to %r", self.name, reply, line.strip())
            self._complete(entry, acknowledged=False)
            return

    def _complete(self, entry: QueueEntry, *, acknowledged: bool) -> None:
        if entry.superseded or entry.future.done():
            return
        entry.future.set_result(CommandResult(
            command=entry.command,
            acknowledged=acknowledged,
            reply='\n'.join(entry.replies) if entry.replies else None,
            retries=entry.retries,
        ))

    def _on_data(self, data: str) -> None:
        if self._current is None or self._closed:
            self.logger.debug("%s dropping unsolicited data %r", self.name, data)
            return
        self._inbox.put_nowait(data)

    def _drain_inbox(self) -> None:
        while not self._inbox.empty():
            self._inbox.get_nowait()


__all__ = ["CommandQueue", "CommandResult", "QueueEntry"]
