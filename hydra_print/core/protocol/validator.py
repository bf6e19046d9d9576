"""
Reply Validators

Classify a raw transport reply for the command currently in flight:

- RETRY: the device asked for a resend (checksum error). The command is
  put back at the head of the queue and the failure window is charged.
- OK: the last non-empty line acknowledges the command.
- UNRECOGNIZED: anything else; the command is not acknowledged yet.

Serial and virtual validators share the algorithm and differ in two
policies: case sensitivity of the ``ok`` match and whether a RETRY holds
the current command (waiting for the trailing ``ok``) or counts as
accepted so the queue moves straight on to the reinserted command.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from hydra_print.core.connection.failure_window import ChecksumFailureWindow
from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger

if TYPE_CHECKING:
    from .command_queue import CommandQueue, QueueEntry


class ReplyOutcome(Enum):
    OK = "ok"
    RETRY = "retry"
    UNRECOGNIZED = "unrecognized"


def normalize_reply(reply: object) -> str:
    return str(reply).replace('\r\n', '\n').replace('\r', '\n')


def last_line(reply: str) -> str:
    for line in reversed(reply.split('\n')):
        if line.strip():
            return line
    return ''


def is_resend_request(reply: str) -> bool:
    return 'resend' in reply.lower() or reply[:2] == 'rs'


class ReplyValidator:
    """Base validator; subclasses pick the ok-matching and retry policies."""

    # Keep the current command in flight after a RETRY
    holds_on_retry = False
    case_sensitive = True

    def __init__(
        self,
        checksum_support: bool,
        failure_window: ChecksumFailureWindow,
        *,
        logger: LoggerLike = None,
    ):
        self.checksum_support = checksum_support
        self.failure_window = failure_window
        self.logger = ensure_structured_logger(logger, fallback_name="ReplyValidator")

    def validate(self, queue: "CommandQueue", entry: "QueueEntry", reply: object) -> ReplyOutcome:
        text = normalize_reply(reply)

        if self.checksum_support and is_resend_request(text) and not self.failure_window.runaway:
            self._request_resend(queue, entry)
            return ReplyOutcome.RETRY

        if self.is_ok(text):
            return ReplyOutcome.OK
        return ReplyOutcome.UNRECOGNIZED

    def is_ok(self, reply: str) -> bool:
        line = last_line(reply)
        if not self.case_sensitive:
            line = line.lower()
        return 'ok' in line

    def _request_resend(self, queue: "CommandQueue", entry: "QueueEntry") -> None:
        queue.prepend_command(entry.command.with_retry(), origin=entry)
        self.failure_window.record()
        self.logger.debug(
            "Resend requested for %r (attempt %d, window %d)",
            entry.command.render(), entry.command.attempts + 1, self.failure_window.count,
        )


class SerialReplyValidator(ReplyValidator):
    """Serial lines: case-sensitive ``ok``; a resend request holds the queue."""

    holds_on_retry = True
    case_sensitive = True


class VirtualReplyValidator(ReplyValidator):
    """Request/response transports: any-case ``ok``; a resend counts as accepted."""

    holds_on_retry = False
    case_sensitive = False


__all__ = [
    "ReplyOutcome",
    "ReplyValidator",
    "SerialReplyValidator",
    "VirtualReplyValidator",
    "is_resend_request",
    "last_line",
    "normalize_reply",
]
