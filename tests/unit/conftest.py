"""Unit test fixtures: protocol objects wired to scripted executors."""

from __future__ import annotations

from typing import Callable

import pytest

from hydra_print.core.connection.failure_window import ChecksumFailureWindow
from hydra_print.core.devices.broadcast import RecordingBroadcaster
from hydra_print.core.protocol.command_queue import CommandQueue
from hydra_print.core.protocol.validator import (
    ReplyValidator,
    SerialReplyValidator,
    VirtualReplyValidator,
)
from tests.infrastructure.mocks.executor_mocks import FakeExecutor


@pytest.fixture
def failure_window() -> ChecksumFailureWindow:
    return ChecksumFailureWindow(threshold=100, window_s=2.0)


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def make_queue(failure_window) -> Callable[..., CommandQueue]:
    """Factory building a queue around a FakeExecutor.

    Streaming executors get the serial validator, request/response ones the
    virtual validator, matching how devices pick them.
    """

    def factory(
        replies=None,
        *,
        streaming: bool = False,
        checksum_support: bool = True,
        validator: ReplyValidator = None,
    ) -> CommandQueue:
        executor = FakeExecutor(replies, streaming=streaming)
        if validator is None:
            validator_cls = SerialReplyValidator if streaming else VirtualReplyValidator
            validator = validator_cls(checksum_support, failure_window)
        return CommandQueue(executor, validator, name="test")

    return factory
