"""
Device protocol package.

- gcode: Command model, parse/render, offset transform
- validator: reply classification (ok / resend / unrecognized)
- command_queue: single in-flight command sequencing
"""

from .command_queue import CommandQueue, CommandResult, QueueEntry
from .gcode import Command, apply_offsets, expand_code, parse_line, render, round_move_axes
from .validator import ReplyOutcome, ReplyValidator, SerialReplyValidator, VirtualReplyValidator

__all__ = [
    'Command',
    'CommandQueue',
    'CommandResult',
    'QueueEntry',
    'ReplyOutcome',
    'ReplyValidator',
    'SerialReplyValidator',
    'VirtualReplyValidator',
    'apply_offsets',
    'expand_code',
    'parse_line',
    'render',
    'round_move_axes',
]
