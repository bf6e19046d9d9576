"""
G-code command model.

A Command is either structured (name plus lettered arguments, rendered on
demand) or raw (free-form text kept verbatim, e.g. ``M117 Hello``). The
offset transform and axis rounding only ever touch structured G0/G1 moves.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Union

# =============================================================================
# Protocol constants
# =============================================================================

LINE_ENDING = '\n'

MOVE_COMMANDS = frozenset({'G0', 'G1'})

# Axis argument -> device setting holding its offset
OFFSET_SETTINGS: Dict[str, str] = {
    'x': 'offset_x',
    'y': 'offset_y',
    'z': 'offset_z',
}

# Arguments rounded before a move reaches the virtual emulator
ROUNDED_AXES = ('x', 'y', 'z', 'e', 'f')
ROUND_PLACES = 4

_COMMAND_WORD = re.compile(r'^[GMT]\d+(?:\.\d+)?$', re.IGNORECASE)
_LEADING_ZEROS = re.compile(r'^([GMT])0+(?=\d)')
_ARG_WORD = re.compile(r'^([A-Za-z])([-+]?(?:\d+\.?\d*|\.\d+))?$')
_PAREN_COMMENT = re.compile(r'\([^)]*\)')

Number = Union[int, float]


@dataclass(frozen=True)
class Command:
    """A logical device command.

    ``raw`` holds the wire text for commands that were not parsed into
    arguments. ``attempts`` counts checksum resends of this command.
    """

    name: str
    args: Mapping[str, Any] = field(default_factory=dict)
    raw: Optional[str] = None
    attempts: int = 0

    @property
    def is_move(self) -> bool:
        return self.raw is None and self.name in MOVE_COMMANDS

    def with_retry(self) -> "Command":
        return replace(self, attempts=self.attempts + 1)

    def render(self) -> str:
        return render(self)

    def __str__(self) -> str:
        return render(self)


# =============================================================================
# Parsing / rendering
# =============================================================================

def _strip_comments(line: str) -> str:
    line = line.split(';', 1)[0]
    return _PAREN_COMMENT.sub('', line).strip()


def _parse_number(text: str) -> Number:
    if '.' in text:
        return float(text)
    return int(text)


def parse_line(line: str) -> Optional[Command]:
    """Parse one line of G-code; blank and comment-only lines yield None."""
    text = _strip_comments(line)
    if not text:
        return None

    tokens = text.split()
    name = tokens[0].upper()
    if not _COMMAND_WORD.match(name):
        return Command(name=name, raw=text)
    # G01 and G1 are the same command
    name = _LEADING_ZEROS.sub(r'\1', name)

    args: Dict[str, Any] = {}
    for token in tokens[1:]:
        match = _ARG_WORD.match(token)
        if match is None:
            # Free-text arguments (M117 messages, file names) are kept verbatim
            return Command(name=name, raw=text)
        letter, value = match.group(1).lower(), match.group(2)
        args[letter] = True if value is None else _parse_number(value)

    return Command(name=name, args=args)


def coerce_command(command: Union[Command, str]) -> Command:
    if isinstance(command, Command):
        return command
    parsed = parse_line(command)
    if parsed is None:
        raise ValueError(f"Nothing to send in {command!r}")
    return parsed


def format_number(value: Any) -> str:
    if isinstance(value, bool):
        return ''
    if isinstance(value, int):
        return str(value)
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.6f}".rstrip('0').rstrip('.')


def render(command: Command) -> str:
    """Render a command without its line terminator."""
    if command.raw is not None:
        return command.raw.rstrip('\r\n')
    words = [command.name]
    for letter, value in command.args.items():
        words.append(f"{letter.upper()}{format_number(value)}")
    return ' '.join(words)


def expand_code(command: Command) -> str:
    """Render a command into its wire form, terminated by the line delimiter."""
    return f"{render(command)}{LINE_ENDING}"


# =============================================================================
# Transforms
# =============================================================================

def _offset_value(settings: Mapping[str, Any], key: str) -> float:
    raw = settings.get(key, 0)
    if raw in (None, ''):
        return 0.0
    return float(raw)


def apply_offsets(command: Command, settings: Mapping[str, Any]) -> Command:
    """Shift the axes present on a G0/G1 move by the device's offsets.

    Pure: returns a new Command and leaves every other command as is.
    """
    if not command.is_move:
        return command

    args = dict(command.args)
    changed = False
    for axis, setting_key in OFFSET_SETTINGS.items():
        value = args.get(axis)
        if value is None or isinstance(value, bool):
            continue
        offset = _offset_value(settings, setting_key)
        if offset:
            args[axis] = value + offset
            changed = True

    if not changed:
        return command
    return replace(command, args=args)


def round_move_axes(line: str, places: int = ROUND_PLACES) -> str:
    """Fix move coordinates in a wire line to ``places`` decimals."""
    command = parse_line(line)
    if command is None or not command.is_move:
        return line.split(LINE_ENDING)[0]

    words = [command.name]
    for letter, value in command.args.items():
        if letter in ROUNDED_AXES and not isinstance(value, bool):
            words.append(f"{letter.upper()}{float(value):.{places}f}")
        else:
            words.append(f"{letter.upper()}{format_number(value)}")
    return ' '.join(words)


__all__ = [
    "Command",
    "LINE_ENDING",
    "MOVE_COMMANDS",
    "OFFSET_SETTINGS",
    "apply_offsets",
    "coerce_command",
    "expand_code",
    "format_number",
    "parse_line",
    "render",
    "round_move_axes",
]
