"""
In-process Marlin-style motion controller emulator.

Answers the subset of Marlin G-code that a host exercises during a print:
moves, homing, positioning modes, temperatures and the usual status
queries. Every command ends with an ``ok`` line; unknown commands get an
``echo:Unknown command`` line before it, as real firmware does.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List

from hydra_print.core.logging_utils import get_module_logger
from hydra_print.core.protocol.gcode import parse_line

logger = get_module_logger("MarlinEmulator")

FIRMWARE_NAME = "Marlin 1.1.0 (hydra-print emulator)"
AMBIENT_TEMP = 20.0
AXES = ('x', 'y', 'z', 'e')

_LINE_NUMBER = re.compile(r'^N\d+\s+', re.IGNORECASE)
_CHECKSUM = re.compile(r'\*\d+\s*$')


@dataclass
class MachineState:
    position: Dict[str, float] = field(default_factory=lambda: dict.fromkeys(AXES, 0.0))
    feedrate: float = 0.0
    absolute: bool = True
    absolute_extrusion: bool = True
    hotend_temp: float = AMBIENT_TEMP
    hotend_target: float = 0.0
    bed_temp: float = AMBIENT_TEMP
    bed_target: float = 0.0
    message: str = ""


class MarlinEmulator:
    """Stateful fake firmware; one command at a time."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.state = MachineState()
        self.history: List[str] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self._open = True
        logger.debug("Emulator started")

    async def close(self) -> None:
        self._open = False

    async def stream(self, line: str) -> AsyncIterator[str]:
        """Yield the reply lines for one command, ending with ``ok``."""
        if not self._open:
            raise RuntimeError("Emulator is not open")
        for reply in self.execute(line):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield reply

    async def send_gcode(self, line: str) -> str:
        return '\n'.join([reply async for reply in self.stream(line)]) + '\n'

    # =========================================================================
    # Command handling
    # =========================================================================

    def execute(self, line: str) -> List[str]:
        text = _CHECKSUM.sub('', _LINE_NUMBER.sub('', line.strip()))
        self.history.append(text)

        command = parse_line(text)
        if command is None:
            return ['ok']

        handler = getattr(self, f"_cmd_{command.name.replace('.', '_')}", None)
        if handler is None:
            return [f'echo:Unknown command: "{text}"', 'ok']
        return handler(command) + ['ok']

    def _move(self, args) -> None:
        for axis in AXES:
            value = args.get(axis)
            if value is None or isinstance(value, bool):
                continue
            relative = not self.state.absolute_extrusion if axis == 'e' else not self.state.absolute
            if relative:
                self.state.position[axis] += float(value)
            else:
                self.state.position[axis] = float(value)
        if 'f' in args and not isinstance(args['f'], bool):
            self.state.feedrate = float(args['f'])

    def _cmd_G0(self, command):
        self._move(command.args)
        return []

    _cmd_G1 = _cmd_G0

    def _cmd_G28(self, command):
        axes = [axis for axis in ('x', 'y', 'z') if axis in command.args] or ['x', 'y', 'z']
        for axis in axes:
            self.state.position[axis] = 0.0
        return []

    def _cmd_G90(self, command):
        self.state.absolute = True
        self.state.absolute_extrusion = True
        return []

    def _cmd_G91(self, command):
        self.state.absolute = False
        self.state.absolute_extrusion = False
        return []

    def _cmd_G92(self, command):
        axes = [axis for axis in AXES if axis in command.args] or list(AXES)
        for axis in axes:
            value = command.args.get(axis, 0)
            self.state.position[axis] = 0.0 if isinstance(value, bool) else float(value)
        return []

    def _cmd_M82(self, command):
        self.state.absolute_extrusion = True
        return []

    def _cmd_M83(self, command):
        self.state.absolute_extrusion = False
        return []

    def _cmd_M104(self, command):
        self.state.hotend_target = self.state.hotend_temp = float(command.args.get('s', 0))
        return []

    _cmd_M109 = _cmd_M104

    def _cmd_M140(self, command):
        self.state.bed_target = self.state.bed_temp = float(command.args.get('s', 0))
        return []

    _cmd_M190 = _cmd_M140

    def _cmd_M105(self, command):
        s = self.state
        return [f"T:{s.hotend_temp:.1f} /{s.hotend_target:.1f} B:{s.bed_temp:.1f} /{s.bed_target:.1f} @:0 B@:0"]

    def _cmd_M114(self, command):
        p = self.state.position
        return [f"X:{p['x']:.2f} Y:{p['y']:.2f} Z:{p['z']:.2f} E:{p['e']:.2f}"]

    def _cmd_M115(self, command):
        return [f"FIRMWARE_NAME:{FIRMWARE_NAME} PROTOCOL_VERSION:1.0 MACHINE_TYPE:Virtual EXTRUDER_COUNT:1"]

    def _cmd_M117(self, command):
        self.state.message = command.raw.split(None, 1)[1] if command.raw else ""
        return []

    def _cmd_M400(self, command):
        return []

    _cmd_M84 = _cmd_M400

    def _cmd_M501(self, command):
        return ["echo:Stored settings retrieved"]


__all__ = ["MachineState", "MarlinEmulator"]
