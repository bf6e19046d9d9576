"""
Device command table.

Each preset carries a ``CommandSet`` mapping API command names to async
handlers ``handler(device, params)``. Handlers queue work and return at
once; none of them waits for the device to finish.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from hydra_print.core.protocol.gcode import format_number

if TYPE_CHECKING:
    from .device_controller import DeviceController

CommandHandler = Callable[["DeviceController", Dict[str, Any]], Awaitable[Any]]
InitializeHook = Callable[["DeviceController"], None]

JOG_AXES = ('x', 'y', 'z', 'e')
DEFAULT_JOG_FEEDRATE = 3000


class CommandSet:
    """Named command handlers plus an optional per-device initialize hook."""

    def __init__(
        self,
        handlers: Mapping[str, CommandHandler],
        initialize: Optional[InitializeHook] = None,
    ):
        self._handlers: Dict[str, CommandHandler] = dict(handlers)
        self._initialize = initialize

    def initialize(self, device: "DeviceController") -> None:
        if self._initialize is not None:
            self._initialize(device)

    def get(self, name: str) -> Optional[CommandHandler]:
        return self._handlers.get(name)

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def extended(self, handlers: Mapping[str, CommandHandler]) -> "CommandSet":
        merged = dict(self._handlers)
        merged.update(handlers)
        return CommandSet(merged, self._initialize)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers


# =============================================================================
# Default handlers
# =============================================================================

async def connect(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    """Discover the device; serial devices are probed because a caller asked."""
    if params.get('port'):
        device.set_port(params['port'])
    await device.discover(real_hardware=params.get('realHardware', True))
    return device.get_device()


async def disconnect(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    await device.reset()
    return device.get_device()


async def process_gcode(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    gcode = params.get('gcode')
    if gcode is None:
        raise ValueError('"gcode" is required')

    lines: Iterable[str] = gcode if isinstance(gcode, (list, tuple)) else str(gcode).splitlines()
    queued = 0
    for line in lines:
        if device.enqueue_line(line) is not None:
            queued += 1
    return {"queued": queued, "device": device.get_device()}


def _axes_from(params: Dict[str, Any]) -> List[str]:
    axes = params.get('axes') or ''
    if isinstance(axes, str):
        axes = list(axes)
    return [axis.lower() for axis in axes if axis.lower() in ('x', 'y', 'z')]


async def home(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    words = ['G28'] + [axis.upper() for axis in _axes_from(params)]
    device.enqueue_command(' '.join(words), apply_offset=False)
    return device.get_device()


async def jog(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    """Relative move along one axis; offsets do not apply to relative moves."""
    axis = str(params.get('axis', '')).lower()
    if axis not in JOG_AXES:
        raise ValueError(f'Cannot jog axis "{axis}"')
    amount = float(params.get('amount', 0))
    feedrate = params.get('feedrate', DEFAULT_JOG_FEEDRATE)

    device.enqueue_command('G91', apply_offset=False)
    device.enqueue_command(
        f"G1 {axis.upper()}{format_number(amount)} F{format_number(feedrate)}",
        apply_offset=False,
    )
    device.enqueue_command('G90', apply_offset=False)
    return device.get_device()


async def reset_checksum_runaway(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    device.reset_checksum_runaway()
    return device.get_device()


async def get_device(device: "DeviceController", params: Dict[str, Any]) -> Dict[str, Any]:
    return device.get_device()


DEFAULT_HANDLERS: Dict[str, CommandHandler] = {
    'connect': connect,
    'disconnect': disconnect,
    'processGcode': process_gcode,
    'home': home,
    'jog': jog,
    'resetChecksumRunaway': reset_checksum_runaway,
    'getDevice': get_device,
}


def default_command_set(initialize: Optional[InitializeHook] = None) -> CommandSet:
    return CommandSet(DEFAULT_HANDLERS, initialize)


__all__ = [
    "CommandHandler",
    "CommandSet",
    "DEFAULT_HANDLERS",
    "default_command_set",
]
