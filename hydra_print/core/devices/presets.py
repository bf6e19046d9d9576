"""
Device presets.

A preset bundles the settings template, static capability info and the
command table for one kind of device. Devices copy the template and let
caller overrides win, but only for keys the template defines.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from hydra_print.core.executors import ConnectionType
from .commands import CommandSet, default_command_set


@dataclass(frozen=True)
class DeviceInfo:
    """Static capabilities of a device model."""
    connection_type: str
    baudrate: Optional[int] = None
    checksum_support: bool = False
    description: str = ""
    file_types: List[str] = field(default_factory=lambda: ['.gcode'])
    vid: Optional[str] = None
    pid: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DevicePreset:
    settings: Dict[str, Any]
    info: DeviceInfo
    commands: CommandSet = field(default_factory=default_command_set)

    def settings_template(self) -> Dict[str, Any]:
        return copy.deepcopy(self.settings)


def _base_settings(name: str, model: str, **extra: Any) -> Dict[str, Any]:
    settings: Dict[str, Any] = {
        'uuid': None,
        'name': name,
        'model': model,
        'endpoint': None,
        'open_string': None,
        'offset_x': 0,
        'offset_y': 0,
        'offset_z': 0,
        'custom': {},
    }
    settings.update(extra)
    return settings


def virtual_preset() -> DevicePreset:
    return DevicePreset(
        settings=_base_settings('Virtual Printer', 'Virtual'),
        info=DeviceInfo(
            connection_type=ConnectionType.VIRTUAL.value,
            description='In-process Marlin emulator',
        ),
    )


def conductor_preset() -> DevicePreset:
    return DevicePreset(
        settings=_base_settings('Conductor', 'Conductor'),
        info=DeviceInfo(
            connection_type=ConnectionType.CONDUCTOR.value,
            description='Coordinator for several print heads',
        ),
    )


def marlin_serial_preset() -> DevicePreset:
    return DevicePreset(
        settings=_base_settings('Marlin Printer', 'Marlin', open_string='M501'),
        info=DeviceInfo(
            connection_type=ConnectionType.SERIAL.value,
            baudrate=230400,
            checksum_support=True,
            description='Marlin firmware over USB serial',
        ),
    )


def telnet_preset() -> DevicePreset:
    return DevicePreset(
        settings=_base_settings('Network Printer', 'Telnet', endpoint='http://localhost:9000'),
        info=DeviceInfo(
            connection_type=ConnectionType.TELNET.value,
            description='Printer behind an HTTP G-code proxy',
        ),
    )


def remote_preset() -> DevicePreset:
    return DevicePreset(
        settings=_base_settings('Remote Printer', 'Remote'),
        info=DeviceInfo(
            connection_type=ConnectionType.REMOTE.value,
            description='Device driven through another host',
        ),
    )


PRESETS: Dict[str, Callable[[], DevicePreset]] = {
    'virtual': virtual_preset,
    'conductor': conductor_preset,
    'marlin_serial': marlin_serial_preset,
    'telnet': telnet_preset,
    'remote': remote_preset,
}


def get_preset(name: str) -> DevicePreset:
    """Return a fresh preset by name.

    Raises:
        KeyError: no preset with that name
    """
    try:
        factory = PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown preset {name!r}; choose from {', '.join(sorted(PRESETS))}") from None
    return factory()


__all__ = [
    "DeviceInfo",
    "DevicePreset",
    "PRESETS",
    "get_preset",
]
