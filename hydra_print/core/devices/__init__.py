"""
Devices Package

- DeviceController: settings, lifecycle and command pipeline of one device
- presets: settings templates, capability info and command tables
- commands: the default command table
- Broadcaster: fan-out of device events
- stores: persistence of device settings
"""

from .broadcast import Broadcaster, RecordingBroadcaster
from .commands import CommandSet, default_command_set
from .device_controller import DEVICE_EVENT_CHANNEL, DeviceController
from .presets import PRESETS, DeviceInfo, DevicePreset, get_preset
from .store import DeviceStore, JsonDeviceStore, MemoryDeviceStore

__all__ = [
    'Broadcaster',
    'CommandSet',
    'DEVICE_EVENT_CHANNEL',
    'DeviceController',
    'DeviceInfo',
    'DevicePreset',
    'DeviceStore',
    'JsonDeviceStore',
    'MemoryDeviceStore',
    'PRESETS',
    'RecordingBroadcaster',
    'default_command_set',
    'get_preset',
]
