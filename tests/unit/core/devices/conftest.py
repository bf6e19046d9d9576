"""Fixtures for device controller tests."""

from __future__ import annotations

import pytest

from hydra_print.core.devices.device_controller import DeviceController
from hydra_print.core.devices.presets import get_preset
from hydra_print.core.devices.store import MemoryDeviceStore


@pytest.fixture
def store() -> MemoryDeviceStore:
    return MemoryDeviceStore()


@pytest.fixture
def make_device(broadcaster, store, pipeline_config):
    devices = []

    def factory(preset: str = "virtual", overrides=None, **kwargs) -> DeviceController:
        kwargs.setdefault("broadcaster", broadcaster)
        kwargs.setdefault("store", store)
        kwargs.setdefault("pipeline", pipeline_config)
        device = DeviceController(get_preset(preset), overrides, **kwargs)
        devices.append(device)
        return device

    return factory
