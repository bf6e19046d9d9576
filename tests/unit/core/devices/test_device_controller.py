"""Unit tests for DeviceController."""

from __future__ import annotations

import asyncio
import json
import uuid
from unittest.mock import MagicMock, patch

import pytest

from hydra_print.core.device_state_machine import LifecycleState
from hydra_print.core.devices.device_controller import DEVICE_EVENT_CHANNEL, DeviceController
from hydra_print.core.devices.presets import DeviceInfo, DevicePreset, get_preset
from hydra_print.core.devices.store import JsonDeviceStore
from hydra_print.core.errors import DeviceNotReady, InvalidTransition, TransportFailure
from hydra_print.core.executors import ExecutorConfig, VirtualExecutor
from tests.infrastructure.mocks.executor_mocks import FakeExecutor


class SlowOpenExecutor(FakeExecutor):
    async def _open_transport(self) -> None:
        await asyncio.sleep(0.05)
        await super()._open_transport()


class BrokenExecutor(FakeExecutor):
    async def _open_transport(self) -> None:
        raise TransportFailure("no device")

    async def _close_transport(self) -> None:
        raise RuntimeError("close failed")


class TestSettings:

    def test_overrides_win_and_unknown_keys_dropped(self, make_device):
        device = make_device(overrides={"name": "Bench", "offset_x": 2, "bogusKey": 1})
        assert device.settings["name"] == "Bench"
        assert device.settings["offset_x"] == 2
        assert "bogusKey" not in device.settings
        assert device.settings["model"] == "Virtual"

    def test_uuid_generated_when_absent(self, make_device):
        device = make_device()
        assert uuid.UUID(device.uuid)
        assert make_device().uuid != device.uuid

    def test_uuid_kept_when_given(self, make_device):
        assert make_device(overrides={"uuid": "abc"}).uuid == "abc"

    def test_custom_text_parsed(self, make_device):
        device = make_device(overrides={"custom": '{"speed": 10}'})
        assert device.settings["custom"] == {"speed": 10}

    def test_presets_are_not_shared(self, make_device):
        first = make_device()
        first.settings["custom"]["x"] = 1
        assert make_device().settings["custom"] == {}


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_virtual_device_becomes_ready(self, make_device):
        device = make_device()
        assert device.state is LifecycleState.UNINITIALIZED
        assert device.queue is None

        assert await device.start() is LifecycleState.READY
        assert isinstance(device.executor, VirtualExecutor)
        assert device.queue is not None
        assert device.executor.is_open

    @pytest.mark.asyncio
    async def test_serial_waits_for_real_hardware(self, make_device):
        device = make_device("marlin_serial")
        assert await device.start() is LifecycleState.UNINITIALIZED
        assert device.executor is None

    @pytest.mark.asyncio
    async def test_serial_without_port_fails(self, make_device):
        device = make_device("marlin_serial")
        assert await device.discover(real_hardware=True) is LifecycleState.FAILED
        assert device.executor is None
        assert device.queue is None

    @pytest.mark.asyncio
    async def test_unknown_connection_type_fails(self):
        preset = DevicePreset(
            settings=get_preset("virtual").settings,
            info=DeviceInfo(connection_type="carrier-pigeon"),
        )
        device = DeviceController(preset)
        assert await device.discover() is LifecycleState.FAILED
        assert device.queue is None

    @pytest.mark.asyncio
    async def test_failed_device_can_rediscover(self):
        preset = DevicePreset(
            settings=get_preset("virtual").settings,
            info=DeviceInfo(connection_type="carrier-pigeon"),
        )
        device = DeviceController(preset)
        assert await device.discover() is LifecycleState.FAILED

        device.info = DeviceInfo(connection_type="virtual")
        assert await device.discover() is LifecycleState.READY

    @pytest.mark.asyncio
    async def test_discover_while_ready_is_invalid(self, make_device):
        device = make_device()
        await device.start()
        with pytest.raises(InvalidTransition):
            await device.discover()

    @pytest.mark.asyncio
    async def test_reset_discards_queue_and_executor(self, make_device):
        device = make_device()
        await device.start()
        executor = device.executor
        entry = device.enqueue_command("G4 P1000")

        assert await device.reset() is LifecycleState.UNINITIALIZED
        assert device.queue is None
        assert device.executor is None
        assert executor.closed
        assert entry.future.done()

    @pytest.mark.asyncio
    async def test_rediscovery_replaces_executor(self, make_device):
        device = make_device()
        await device.start()
        first = device.executor
        await device.reset()
        await device.discover()
        assert device.executor is not first
        assert first.closed

    @pytest.mark.asyncio
    async def test_reset_while_opening_abandons_discovery(self, make_device):
        device = make_device()
        slow = SlowOpenExecutor()
        with patch("hydra_print.core.devices.device_controller.create_executor", return_value=slow):
            task = asyncio.create_task(device.discover())
            await asyncio.sleep(0.01)
            assert device.state is LifecycleState.DISCOVERING

            assert await device.reset() is LifecycleState.UNINITIALIZED
            assert await task is LifecycleState.UNINITIALIZED

        assert device.queue is None
        assert device.executor is None
        assert slow.closed
        assert await device.discover() is LifecycleState.READY

    @pytest.mark.asyncio
    async def test_failed_close_still_fails_discovery(self, make_device):
        device = make_device()
        broken = BrokenExecutor()
        with patch("hydra_print.core.devices.device_controller.create_executor", return_value=broken):
            assert await device.discover() is LifecycleState.FAILED
        assert device.queue is None
        assert device.executor is None

    @pytest.mark.asyncio
    async def test_remote_downstream_survives_rediscovery(self, make_device):
        downstream = VirtualExecutor(ExecutorConfig(device_id="down"))
        device = make_device("remote", downstream=downstream)

        assert await device.discover() is LifecycleState.READY
        await device.reset()
        assert not downstream.closed

        assert await device.discover() is LifecycleState.READY
        result = await device.enqueue_command("G28").wait()
        assert result.acknowledged
        assert downstream.emulator.history[-1] == "G28"

    @pytest.mark.asyncio
    async def test_connection_lost_fails_device(self, make_device):
        device = make_device()
        await device.start()
        await device.executor.close()
        assert device.state is LifecycleState.FAILED
        assert device.queue is None
        assert device.executor is None


class TestCommands:

    @pytest.mark.asyncio
    async def test_enqueue_before_ready_raises(self, make_device):
        device = make_device()
        with pytest.raises(DeviceNotReady):
            device.enqueue_command("G28")

    @pytest.mark.asyncio
    async def test_offsets_applied_to_moves(self, make_device):
        device = make_device(overrides={"offset_x": 2, "offset_y": -1})
        await device.start()
        result = await device.enqueue_command("G1 X10 Y5").wait()
        await device.enqueue_command("G28").wait()

        assert result.acknowledged
        assert device.executor.emulator.history[-2:] == ["G1 X12.0000 Y4.0000", "G28"]

    @pytest.mark.asyncio
    async def test_offsets_can_be_skipped(self, make_device):
        device = make_device(overrides={"offset_x": 2})
        await device.start()
        await device.enqueue_command("G1 X1", apply_offset=False).wait()
        assert device.executor.emulator.history[-1] == "G1 X1.0000"

    @pytest.mark.asyncio
    async def test_enqueue_line_skips_comments(self, make_device):
        device = make_device()
        await device.start()
        assert device.enqueue_line("; layer 1") is None
        entry = device.enqueue_line("G28 ; home")
        assert (await entry.wait()).acknowledged

    @pytest.mark.asyncio
    async def test_checksum_resend_through_device(self, make_device):
        downstream = FakeExecutor(["rs\n", "ok\n"])
        preset = get_preset("remote")
        preset.info = DeviceInfo(connection_type="remote", checksum_support=True)
        device = DeviceController(preset, downstream=downstream)
        await device.start()

        result = await device.enqueue_command("G1 X1").wait()
        assert result.acknowledged
        assert result.retries == 1
        assert downstream.sent == ["G1 X1\n", "G1 X1\n"]
        assert device.failure_window.count == 1

    @pytest.mark.asyncio
    async def test_reset_checksum_runaway(self, make_device):
        device = make_device()
        device.failure_window._runaway = True
        assert device.get_device()["checksum_runaway"] is True
        device.reset_checksum_runaway()
        assert device.checksum_runaway is False


class TestSnapshotAndNotifications:

    def test_snapshot_keys(self, make_device):
        snapshot = make_device(overrides={"name": "Bench"}).get_device()
        assert set(snapshot) == {
            "id", "state", "settings", "info", "port",
            "current_job", "warnings", "checksum_runaway",
        }
        assert snapshot["state"] == "uninitialized"
        assert snapshot["settings"]["name"] == "Bench"
        assert snapshot["info"]["connection_type"] == "virtual"

    def test_current_job_uses_get_job(self, make_device):
        device = make_device()
        device.current_job = MagicMock(get_job=MagicMock(return_value={"id": "job-1"}))
        assert device.get_device()["current_job"] == {"id": "job-1"}

    @pytest.mark.asyncio
    async def test_transitions_are_broadcast(self, make_device, broadcaster):
        device = make_device()
        await device.start()
        events = broadcaster.on(DEVICE_EVENT_CHANNEL)
        assert [event["data"]["state"] for event in events] == ["discovering", "ready"]
        assert all(event["id"] == device.uuid and event["event"] == "update" for event in events)

    @pytest.mark.asyncio
    async def test_broadcast_failure_does_not_block(self, make_device):
        failing = MagicMock()
        failing.broadcast.side_effect = RuntimeError("socket closed")
        device = make_device(broadcaster=failing)
        assert await device.start() is LifecycleState.READY

    @pytest.mark.asyncio
    async def test_transport_errors_become_warnings(self, make_device):
        device = make_device()
        await device.start()
        device.executor._emit_error(RuntimeError("hiccup"))
        assert device.get_device()["warnings"] == ["hiccup"]


class TestUpdateSettings:

    @pytest.mark.asyncio
    async def test_unknown_keys_ignored(self, make_device, broadcaster):
        device = make_device()
        snapshot = await device.update_settings({"name": "new", "bogusKey": 1})
        assert snapshot["settings"]["name"] == "new"
        assert "bogusKey" not in device.settings
        assert broadcaster.on(DEVICE_EVENT_CHANNEL)[-1]["data"]["settings"]["name"] == "new"

    @pytest.mark.asyncio
    async def test_persists_known_record(self, make_device, store):
        device = make_device()
        store.add(device.uuid, device.persisted_settings())
        await device.update_settings({"name": "new", "custom": {"speed": 10}})

        record = await store.find_by_id(device.uuid)
        assert record["name"] == "new"
        assert record["custom"] == json.dumps({"speed": 10})
        assert device.settings["custom"] == {"speed": 10}

    @pytest.mark.asyncio
    async def test_missing_record_is_not_an_error(self, make_device, store):
        device = make_device()
        await device.update_settings({"name": "new"})
        assert device.settings["name"] == "new"
        assert await store.find_by_id(device.uuid) is None

    @pytest.mark.asyncio
    async def test_custom_round_trips_through_json_store(self, make_device, tmp_path):
        store = JsonDeviceStore(tmp_path / "devices.json")
        device = make_device(store=store)
        await store.add(device.uuid, device.persisted_settings())

        await device.update_settings({"custom": {"speed": 10}})

        record = await store.find_by_id(device.uuid)
        reloaded = make_device(overrides=record, store=store)
        assert reloaded.uuid == device.uuid
        assert reloaded.settings["custom"] == {"speed": 10}
