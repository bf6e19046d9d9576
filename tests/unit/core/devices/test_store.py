"""Unit tests for device settings stores."""

import json

import pytest

from hydra_print.core.devices.store import JsonDeviceStore, MemoryDeviceStore


class TestMemoryDeviceStore:

    @pytest.mark.asyncio
    async def test_update_existing(self):
        store = MemoryDeviceStore({"a": {"name": "old"}})
        assert await store.update("a", {"name": "new"})
        assert await store.find_by_id("a") == {"name": "new"}

    @pytest.mark.asyncio
    async def test_update_missing(self):
        store = MemoryDeviceStore()
        assert await store.update("a", {"name": "new"}) is False
        assert await store.find_by_id("a") is None

    @pytest.mark.asyncio
    async def test_find_returns_copy(self):
        store = MemoryDeviceStore({"a": {"name": "old"}})
        record = await store.find_by_id("a")
        record["name"] = "changed"
        assert (await store.find_by_id("a"))["name"] == "old"


class TestJsonDeviceStore:

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonDeviceStore(tmp_path / "devices.json")
        assert await store.find_by_id("a") is None
        assert await store.update("a", {"name": "x"}) is False

    @pytest.mark.asyncio
    async def test_add_and_update(self, tmp_path):
        path = tmp_path / "state" / "devices.json"
        store = JsonDeviceStore(path)
        await store.add("a", {"name": "old", "custom": "{}"})
        assert await store.update("a", {"name": "new"})

        on_disk = json.loads(path.read_text())
        assert on_disk == {"a": {"name": "new", "custom": "{}"}}
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "devices.json"
        path.write_text("{not json")
        store = JsonDeviceStore(path)
        assert await store.find_by_id("a") is None
