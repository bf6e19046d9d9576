"""
Device settings stores.

The controller persists accepted settings updates through a store keyed by
the device uuid. A store that has no record for a device is not an error:
the update still applies in memory.

``custom`` reaches the store as a JSON string; callers only ever see it as
a dict.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import aiofiles

from hydra_print.core.logging_utils import get_module_logger

logger = get_module_logger("DeviceStore")


class DeviceStore(Protocol):
    async def find_by_id(self, uuid: str) -> Optional[Dict[str, Any]]:
        ...

    async def update(self, uuid: str, values: Dict[str, Any]) -> bool:
        ...


class MemoryDeviceStore:
    """Dict-backed store."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self.records: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (records or {}).items()}

    def add(self, uuid: str, values: Dict[str, Any]) -> None:
        self.records[uuid] = dict(values)

    async def find_by_id(self, uuid: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(uuid)
        return dict(record) if record is not None else None

    async def update(self, uuid: str, values: Dict[str, Any]) -> bool:
        record = self.records.get(uuid)
        if record is None:
            return False
        record.update(values)
        return True


class JsonDeviceStore:
    """
    Store backed by one JSON file mapping uuid -> settings.

    Reads and writes go through aiofiles; writes land in a temp file that
    replaces the original so a crash never leaves half a document behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except OSError as e:
            logger.error("Failed to read device store %s: %s", self.path, e)
            return {}
        if not content.strip():
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Device store %s is not valid JSON: %s", self.path, e)
            return {}

    async def _save(self, records: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(records, indent=2, sort_keys=True))
        temp_path.replace(self.path)

    async def add(self, uuid: str, values: Dict[str, Any]) -> None:
        async with self._lock:
            records = await self._load()
            records[uuid] = dict(values)
            await self._save(records)

    async def find_by_id(self, uuid: str) -> Optional[Dict[str, Any]]:
        records = await self._load()
        return records.get(uuid)

    async def update(self, uuid: str, values: Dict[str, Any]) -> bool:
        async with self._lock:
            records = await self._load()
            if uuid not in records:
                return False
            records[uuid].update(values)
            await self._save(records)
            logger.debug("Persisted %s for %s", sorted(values), uuid)
            return True


__all__ = ["DeviceStore", "JsonDeviceStore", "MemoryDeviceStore"]
