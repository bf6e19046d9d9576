"""
Device Controller - one device's settings, lifecycle and command pipeline.

The controller owns:
- the lifecycle state machine
- the checksum failure window (lives as long as the device)
- the executor and command queue, which exist only while READY and are
  replaced wholesale on every discovery

Every lifecycle transition and every accepted settings update is
broadcast as a device snapshot on the ``deviceEvent`` channel.
"""

from __future__ import annotations

import json
from collections import deque
from typing import Any, Deque, Dict, Mapping, Optional, Union
from uuid import uuid4

from hydra_print.core.config import PipelineConfig
from hydra_print.core.connection.failure_window import ChecksumFailureWindow
from hydra_print.core.device_state_machine import (
    DeviceStateMachine,
    LifecycleEvent,
    LifecycleState,
)
from hydra_print.core.errors import CommandExecutionError, DeviceNotReady, UnsupportedCommand
from hydra_print.core.executors import (
    BaseExecutor,
    ConnectionType,
    ExecutorConfig,
    create_executor,
    validator_for,
)
from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger
from hydra_print.core.protocol.command_queue import CommandQueue, QueueEntry
from hydra_print.core.protocol.gcode import Command, apply_offsets, coerce_command, expand_code, parse_line
from .broadcast import Broadcaster
from .presets import DevicePreset
from .store import DeviceStore

DEVICE_EVENT_CHANNEL = "deviceEvent"
MAX_WARNINGS = 20


def _parse_custom(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value) if value.strip() else {}
        except json.JSONDecodeError:
            return value
    return value


class DeviceController:
    """A single device driven through its preset's executor and command table."""

    def __init__(
        self,
        preset: DevicePreset,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        broadcaster: Optional[Broadcaster] = None,
        store: Optional[DeviceStore] = None,
        pipeline: Optional[PipelineConfig] = None,
        port: Optional[str] = None,
        downstream: Optional[BaseExecutor] = None,
        logger: LoggerLike = None,
    ):
        self.pipeline = pipeline or PipelineConfig()
        self.broadcaster = broadcaster
        self.store = store

        self.settings: Dict[str, Any] = preset.settings_template()
        for key, value in (overrides or {}).items():
            if key in self.settings:
                self.settings[key] = value
        self.settings['uuid'] = self.settings.get('uuid') or str(uuid4())
        if 'custom' in self.settings:
            self.settings['custom'] = _parse_custom(self.settings['custom'])

        self.info = preset.info
        self.commands = preset.commands
        self.port = port
        self.current_job: Any = None
        self.warnings: Deque[str] = deque(maxlen=MAX_WARNINGS)

        self.logger = ensure_structured_logger(logger, fallback_name="DeviceController")
        self._downstream = downstream
        self._executor: Optional[BaseExecutor] = None
        self._queue: Optional[CommandQueue] = None
        # Bumped by every discover() and reset(); a stale discovery never publishes
        self._generation = 0

        self.failure_window = ChecksumFailureWindow(
            threshold=self.pipeline.checksum_fail_threshold,
            window_s=self.pipeline.checksum_fail_window_s,
            logger=self.logger,
        )
        self.fsm = DeviceStateMachine(self.name, logger=self.logger)
        self.fsm.set_transition_callback(self._on_transition)

        self.commands.initialize(self)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def uuid(self) -> str:
        return self.settings['uuid']

    @property
    def name(self) -> str:
        return str(self.settings.get('name') or self.settings['uuid'])

    @property
    def state(self) -> LifecycleState:
        return self.fsm.current

    @property
    def queue(self) -> Optional[CommandQueue]:
        return self._queue

    @property
    def executor(self) -> Optional[BaseExecutor]:
        return self._executor

    @property
    def checksum_runaway(self) -> bool:
        return self.failure_window.runaway

    def set_port(self, port: Optional[str]) -> None:
        self.port = port

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> LifecycleState:
        """Initial discovery; serial devices wait for real hardware."""
        return await self.discover()

    async def discover(self, real_hardware: bool = False) -> LifecycleState:
        """
        Build and open the executor for this device's connection type.

        Serial devices are only probed when ``real_hardware`` is set; for
        them this is a no-op otherwise.

        Raises:
            InvalidTransition: the device cannot start discovery from its current state
        """
        if self.info.connection_type == ConnectionType.SERIAL.value and not real_hardware:
            self.logger.debug("%s waiting for hardware before discovery", self.name)
            return self.state

        self.fsm.discover()
        self._generation += 1
        generation = self._generation

        executor: Optional[BaseExecutor] = None
        try:
            executor = create_executor(
                self.info.connection_type,
                self._executor_config(),
                logger=self.logger.getChild("executor"),
            )
            validator = validator_for(
                self.info.connection_type,
                self.info.checksum_support,
                self.failure_window,
                logger=self.logger,
            )
            await executor.open()
        except Exception as e:
            self.logger.error("Discovery of %s failed: %s", self.name, e)
            await self._close_quietly(executor)
            if self._is_current(generation):
                self.fsm.initialization_fail()
            return self.state

        # A reset while the transport was opening abandons this discovery
        if not self._is_current(generation):
            self.logger.info("Discovery of %s abandoned (state: %s)", self.name, self.state.value)
            await self._close_quietly(executor)
            return self.state

        queue = CommandQueue(
            executor,
            validator,
            expand_code,
            name=self.name,
            logger=self.logger.getChild("queue"),
        )
        executor.set_close_handler(self._on_transport_closed)
        executor.set_error_handler(self._on_transport_error)
        self._executor = executor
        self._queue = queue

        self.fsm.initialization_done()
        return self.state

    async def reset(self) -> LifecycleState:
        """Discard the queue and executor and return to UNINITIALIZED."""
        self._generation += 1
        await self._teardown()
        self.fsm.reset()
        return self.state

    async def shutdown(self) -> None:
        if self.state is not LifecycleState.UNINITIALIZED:
            await self.reset()

    def _executor_config(self) -> ExecutorConfig:
        open_prime = self.settings.get('open_string')
        if self.info.connection_type == ConnectionType.SERIAL.value and not open_prime:
            open_prime = self.pipeline.default_open_string

        return ExecutorConfig(
            device_id=self.uuid,
            port=self.port,
            baudrate=self.info.baudrate or self.pipeline.default_baudrate,
            open_prime=open_prime,
            endpoint=self.settings.get('endpoint'),
            broadcaster=self.broadcaster,
            downstream=self._downstream,
            pipeline=self.pipeline,
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state is LifecycleState.DISCOVERING

    async def _close_quietly(self, executor: Optional[BaseExecutor]) -> None:
        if executor is None:
            return
        try:
            await executor.close()
        except Exception as e:
            self.logger.error("Closing executor for %s failed: %s", self.name, e)

    async def _teardown(self) -> None:
        queue, executor = self._queue, self._executor
        self._queue = None
        self._executor = None
        if queue is not None:
            queue.close()
        if executor is not None:
            executor.set_close_handler(None)
            await executor.close()

    def _on_transport_closed(self) -> None:
        if self._executor is None:
            return
        self.logger.warning("Connection to %s lost", self.name)
        queue = self._queue
        self._queue = None
        self._executor = None
        if queue is not None:
            queue.close()
        if self.fsm.can(LifecycleEvent.CONNECTION_LOST):
            self.fsm.connection_lost()

    def _on_transport_error(self, error: Exception) -> None:
        self.logger.warning("Transport error on %s: %s", self.name, error)
        self.warnings.append(str(error))

    # =========================================================================
    # Commands
    # =========================================================================

    def enqueue_command(
        self,
        command: Union[Command, str],
        *,
        apply_offset: bool = True,
    ) -> QueueEntry:
        """Queue one command; G0/G1 moves get the device offsets.

        Raises:
            DeviceNotReady: the device is not READY
        """
        if self._queue is None or not self.fsm.is_ready():
            raise DeviceNotReady(f"{self.name} is {self.state.value}, cannot queue commands")
        command = coerce_command(command)
        if apply_offset:
            command = apply_offsets(command, self.settings)
        return self._queue.enqueue(command)

    def enqueue_line(self, line: str) -> Optional[QueueEntry]:
        """Parse and queue one G-code line; blank and comment lines are skipped."""
        command = parse_line(line)
        if command is None:
            return None
        return self.enqueue_command(command)

    async def process_command(self, command: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a command from the preset's command table.

        Raises:
            UnsupportedCommand: no handler is registered under ``command``
            CommandExecutionError: the handler failed
        """
        handler = self.commands.get(command)
        if handler is None:
            raise UnsupportedCommand(command)

        try:
            return await handler(self, params or {})
        except Exception as e:
            self.logger.error("Command %s on %s failed: %s", command, self.name, e)
            raise CommandExecutionError(f"Command {command} failed: {e}") from e

    def reset_checksum_runaway(self) -> None:
        self.failure_window.reset()

    # =========================================================================
    # Settings & snapshot
    # =========================================================================

    async def update_settings(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply the known keys of ``values``, persist them and broadcast.

        Unknown keys are ignored. Returns the new snapshot.
        """
        to_update = {key: value for key, value in values.items() if key in self.settings}

        persisted = dict(to_update)
        if isinstance(persisted.get('custom'), (dict, list)):
            persisted['custom'] = json.dumps(persisted['custom'])

        if self.store is not None and persisted:
            record = await self.store.find_by_id(self.uuid)
            if record is not None:
                self.logger.info("Updating %s settings with %s", self.name, sorted(persisted))
                await self.store.update(self.uuid, persisted)

        if 'custom' in to_update:
            to_update['custom'] = _parse_custom(to_update['custom'])

        self.settings.update(to_update)
        self.notify()
        return self.get_device()

    def persisted_settings(self) -> Dict[str, Any]:
        """Settings as a store keeps them, with ``custom`` as JSON text."""
        values = dict(self.settings)
        if isinstance(values.get('custom'), (dict, list)):
            values['custom'] = json.dumps(values['custom'])
        return values

    def get_device(self) -> Dict[str, Any]:
        job = self.current_job
        if job is not None and hasattr(job, 'get_job'):
            job = job.get_job()
        return {
            "id": self.uuid,
            "state": self.state.value,
            "settings": dict(self.settings),
            "info": self.info.to_dict(),
            "port": self.port,
            "current_job": job,
            "warnings": list(self.warnings),
            "checksum_runaway": self.failure_window.runaway,
        }

    def notify(self) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.broadcast(DEVICE_EVENT_CHANNEL, {
                "id": self.uuid,
                "event": "update",
                "data": self.get_device(),
            })
        except Exception as e:
            self.logger.error("Update broadcast error for %s: %s", self.name, e)

    def _on_transition(
        self,
        event: LifecycleEvent,
        from_state: LifecycleState,
        to_state: LifecycleState,
    ) -> None:
        self.notify()


__all__ = ["DEVICE_EVENT_CHANNEL", "DeviceController"]
