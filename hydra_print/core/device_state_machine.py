"""
Device State Machine - Lifecycle of a single device's command pipeline.

A device is in exactly one of four states:
- UNINITIALIZED: created, no transport
- DISCOVERING: building and opening the executor
- READY: executor and command queue are live, commands may flow
- FAILED: discovery or the connection failed; stays here until retried

Transitions are looked up in a fixed table. Events that are not defined
for the current state raise InvalidTransition, nothing is silently ignored.
"""

from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from hydra_print.core.errors import InvalidTransition
from hydra_print.core.logging_utils import LoggerLike, ensure_structured_logger


class LifecycleState(Enum):
    """The four lifecycle states of a device."""
    UNINITIALIZED = "uninitialized"
    DISCOVERING = "discovering"
    READY = "ready"
    FAILED = "failed"


class LifecycleEvent(str, Enum):
    """Events accepted by the state machine."""
    DISCOVER = "discover"
    INITIALIZATION_DONE = "initializationDone"
    INITIALIZATION_FAIL = "initializationFail"
    RESET = "reset"
    CONNECTION_LOST = "connectionLost"


TRANSITIONS: Dict[Tuple[LifecycleState, LifecycleEvent], LifecycleState] = {
    (LifecycleState.UNINITIALIZED, LifecycleEvent.DISCOVER): LifecycleState.DISCOVERING,
    (LifecycleState.FAILED, LifecycleEvent.DISCOVER): LifecycleState.DISCOVERING,
    (LifecycleState.DISCOVERING, LifecycleEvent.INITIALIZATION_DONE): LifecycleState.READY,
    (LifecycleState.DISCOVERING, LifecycleEvent.INITIALIZATION_FAIL): LifecycleState.FAILED,
    (LifecycleState.DISCOVERING, LifecycleEvent.RESET): LifecycleState.UNINITIALIZED,
    (LifecycleState.READY, LifecycleEvent.RESET): LifecycleState.UNINITIALIZED,
    (LifecycleState.FAILED, LifecycleEvent.RESET): LifecycleState.UNINITIALIZED,
    (LifecycleState.READY, LifecycleEvent.CONNECTION_LOST): LifecycleState.FAILED,
}


# Hook invoked on every state entry: (event, from_state, to_state)
TransitionCallback = Callable[[LifecycleEvent, LifecycleState, LifecycleState], None]


class DeviceStateMachine:
    """
    Explicit transition table for one device.

    The owner registers a single transition hook (last registration wins).
    The hook runs after the new state is committed; if it raises, the error
    is logged and the transition still stands.
    """

    def __init__(
        self,
        device_name: str,
        initial_state: LifecycleState = LifecycleState.UNINITIALIZED,
        *,
        logger: LoggerLike = None,
    ):
        self.device_name = device_name
        self.logger = ensure_structured_logger(logger, fallback_name="DeviceStateMachine")
        self._state = initial_state
        self._transition_callback: Optional[TransitionCallback] = None

    @property
    def current(self) -> LifecycleState:
        return self._state

    def set_transition_callback(self, callback: Optional[TransitionCallback]) -> None:
        """Set the hook invoked on every state entry."""
        self._transition_callback = callback

    def can(self, event: LifecycleEvent) -> bool:
        return (self._state, LifecycleEvent(event)) in TRANSITIONS

    def is_ready(self) -> bool:
        return self._state is LifecycleState.READY

    # =========================================================================
    # Transitions
    # =========================================================================

    def trigger(self, event: LifecycleEvent) -> LifecycleState:
        """Fire ``event`` and return the new state."""
        event = LifecycleEvent(event)
        from_state = self._state
        to_state = TRANSITIONS.get((from_state, event))
        if to_state is None:
            error = InvalidTransition(self.device_name, event.value, from_state.value)
            self.logger.error("%s", error)
            raise error

        self._state = to_state
        self.logger.info(
            "Device %s event %s: transitioning from %s to %s",
            self.device_name, event.value, from_state.value, to_state.value,
        )
        self._notify(event, from_state, to_state)
        return to_state

    def discover(self) -> LifecycleState:
        return self.trigger(LifecycleEvent.DISCOVER)

    def initialization_done(self) -> LifecycleState:
        return self.trigger(LifecycleEvent.INITIALIZATION_DONE)

    def initialization_fail(self) -> LifecycleState:
        return self.trigger(LifecycleEvent.INITIALIZATION_FAIL)

    def reset(self) -> LifecycleState:
        return self.trigger(LifecycleEvent.RESET)

    def connection_lost(self) -> LifecycleState:
        return self.trigger(LifecycleEvent.CONNECTION_LOST)

    def _notify(
        self,
        event: LifecycleEvent,
        from_state: LifecycleState,
        to_state: LifecycleState,
    ) -> None:
        if self._transition_callback is None:
            return
        try:
            self._transition_callback(event, from_state, to_state)
        except Exception as e:
            self.logger.error("Transition callback error for %s: %s", self.device_name, e)


__all__ = [
    "DeviceStateMachine",
    "LifecycleEvent",
    "LifecycleState",
    "TRANSITIONS",
    "TransitionCallback",
]
