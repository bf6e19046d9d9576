from .config import PipelineConfig, load_pipeline_config, load_pipeline_config_async
from .device_state_machine import DeviceStateMachine, LifecycleEvent, LifecycleState
from .errors import (
    CommandExecutionError,
    DeviceNotReady,
    HydraPrintError,
    InvalidTransition,
    TransportFailure,
    UnsupportedCommand,
    UnsupportedConnectionType,
)
from .logging_config import configure_logging
from .logging_utils import get_module_logger

__all__ = [
    'CommandExecutionError',
    'DeviceNotReady',
    'DeviceStateMachine',
    'HydraPrintError',
    'InvalidTransition',
    'LifecycleEvent',
    'LifecycleState',
    'PipelineConfig',
    'TransportFailure',
    'UnsupportedCommand',
    'UnsupportedConnectionType',
    'configure_logging',
    'get_module_logger',
    'load_pipeline_config',
    'load_pipeline_config_async',
]
