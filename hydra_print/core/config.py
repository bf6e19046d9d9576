"""Typed configuration for the device pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from hydra_print.core.config_manager import ConfigManager, get_config_manager


@dataclass(slots=True)
class PipelineConfig:
    """Tunables shared by every device built in one process."""

    # Checksum runaway detection
    checksum_fail_threshold: int = 100
    checksum_fail_window_s: float = 2.0

    # Telnet/HTTP resend loop
    resend_delay_s: float = 1.0
    resend_max_attempts: int = 30
    http_timeout_s: float = 10.0
    api_version: str = "v1"

    # Serial defaults
    default_open_string: str = "M501"
    default_baudrate: int = 230400
    prime_timeout_s: float = 5.0

    # Virtual emulator
    virtual_delay_s: float = 0.0

    # Logging
    log_level: str = "info"
    log_file: str = "hydra-print.log"

    @classmethod
    def from_mapping(
        cls,
        values: Dict[str, str],
        manager: Optional[ConfigManager] = None,
    ) -> "PipelineConfig":
        """Build a config from raw ``key = value`` strings, keeping defaults for gaps."""
        cm = manager or get_config_manager()
        defaults = cls()

        return cls(
            checksum_fail_threshold=cm.get_int(values, "checksum_fail_threshold", defaults.checksum_fail_threshold),
            checksum_fail_window_s=cm.get_float(values, "checksum_fail_window_s", defaults.checksum_fail_window_s),
            resend_delay_s=cm.get_float(values, "resend_delay_s", defaults.resend_delay_s),
            resend_max_attempts=cm.get_int(values, "resend_max_attempts", defaults.resend_max_attempts),
            http_timeout_s=cm.get_float(values, "http_timeout_s", defaults.http_timeout_s),
            api_version=cm.get_str(values, "api_version", defaults.api_version),
            default_open_string=cm.get_str(values, "default_open_string", defaults.default_open_string),
            default_baudrate=cm.get_int(values, "default_baudrate", defaults.default_baudrate),
            prime_timeout_s=cm.get_float(values, "prime_timeout_s", defaults.prime_timeout_s),
            virtual_delay_s=cm.get_float(values, "virtual_delay_s", defaults.virtual_delay_s),
            log_level=cm.get_str(values, "log_level", defaults.log_level),
            log_file=cm.get_str(values, "log_file", defaults.log_file),
        )

    def apply_args_override(self, args: Any) -> "PipelineConfig":
        """Apply CLI argument overrides; ``None`` values leave the config untouched."""
        values = asdict(self)

        arg_mappings = {
            "log_level": "log_level",
            "log_file": "log_file",
            "baudrate": "default_baudrate",
            "open_string": "default_open_string",
            "resend_max_attempts": "resend_max_attempts",
        }

        for arg_name, config_key in arg_mappings.items():
            if hasattr(args, arg_name):
                val = getattr(args, arg_name)
                if val is not None:
                    values[config_key] = str(val) if config_key == "log_file" else val

        return PipelineConfig(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_pipeline_config(path: Optional[Path]) -> PipelineConfig:
    if path is None:
        return PipelineConfig()
    return PipelineConfig.from_mapping(get_config_manager().read_config(path))


async def load_pipeline_config_async(path: Optional[Path]) -> PipelineConfig:
    if path is None:
        return PipelineConfig()
    values = await get_config_manager().read_config_async(path)
    return PipelineConfig.from_mapping(values)


__all__ = ["PipelineConfig", "load_pipeline_config", "load_pipeline_config_async"]
