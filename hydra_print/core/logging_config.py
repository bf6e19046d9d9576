"""Root logging setup for hydra-print processes."""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Union

if TYPE_CHECKING:
    from .config import PipelineConfig

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_MAX_BYTES = 500 * 1024
_DEFAULT_BACKUP_COUNT = 2

# aiohttp logs every connection failure; the telnet executor already reports them
DEFAULT_SUPPRESSED_LOGGERS = ("aiohttp", "asyncio")

_configured = False


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        name = level.upper()
        if not hasattr(logging, name):
            raise ValueError(f"Unknown log level '{level}'")
        return getattr(logging, name)
    return int(level)


def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _file_handler(
    path: Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = _DEFAULT_MAX_BYTES,
    backup_count: int = _DEFAULT_BACKUP_COUNT,
    suppressed_loggers: Iterable[str] = DEFAULT_SUPPRESSED_LOGGERS,
) -> None:
    """Install console and optional rotating-file handlers on the root logger.

    Calling this a second time only adjusts the level unless ``force`` is set,
    so library users that already configured logging keep their handlers.
    """

    global _configured
    numeric_level = _coerce_level(level)
    root = logging.getLogger()

    if not _configured or force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            with contextlib.suppress(Exception):
                handler.close()

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        if console:
            root.addHandler(_console_handler(numeric_level, formatter))
        if log_file:
            root.addHandler(
                _file_handler(Path(log_file), numeric_level, formatter, max_bytes, backup_count)
            )
        if not root.handlers:
            root.addHandler(logging.NullHandler())
        _configured = True

    root.setLevel(numeric_level)
    for name in suppressed_loggers:
        logging.getLogger(name).setLevel(logging.ERROR)


def configure_from_config(config: "PipelineConfig", *, console: bool = True, force: bool = True) -> None:
    """Apply the ``log_level`` / ``log_file`` pair from a pipeline config."""
    configure_logging(
        config.log_level,
        force=force,
        console=console,
        log_file=config.log_file or None,
    )


__all__ = [
    "DEFAULT_SUPPRESSED_LOGGERS",
    "LOG_DATEFMT",
    "LOG_FORMAT",
    "configure_from_config",
    "configure_logging",
]
