"""Device control protocol engine for G-code fabrication devices."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

from .cli.main import main, run as _run_cli

try:
    __version__ = metadata.version("hydra-print")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Convenience wrapper that runs the async CLI entry point."""
    return _run_cli(list(argv) if argv is not None else None)


__all__ = ["__version__", "main", "run"]
