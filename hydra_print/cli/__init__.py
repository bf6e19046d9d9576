"""Command-line entry points."""

from .main import build_parser, main, run

__all__ = ["build_parser", "main", "run"]
