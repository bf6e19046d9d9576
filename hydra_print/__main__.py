"""Allow ``python -m hydra_print``."""

from __future__ import annotations

from hydra_print.cli.main import run

if __name__ == "__main__":
    raise SystemExit(run())
