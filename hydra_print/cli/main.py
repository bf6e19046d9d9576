"""
hydra-print command line.

    hydra-print run part.gcode --preset virtual --offset-z 0.2
    hydra-print run part.gcode --preset marlin_serial --port /dev/ttyACM0
    hydra-print presets
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from hydra_print.core.config import PipelineConfig, load_pipeline_config_async
from hydra_print.core.device_state_machine import LifecycleState
from hydra_print.core.devices import PRESETS, Broadcaster, DeviceController, get_preset
from hydra_print.core.logging_config import configure_from_config
from hydra_print.core.logging_utils import get_module_logger
from hydra_print.core.protocol.command_queue import CommandResult
from .common import (
    add_common_cli_arguments,
    install_exception_handlers,
    log_shutdown,
    log_startup,
    positive_int,
)

logger = get_module_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hydra-print",
        description="Drive G-code devices over serial, HTTP proxy or an in-process emulator",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Stream a G-code file to one device")
    run_parser.add_argument("file", type=Path, help="G-code file to send")
    run_parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        default="virtual",
        help="Device preset (default: virtual)",
    )
    run_parser.add_argument("--port", type=str, default=None, help="Serial port for serial presets")
    run_parser.add_argument("--endpoint", type=str, default=None, help="Proxy endpoint for telnet presets")
    run_parser.add_argument("--name", type=str, default=None, help="Device name shown in logs")
    run_parser.add_argument("--open-string", dest="open_string", type=str, default=None,
                            help="Command sent once when the connection opens")
    run_parser.add_argument("--resend-max-attempts", dest="resend_max_attempts", type=positive_int,
                            default=None, help="Cap on HTTP resends of one command")
    for axis in ("x", "y", "z"):
        run_parser.add_argument(
            f"--offset-{axis}",
            dest=f"offset_{axis}",
            type=float,
            default=None,
            help=f"Offset added to {axis.upper()} on every G0/G1 move",
        )
    add_common_cli_arguments(run_parser)

    subparsers.add_parser("presets", help="List the available device presets")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def device_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for key in ("name", "endpoint", "open_string", "offset_x", "offset_y", "offset_z"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    return overrides


async def read_gcode(path: Path) -> List[str]:
    async with aiofiles.open(path, 'r', encoding='utf-8') as f:
        content = await f.read()
    return content.splitlines()


def summarize(results: List[Any]) -> Dict[str, int]:
    summary = {"sent": len(results), "acknowledged": 0, "failed": 0, "retries": 0}
    for result in results:
        if isinstance(result, CommandResult):
            summary["retries"] += result.retries
            if result.acknowledged:
                summary["acknowledged"] += 1
                continue
        summary["failed"] += 1
    return summary


async def run_file(args: argparse.Namespace, pipeline: PipelineConfig) -> int:
    if not args.file.exists():
        logger.error("G-code file not found: %s", args.file)
        return 1

    device = DeviceController(
        get_preset(args.preset),
        device_overrides(args),
        broadcaster=Broadcaster(),
        pipeline=pipeline,
        port=args.port,
    )

    try:
        state = await device.discover(real_hardware=True)
        if state is not LifecycleState.READY:
            logger.error("Device %s did not become ready (state: %s)", device.name, state.value)
            return 1

        entries = []
        for line in await read_gcode(args.file):
            entry = device.enqueue_line(line)
            if entry is not None:
                entries.append(entry)

        logger.info("Queued %d commands for %s", len(entries), device.name)
        results = await asyncio.gather(*(entry.wait() for entry in entries), return_exceptions=True)
        summary = summarize(results)
        logger.info(
            "Sent %d commands: %d acknowledged, %d failed, %d checksum resends",
            summary["sent"], summary["acknowledged"], summary["failed"], summary["retries"],
        )
        if device.checksum_runaway:
            logger.warning("Checksum runaway was hit during this run")
        return 0 if summary["failed"] == 0 else 2
    finally:
        await device.shutdown()


def list_presets() -> int:
    for name in sorted(PRESETS):
        preset = get_preset(name)
        print(f"{name:<15} {preset.info.connection_type:<10} {preset.info.description}")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.command == "presets":
        return list_presets()

    pipeline = (await load_pipeline_config_async(args.config)).apply_args_override(args)
    configure_from_config(pipeline, console=args.console_output)
    install_exception_handlers(logger, asyncio.get_running_loop())

    log_startup(logger, "hydra-print", file=args.file, preset=args.preset, log_file=pipeline.log_file)
    try:
        return await run_file(args, pipeline)
    finally:
        log_shutdown(logger, "hydra-print")


def run(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == "__main__":
    raise SystemExit(run())
