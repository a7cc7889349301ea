#!/usr/bin/env python3
"""
estim CLI — interactive shell for reading and writing ET232 registers.

Usage:
    python scripts/estim_cli.py --port /dev/ttyUSB0
    python scripts/estim_cli.py --port COM3 --no-handshake
    python scripts/estim_cli.py --config device.yaml
    python scripts/estim_cli.py --port /dev/ttyUSB0 --cmds "read Mode; write PotA 80; info"
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from estim import ET232, EstimError
from estim.config import DeviceConfig, load_config
from estim.shell import EstimShell


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Interactive shell for the ET232.")
    parser.add_argument("--port", help="Serial port name (e.g. /dev/ttyUSB0 or COM1)")
    parser.add_argument("--config", type=Path, help="Path to a YAML device config file")
    parser.add_argument(
        "--no-handshake",
        action="store_true",
        help="Skip the serial handshake on start",
    )
    parser.add_argument(
        "--cmds",
        default="",
        help='Run non-interactively: a ";"-separated list of commands',
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (DEBUG shows every frame on the wire)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> DeviceConfig:
    """Merge the optional config file with command-line overrides."""
    if args.config is not None:
        config = load_config(args.config)
        if args.port:
            config = replace(config, port=args.port)
    elif args.port:
        config = DeviceConfig(port=args.port)
    else:
        raise SystemExit("serial port name must be specified with --port or --config")
    return config


def main() -> int:
    args = build_parser().parse_args()

    try:
        config = resolve_config(args)
    except (FileNotFoundError, EstimError) as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        device = ET232.from_config(config)
        device.connect()
    except (FileNotFoundError, EstimError) as exc:
        print(f"Cannot connect: {exc}", file=sys.stderr)
        return 1

    try:
        shell = EstimShell(device)
        if config.handshake and not args.no_handshake:
            shell.onecmd("handshake")
        if args.cmds:
            shell.run_commands(args.cmds)
        else:
            shell.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted by user")
    finally:
        device.disconnect()

    return 0


if __name__ == "__main__":
    sys.exit(main())
