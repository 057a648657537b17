from __future__ import annotations

import argparse
import sys

import yaml

from .config import documented_default_config


def print_default_config() -> None:
    yaml.safe_dump(documented_default_config(), sys.stdout, sort_keys=False)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="appliance-monitor",
        description="Vibration-based appliance activity monitor",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("start", help="Run the monitor and its API server", add_help=False)
    sub.add_parser("config", help="Print the default configuration as YAML")
    args, rest = parser.parse_known_args(argv)

    if args.command == "config":
        print_default_config()
        return
    if args.command not in (None, "start"):
        parser.error(f"unknown command {args.command!r}")

    from .app import main as app_main

    app_main(rest)
