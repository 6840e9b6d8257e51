#!/usr/bin/env python3
"""Probe the external conversion tools and report which ones are usable."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import List

from file_converter.config import Settings, get_settings
from file_converter.monitoring import DependencyStatus, check_dependencies


def _load_settings(config_file: str | None) -> Settings:
    if config_file:
        return Settings.from_source(config_file=config_file)
    return get_settings()


def _print_table(statuses: List[DependencyStatus]) -> None:
    width = max(len(status.name) for status in statuses)
    for status in statuses:
        state = "ok" if status.available else "missing"
        kind = "optional" if status.optional else "required"
        print(f"{status.name.ljust(width)}  {state:<7}  {kind:<8}  {status.detail}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check external tools used by the conversion service.")
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to a settings YAML file (default: FCS_CONFIG_FILE or ./config/settings.yaml)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = _load_settings(args.config)
    statuses = asyncio.run(check_dependencies(settings))

    if args.json:
        print(json.dumps([status.to_dict() for status in statuses], indent=2))
    else:
        _print_table(statuses)

    missing = [status for status in statuses if not status.available and not status.optional]
    return 1 if missing else 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
