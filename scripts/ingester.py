#!/usr/bin/env python3
"""Command line entry point for the Radio/TV hot folder ingester.

Options follow the ingester's historical ``-name=value`` form
(``-hotfolder=/data/in -overwrite=true``); ``--name value`` works too.
Anything not given on the command line comes from the environment or
``.env`` (see ``app.utils.config.Settings``).

The ingester runs until a file appears in the stop folder, or until too
many consecutive files fail, in which case it exits with status 1.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.utils.config import Settings, get_settings
from app.utils.helpers import configure_logging
from domains.radio_tv.ingester import Ingester, prepare_folders


def _parse_bool(value: str) -> bool:
    # Same leniency as the historical option parser: only "true" is true
    return value.strip().lower() == "true"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Ingest Radio/TV program metadata dropped into a hot folder.",
    )
    parser.add_argument("-hotfolder", "--hotfolder", type=Path, help="Folder watched for new metadata files.")
    parser.add_argument(
        "-lukefolder", "--lukefolder", type=Path, help="Folder receiving failed files and their PID markers."
    )
    parser.add_argument("-coldfolder", "--coldfolder", type=Path, help="Folder receiving processed files.")
    parser.add_argument("-stopfolder", "--stopfolder", type=Path, help="A file placed here stops the ingester.")
    parser.add_argument("-wsdl", "--wsdl", help="Repository endpoint.")
    parser.add_argument("-username", "--username", help="Repository user.")
    parser.add_argument("-password", "--password", help="Repository password.")
    parser.add_argument(
        "-preingestschema", "--preingestschema", type=Path, help="XML schema the metadata files must conform to."
    )
    parser.add_argument("-overwrite", "--overwrite", type=_parse_bool, help="Overwrite flag (true/false).")
    parser.add_argument("--period", type=float, help="Seconds between hot folder scans.")
    parser.add_argument("--initial-delay", type=float, help="Seconds before the first scan.")
    parser.add_argument("--log-level", help="Log level (default from settings).")
    parser.add_argument("--log-file", type=Path, help="Also log to this file (rotated).")

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Overlay command line options on the environment settings."""

    base = base or get_settings()
    return base.with_overrides(
        hotfolder=args.hotfolder,
        lukefolder=args.lukefolder,
        coldfolder=args.coldfolder,
        stopfolder=args.stopfolder,
        wsdl=args.wsdl,
        username=args.username,
        password=args.password,
        preingestschema=args.preingestschema,
        overwrite=args.overwrite,
        scanner_period=args.period,
        scanner_initial_delay=args.initial_delay,
        log_level=args.log_level,
        log_file=args.log_file,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    settings = build_settings(args)
    configure_logging(settings.log_level, settings.log_file)

    prepare_folders(settings)

    try:
        ingester = Ingester(settings)
    except Exception as e:
        logger.error(f"Cannot start ingester: {e}")
        return 1

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, stopping after the current file.")
        ingester.scanner.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    return ingester.run()


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
