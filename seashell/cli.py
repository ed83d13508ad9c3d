"""
seashell CLI

Entry point for the seashell command.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from seashell import __version__
from seashell.client import EXIT_ERROR, EXIT_SUCCESS, EXIT_USAGE, client_command
from seashell.config import Config
from seashell.devices import list_input_devices
from seashell.errors import AudioDeviceError
from seashell.server import run_server
from seashell.session import COMMANDS


def setup_logging(verbose: bool = False) -> None:
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="seashell",
        description="Always-listening local speech-to-text",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"seashell {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to config file (default: config.yml in the project root)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Start listening and transcribing",
    )
    serve_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    client_parser = subparsers.add_parser(
        "client",
        help="Send a command to the running server",
    )
    client_parser.add_argument(
        "client_command",
        choices=COMMANDS,
        help="toggle/pause/resume capture, copy/clear the transcript, quit, or query status/transcript",
    )

    subparsers.add_parser(
        "devices",
        help="List audio input devices",
    )

    return parser


def list_devices() -> int:
    try:
        devices = list_input_devices()
    except AudioDeviceError as e:
        logging.getLogger(__name__).error(str(e))
        return EXIT_ERROR

    if not devices:
        print("No input devices found")
    for device in devices:
        print(f"{device}  {device.channels}ch @ {device.default_sample_rate:.0f} Hz")
    return EXIT_SUCCESS


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return EXIT_USAGE

    if parsed.command == "serve":
        setup_logging(verbose=parsed.verbose)
        config = Config.load(parsed.config)
        run_server(config, verbose=parsed.verbose)
        return EXIT_SUCCESS

    # Minimal logging for one-shot commands
    logging.basicConfig(
        level=logging.ERROR,
        format="%(message)s",
        stream=sys.stderr,
    )

    if parsed.command == "devices":
        return list_devices()

    if parsed.command == "client":
        config = Config.load(parsed.config)
        return client_command(config, parsed.client_command)

    print(f"Unknown command: {parsed.command}", file=sys.stderr)
    return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
