"""CLI entry point."""

import argparse
import os
from pathlib import Path
from typing import List, Optional

from common.logging_config import setup_logging
from cli.commands import configure_client
from cli.repl import repl_loop


def _master_address(value: str) -> str:
    host, sep, port = value.rpartition(':')
    if not sep or not host or not port.isdigit():
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {value!r}")
    return value


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='weed-client', description='Interactive client for a weed blob store')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--master', type=_master_address, help='Master server as HOST:PORT')
    parser.add_argument('--config', type=Path, help='Config file (default: ~/.weed/config.json)')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for CLI."""
    args = build_arg_parser().parse_args(argv)
    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'WARNING')

    logger = setup_logging('cli', log_level=log_level)
    setup_logging('client', log_level=log_level)
    setup_logging('common', log_level=log_level)

    if args.debug:
        logger.info("Debug logging enabled")

    configure_client(args.config, args.master)

    logger.info("CLI starting...")
    try:
        repl_loop()
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")


if __name__ == "__main__":
    main()
