#!/usr/bin/env python3
"""
GymBook API - gym appointment booking backend.

Main entry point for the application.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from gymbook.core.config import Settings, load_settings
from gymbook.core.exceptions import ConfigurationError
from gymbook.core.infra import ProcessShell
from gymbook.core.logger import setup_structured_logging
from web.app import create_app


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="GymBook API server")
    parser.add_argument("--host", help="Listener host (overrides HOST)")
    parser.add_argument("--port", type=int, help="Listener port (overrides PORT)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides LOG_LEVEL)",
    )
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Fold command line overrides into the loaded settings."""
    server_updates = {}
    if args.host:
        server_updates["host"] = args.host
    if args.port:
        server_updates["port"] = args.port
    if server_updates:
        settings = settings.model_copy(
            update={"server": settings.server.model_copy(update=server_updates)}
        )
    if args.log_level:
        settings = settings.model_copy(
            update={"logging": settings.logging.model_copy(update={"level": args.log_level})}
        )
    return settings


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = apply_overrides(load_settings(), args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        return 1

    setup_structured_logging(
        level=settings.logging.level,
        json_format=settings.logging.json_format,
        log_dir=settings.logging.directory,
        is_production=settings.is_production(),
    )

    shell = ProcessShell(settings, app_factory=lambda s, db: create_app(s, db))
    return asyncio.run(shell.run())


if __name__ == "__main__":
    sys.exit(main())
