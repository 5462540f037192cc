"""Command-line entry point for the live ingester."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config
from .errors import ConfigError
from .live import run_live

logger = logging.getLogger("philodown.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Save metadata and full-size images from a Philomena live feed.",
    )
    parser.add_argument(
        "--config",
        default="config.json",
        type=Path,
        help="Path to the JSON configuration file",
    )
    parser.add_argument(
        "--output",
        default=None,
        type=Path,
        help="Directory where metadata and images should be written",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        config = load_config(args.config, output_root=args.output)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(2)
    config.output_root = config.output_root.resolve()

    try:
        asyncio.run(run_live(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
