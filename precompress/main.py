#!/usr/bin/env python3
"""
precompress - command line entry point

Walks a directory tree and writes a ``.gz`` sibling next to every file that
gzip makes smaller, so a static file server can serve pre-compressed
content. Positional arguments are regular expressions for relative paths
to skip; a matching directory is skipped with everything below it.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

from loguru import logger

from precompress.pipeline import recursive
from precompress.utils.config import ConfigError, get_settings
from precompress.utils.helpers import compile_ignore_pattern, parse_mtime, safe_path

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"


def configure_logging(level: str) -> None:
    """Route loguru output to stderr at ``level``; stdout carries the result."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments; unset options fall back to settings."""

    parser = argparse.ArgumentParser(
        prog="precompress",
        description="Pre-compress files with gzip where it saves space.",
    )
    parser.add_argument(
        "--m-time",
        dest="mtime",
        default=None,
        help=(
            "RFC 3339 modification time applied to every file and artifact "
            "(default: PRECOMPRESS_MTIME or 1970-01-01T00:00:00Z)."
        ),
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of compression workers (default: PRECOMPRESS_CONCURRENCY or CPU count).",
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Directory to process (default: current working directory).",
    )
    parser.add_argument(
        "--refresh-stale",
        action="store_true",
        help="Re-compress files whose existing .gz has a different m-time.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log every file decision.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    parser.add_argument(
        "patterns",
        nargs="*",
        metavar="PATTERN",
        help="Regular expression for relative paths to ignore (can be repeated).",
    )

    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        args.mtime = parse_mtime(args.mtime) if args.mtime else settings.mtime
        compile_ignore_pattern(settings.ignore_patterns + args.patterns)
    except ConfigError as e:
        parser.error(str(e))
    if args.concurrency is None:
        args.concurrency = settings.concurrency
    elif args.concurrency < 1:
        parser.error(f"--concurrency must be positive, got {args.concurrency}")

    args.refresh_stale = args.refresh_stale or settings.refresh_stale
    args.patterns = settings.ignore_patterns + args.patterns
    args.root = str(safe_path(args.root)) if args.root else os.getcwd()
    return args


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""

    args = parse_args(argv)
    settings = get_settings()

    if args.verbose:
        configure_logging("DEBUG")
    elif args.quiet:
        configure_logging("WARNING")
    else:
        configure_logging(settings.log_level)

    result = recursive(
        args.root,
        args.mtime,
        args.concurrency,
        args.patterns,
        refresh_stale=args.refresh_stale,
        queue_factor=settings.queue_factor,
        buffer_size=settings.buffer_size,
    )
    print(f"{result.count} pre-compressed")

    if not result.ok:
        logger.error(f"Failed: {result.error}")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
