"""
Helper utilities for precompress.

Common functions used by the pipeline and the CLI.
"""

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

from pydantic import TypeAdapter, ValidationError

from precompress.utils.config import ConfigError

ARTIFACT_SUFFIX = ".gz"
TEMP_SUFFIX = ".gz~"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DATETIME = TypeAdapter(datetime)


def compile_ignore_pattern(fragments: Iterable[str]) -> re.Pattern:
    """
    Compile ignore fragments into one alternation.

    Each fragment is an independent alternative. Callers match relative
    paths with ``fullmatch`` so every alternative is anchored to the whole
    path. With no fragments the pattern only matches the empty string.

    Args:
        fragments: Regular expression fragments

    Returns:
        Compiled pattern

    Raises:
        ConfigError: If the fragments do not form a valid expression
    """
    source = "|".join(f"(?:{fragment})" for fragment in fragments)
    try:
        return re.compile(source)
    except re.error as e:
        raise ConfigError(f"invalid ignore pattern {source!r}: {e}") from e


def is_ignored(pattern: re.Pattern, relative_path: str) -> bool:
    """Check whether a relative path matches the ignore pattern as a whole."""
    return pattern.fullmatch(relative_path) is not None


def join_relative(prefix: str, name: str) -> str:
    """Join a relative directory prefix and an entry name with ``/``."""
    if not prefix:
        return name
    return f"{prefix}/{name}"


def artifact_path(path: str) -> str:
    """Return the compressed sibling path for ``path``."""
    return path + ARTIFACT_SUFFIX


def parse_mtime(ts_str: str) -> datetime:
    """
    Parse an RFC 3339 timestamp string to an aware datetime.

    Parsed with pydantic's datetime parser after upper-casing, so ``t``
    and ``z`` are accepted, as are fractions of any length.
    Timestamps without an offset are taken as UTC.

    Raises:
        ConfigError: If the string is not a timestamp
    """
    try:
        parsed = _DATETIME.validate_python(ts_str.strip().upper())
    except ValidationError as e:
        raise ConfigError(f"invalid m-time {ts_str!r}: {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_mtime_ns(moment: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the epoch, exactly."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(microseconds=1) * 1000


def format_bytes(bytes_count: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def safe_path(path: str) -> Path:
    """
    Convert string to Path, handling edge cases.

    Args:
        path: Path string

    Returns:
        Path object
    """
    return Path(path).expanduser().resolve()
