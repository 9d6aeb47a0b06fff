"""
Run orchestration: walk a tree and pre-compress it with a worker pool.
"""

import time
from datetime import datetime
from typing import Iterable

from loguru import logger

from precompress.models.results import RunResult
from precompress.pipeline.compressor import DEFAULT_BUFFER_SIZE
from precompress.pipeline.pool import WorkerPool
from precompress.pipeline.walker import walk
from precompress.utils.config import ConfigError
from precompress.utils.helpers import compile_ignore_pattern, to_mtime_ns


def recursive(
    root: str,
    mtime: datetime,
    concurrency: int,
    ignore_patterns: Iterable[str],
    *,
    refresh_stale: bool = False,
    queue_factor: int = 10,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> RunResult:
    """
    Pre-compress every eligible file below ``root``.

    The tree is walked on the calling thread while ``concurrency`` workers
    compress queued files. The walk stops at the first directory that cannot
    be listed; files already queued are still processed.

    Args:
        root: Tree root
        mtime: Modification time applied to sources and artifacts
        concurrency: Number of worker threads
        ignore_patterns: Regular expression fragments for relative paths to skip
        refresh_stale: Re-compress files whose artifact predates the source
        queue_factor: Queue capacity per worker
        buffer_size: Per-worker read buffer size in bytes

    Returns:
        Count of artifacts written and the first error. A traversal error
        takes precedence over a worker error.

    Raises:
        ConfigError: If the patterns or sizes are invalid; nothing is touched
    """
    if concurrency < 1:
        raise ConfigError(f"concurrency must be positive, got {concurrency}")
    if queue_factor < 1:
        raise ConfigError(f"queue factor must be positive, got {queue_factor}")
    if buffer_size < 1:
        raise ConfigError(f"buffer size must be positive, got {buffer_size}")

    ignore = compile_ignore_pattern(ignore_patterns)
    mtime_ns = to_mtime_ns(mtime)

    logger.info(f"Pre-compressing {root} with {concurrency} workers")
    started = time.monotonic()

    pool = WorkerPool(
        root,
        mtime_ns,
        ignore,
        concurrency=concurrency,
        queue_size=concurrency * queue_factor,
        buffer_size=buffer_size,
    )
    pool.start()

    walk_error = None
    try:
        queued = walk(root, "", pool.queue, ignore, mtime_ns if refresh_stale else None)
        logger.debug(f"Queued {queued} files")
    except OSError as e:
        logger.error(f"Traversal of {root} failed: {e}")
        walk_error = e
    finally:
        result = pool.join()

    if walk_error is not None:
        result.error = walk_error

    elapsed = time.monotonic() - started
    if result.ok:
        logger.success(f"Pre-compressed {result.count} files in {elapsed:.2f}s")
    else:
        logger.warning(f"Pre-compressed {result.count} files in {elapsed:.2f}s before failing")
    return result
