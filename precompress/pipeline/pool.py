"""
Worker pool and result aggregation.

A fixed number of threads drain one bounded queue of relative paths. Each
worker keeps its own buffers and its own tally. Failures are reported to
the shared ``ResultAggregator`` as they happen; tallies are added when the
queue closes.
"""

from __future__ import annotations

import io
import os
import queue
import re
import threading
from typing import List, Optional

from loguru import logger

from precompress.models.results import RunResult, WorkerResult
from precompress.pipeline.compressor import DEFAULT_BUFFER_SIZE, try_compress
from precompress.utils.helpers import is_ignored

# Marks the end of the queue; one is enqueued per worker.
CLOSED = None


class ResultAggregator:
    """Thread-safe sum of compressed files plus the first reported error."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._first_error: Optional[BaseException] = None

    def add(self, count: int) -> None:
        with self._lock:
            self._count += count

    def report_error(self, error: BaseException) -> bool:
        """Record ``error`` unless one was already recorded. Returns True if it won."""
        with self._lock:
            if self._first_error is not None:
                return False
            self._first_error = error
            return True

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def result(self) -> RunResult:
        with self._lock:
            return RunResult(count=self._count, error=self._first_error)


def worker(
    root: str,
    work_queue: "queue.Queue[Optional[str]]",
    mtime_ns: int,
    ignore: re.Pattern,
    aggregator: ResultAggregator,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> WorkerResult:
    """
    Drain ``work_queue`` until the close marker, compressing each item.

    After the first failure the worker stops compressing but keeps taking
    items so the producer never blocks on a full queue.
    """
    result = WorkerResult()
    out = io.BytesIO()
    buf = bytearray(buffer_size)

    while True:
        item = work_queue.get()
        if item is CLOSED:
            return result
        if result.error is not None:
            continue
        if is_ignored(ignore, item):
            logger.debug(f"Ignoring {item}")
            continue

        try:
            if try_compress(os.path.join(root, item), mtime_ns, out, buf):
                result.compressed += 1
        except Exception as e:
            logger.error(f"Failed to pre-compress {item}: {e}")
            result.error = e
            if not aggregator.report_error(e):
                logger.debug(f"Run already has a first error, not recording {item}")


class WorkerPool:
    """Fixed-size pool of compression threads fed by a bounded queue."""

    def __init__(
        self,
        root: str,
        mtime_ns: int,
        ignore: re.Pattern,
        concurrency: int,
        queue_size: int,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.root = root
        self.mtime_ns = mtime_ns
        self.ignore = ignore
        self.concurrency = concurrency
        self.buffer_size = buffer_size
        self.queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=queue_size)
        self.aggregator = ResultAggregator()
        self._threads: List[threading.Thread] = []
        self._closed = False

    def _run(self) -> None:
        result = worker(
            self.root, self.queue, self.mtime_ns, self.ignore, self.aggregator, self.buffer_size
        )
        self.aggregator.add(result.compressed)

    def start(self) -> "WorkerPool":
        for i in range(self.concurrency):
            thread = threading.Thread(
                target=self._run, name=f"precompress-worker-{i}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        logger.debug(f"Started {self.concurrency} workers")
        return self

    def submit(self, item: str) -> None:
        self.queue.put(item)

    def close(self) -> None:
        """Signal every worker that no more items will arrive."""
        if self._closed:
            return
        self._closed = True
        for _ in self._threads:
            self.queue.put(CLOSED)

    def join(self) -> RunResult:
        """Close the queue, wait for all workers, and return the merged result."""
        self.close()
        for thread in self._threads:
            thread.join()
        return self.aggregator.result()

    def __enter__(self) -> "WorkerPool":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.join()
