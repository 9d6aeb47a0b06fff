"""
Conditional compressor.

Writes ``<path>.gz`` next to a file only when the gzip stream at maximum
level is strictly smaller than the file itself. The encoder writes into a
buffer capped at the file size, so incompressible inputs are abandoned as
soon as the output outgrows them.
"""

import io
import os
import zlib
from typing import Optional

from loguru import logger

from precompress.utils.helpers import TEMP_SUFFIX, artifact_path, format_bytes

DEFAULT_BUFFER_SIZE = 32 * 1024

# wbits with +16 selects the gzip container around the deflate stream
GZIP_WBITS = zlib.MAX_WBITS | 16


class BudgetExceeded(Exception):
    """Compressed output grew past the size of the original file."""


class BudgetedBuffer:
    """Write-only view of a BytesIO that refuses to grow past ``budget`` bytes."""

    __slots__ = ("out", "remaining")

    def __init__(self, out: io.BytesIO, budget: int):
        self.out = out
        self.remaining = budget

    def write(self, data: bytes) -> int:
        n = self.out.write(data)
        self.remaining -= n
        if self.remaining < 0:
            raise BudgetExceeded(f"compressed output exceeds budget by {-self.remaining} bytes")
        return n


def _stream_compress(source, sink: BudgetedBuffer, buf: bytearray) -> int:
    """
    Deflate ``source`` into ``sink``.

    Returns:
        Number of bytes read from ``source``

    Raises:
        BudgetExceeded: If the sink budget runs out
    """
    encoder = zlib.compressobj(zlib.Z_BEST_COMPRESSION, zlib.DEFLATED, GZIP_WBITS)
    view = memoryview(buf)
    total = 0
    while True:
        n = source.readinto(buf)
        if not n:
            break
        total += n
        chunk = encoder.compress(view[:n])
        if chunk:
            sink.write(chunk)
    sink.write(encoder.flush())
    return total


def _write_artifact(path: str, out: io.BytesIO, mode: int, mtime_ns: int) -> None:
    tmp = path + TEMP_SUFFIX
    with out.getbuffer() as data, open(tmp, "wb") as f:
        f.write(data)
    os.chmod(tmp, mode)
    os.utime(tmp, ns=(mtime_ns, mtime_ns))
    os.replace(tmp, artifact_path(path))


def try_compress(
    path: str,
    mtime_ns: int,
    out: Optional[io.BytesIO] = None,
    buf: Optional[bytearray] = None,
) -> bool:
    """
    Pre-compress ``path`` if doing so saves space.

    The source file's modification time is normalized to ``mtime_ns`` before
    reading, and the artifact is given the same time. The artifact is
    written to ``<path>.gz~`` and renamed over ``<path>.gz``, so readers
    never observe a partial file.

    Args:
        path: File to compress
        mtime_ns: Target modification time in nanoseconds since the epoch
        out: Reusable output buffer, reset before use
        buf: Reusable read buffer

    Returns:
        True if ``<path>.gz`` was written, False if compression was not worthwhile

    Raises:
        OSError: On stat, read, write, or rename failures
    """
    if out is None:
        out = io.BytesIO()
    if buf is None:
        buf = bytearray(DEFAULT_BUFFER_SIZE)

    st = os.stat(path)
    if st.st_mtime_ns != mtime_ns:
        os.utime(path, ns=(mtime_ns, mtime_ns))

    out.seek(0)
    out.truncate()

    with open(path, "rb") as source:
        try:
            read = _stream_compress(source, BudgetedBuffer(out, st.st_size), buf)
        except BudgetExceeded:
            logger.debug(f"Skipping {path}: output would not be smaller than {st.st_size} bytes")
            return False

    size = out.tell()
    if size >= read:
        logger.debug(f"Skipping {path}: {size} compressed bytes for {read} read")
        return False

    _write_artifact(path, out, st.st_mode & 0o777, mtime_ns)
    logger.debug(f"Compressed {path}: {format_bytes(read)} -> {format_bytes(size)}")
    return True
