"""
Tree walker for the pre-compression pipeline.

Enumerates a directory tree depth-first and yields the relative path of
every regular file that still needs a compressed sibling. Ignored
directories are pruned with their whole subtree, ``.gz`` files are never
queued, and a file whose ``.gz`` sibling already sits in the same listing
is skipped.
"""

import os
import queue
import re
from typing import Iterator, List, Optional

from loguru import logger

from precompress.utils.helpers import ARTIFACT_SUFFIX, is_ignored, join_relative


def list_entries(directory: str) -> List[os.DirEntry]:
    """
    List ``directory`` sorted by entry name.

    Raises:
        OSError: If the directory cannot be listed
    """
    with os.scandir(directory) as it:
        return sorted(it, key=lambda entry: entry.name)


def find_sibling(entries: List[os.DirEntry], start: int, needle: str) -> Optional[os.DirEntry]:
    """
    Look for ``needle`` in the sorted ``entries`` from index ``start`` on.

    The scan stops at the first name that sorts after ``needle``.
    """
    for i in range(start, len(entries)):
        name = entries[i].name
        if name == needle:
            return entries[i]
        if name > needle:
            break
    return None


def _is_stale(entry: os.DirEntry, sibling: os.DirEntry, mtime_ns: int) -> bool:
    try:
        source_ns = entry.stat(follow_symlinks=False).st_mtime_ns
        artifact_ns = sibling.stat(follow_symlinks=False).st_mtime_ns
    except FileNotFoundError:
        return True
    return source_ns != mtime_ns or artifact_ns != mtime_ns


def iter_work_items(
    root: str,
    ignore: re.Pattern,
    prefix: str = "",
    refresh_stale_for: Optional[int] = None,
) -> Iterator[str]:
    """
    Yield relative paths of files under ``root/prefix`` that need compressing.

    Directories are visited depth-first in name order using an explicit
    stack, so tree depth is not limited by the interpreter's recursion limit.

    Args:
        root: Tree root
        ignore: Compiled ignore pattern, matched against whole relative paths
        prefix: Relative directory to start from
        refresh_stale_for: When set, a file with an existing ``.gz`` sibling
            is still yielded if either of them has a modification time other
            than this value (nanoseconds)

    Raises:
        OSError: If any directory cannot be listed; enumeration stops there
    """
    stack = [(prefix, list_entries(os.path.join(root, prefix)), 0)]

    while stack:
        current, entries, index = stack.pop()
        if index >= len(entries):
            continue

        entry = entries[index]
        stack.append((current, entries, index + 1))
        path = join_relative(current, entry.name)

        if entry.is_dir(follow_symlinks=False):
            if is_ignored(ignore, path):
                logger.debug(f"Ignoring directory {path}")
                continue
            stack.append((path, list_entries(os.path.join(root, path)), 0))

        elif entry.is_file(follow_symlinks=False):
            if entry.name.endswith(ARTIFACT_SUFFIX):
                continue

            sibling = find_sibling(entries, index + 1, entry.name + ARTIFACT_SUFFIX)
            if sibling is None:
                yield path
            elif refresh_stale_for is not None and _is_stale(entry, sibling, refresh_stale_for):
                logger.debug(f"Refreshing stale artifact for {path}")
                yield path
            else:
                logger.debug(f"Skipping {path}: artifact already present")


def walk(
    root: str,
    prefix: str,
    work_queue: "queue.Queue[str]",
    ignore: re.Pattern,
    refresh_stale_for: Optional[int] = None,
) -> int:
    """
    Push every work item under ``root/prefix`` onto ``work_queue``.

    Blocks while the queue is full.

    Returns:
        Number of items queued

    Raises:
        OSError: If a directory listing fails
    """
    queued = 0
    for item in iter_work_items(root, ignore, prefix, refresh_stale_for):
        work_queue.put(item)
        queued += 1
    return queued
