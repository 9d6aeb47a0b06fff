"""
End-to-end runs of the pre-compression pipeline over real temporary trees.

Each test builds a tree on disk, runs the whole pipeline, and checks the
files that end up next to the sources.
"""

import gzip
import os
from datetime import datetime, timezone

import pytest

from precompress.pipeline import recursive, walker
from precompress.utils.config import ConfigError
from precompress.utils.helpers import to_mtime_ns

MTIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
MTIME_NS = to_mtime_ns(MTIME)
TEXT = b"The quick brown fox jumps over the lazy dog.\n" * 250


@pytest.fixture
def site(tmp_path):
    """A small static site with compressible, incompressible and ignored files."""
    (tmp_path / "a.txt").write_bytes(TEXT[:10_000])
    (tmp_path / "b.bin").write_bytes(os.urandom(500))
    ignored = tmp_path / "sub" / "ignored"
    ignored.mkdir(parents=True)
    (ignored / "c.txt").write_bytes(TEXT)
    (tmp_path / "sub" / "d.css").write_bytes(TEXT)
    (tmp_path / "assets").mkdir()
    for i in range(20):
        (tmp_path / "assets" / f"chunk{i:02d}.js").write_bytes(TEXT + str(i).encode())
    return tmp_path


def artifacts(root):
    return sorted(str(p.relative_to(root)) for p in root.rglob("*.gz"))


def test_example_scenario(tmp_path):
    (tmp_path / "a.txt").write_bytes(TEXT[:10_000])
    (tmp_path / "b.bin").write_bytes(os.urandom(500))
    (tmp_path / "sub" / "ignored").mkdir(parents=True)
    (tmp_path / "sub" / "ignored" / "c.txt").write_bytes(TEXT)

    result = recursive(str(tmp_path), MTIME, 2, ["sub/ignored"])

    assert result.ok
    assert result.count == 1
    assert artifacts(tmp_path) == ["a.txt.gz"]
    assert (tmp_path / "a.txt.gz").stat().st_size < 10_000
    # nothing under the ignored directory was touched
    assert (tmp_path / "sub" / "ignored" / "c.txt").stat().st_mtime_ns != MTIME_NS


def test_artifacts_are_smaller_and_share_the_target_mtime(site):
    result = recursive(str(site), MTIME, 4, ["sub/ignored"])

    assert result.ok
    assert result.count == 22
    for gz in site.rglob("*.gz"):
        source = gz.with_name(gz.name[:-3])
        assert gz.stat().st_size < source.stat().st_size
        assert gzip.decompress(gz.read_bytes()) == source.read_bytes()
        assert gz.stat().st_mtime_ns == MTIME_NS
        assert source.stat().st_mtime_ns == MTIME_NS
    assert not list(site.rglob("*.gz~"))


def test_second_run_is_a_no_op(site):
    first = recursive(str(site), MTIME, 4, ["sub/ignored"])
    before = {p: p.read_bytes() for p in site.rglob("*.gz")}

    second = recursive(str(site), MTIME, 4, ["sub/ignored"])

    assert first.count == 22
    assert second.ok
    assert second.count == 0
    assert {p: p.read_bytes() for p in site.rglob("*.gz")} == before


def test_existing_artifact_is_never_rewritten(tmp_path):
    (tmp_path / "x.txt").write_bytes(TEXT)
    (tmp_path / "x.txt.gz").write_bytes(b"not really gzip")

    result = recursive(str(tmp_path), MTIME, 1, [])

    assert result.ok
    assert result.count == 0
    assert (tmp_path / "x.txt.gz").read_bytes() == b"not really gzip"


def test_refresh_stale_rewrites_outdated_artifacts(tmp_path):
    (tmp_path / "x.txt").write_bytes(TEXT)
    (tmp_path / "x.txt.gz").write_bytes(b"not really gzip")

    result = recursive(str(tmp_path), MTIME, 1, [], refresh_stale=True)

    assert result.count == 1
    assert gzip.decompress((tmp_path / "x.txt.gz").read_bytes()) == TEXT

    again = recursive(str(tmp_path), MTIME, 1, [], refresh_stale=True)
    assert again.count == 0


@pytest.mark.parametrize("concurrency", [1, 3, 8])
def test_concurrency_does_not_change_the_outcome(site, concurrency):
    result = recursive(str(site), MTIME, concurrency, ["sub/ignored"])

    assert result.ok
    assert result.count == 22
    assert artifacts(site) == ["a.txt.gz"] + [f"assets/chunk{i:02d}.js.gz" for i in range(20)] + ["sub/d.css.gz"]


def test_invalid_pattern_fails_before_touching_anything(site):
    with pytest.raises(ConfigError):
        recursive(str(site), MTIME, 2, ["("])

    assert artifacts(site) == []


def test_non_positive_concurrency_is_rejected(site):
    with pytest.raises(ConfigError):
        recursive(str(site), MTIME, 0, [])


def test_missing_root_is_reported_as_traversal_error(tmp_path):
    result = recursive(str(tmp_path / "nope"), MTIME, 2, [])

    assert result.count == 0
    assert isinstance(result.error, FileNotFoundError)


def test_traversal_error_wins_and_queued_work_still_drains(site, monkeypatch):
    real_list_entries = walker.list_entries

    def failing(directory):
        if directory.endswith("sub"):
            raise PermissionError(13, "Permission denied", directory)
        return real_list_entries(directory)

    def flaky_compress(path, mtime_ns, out, buf):
        if path.endswith("chunk05.js"):
            raise OSError("worker failed")
        return True

    monkeypatch.setattr(walker, "list_entries", failing)
    monkeypatch.setattr("precompress.pipeline.pool.try_compress", flaky_compress)

    result = recursive(str(site), MTIME, 2, [])

    assert isinstance(result.error, PermissionError)
    # a.txt, b.bin and assets/ come before sub/ and were all queued
    assert result.count >= 1
