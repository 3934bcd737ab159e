"""Unit tests for nested archive resolution and write-back."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from filedeck.core.errors import ArchiveCorruptError
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.nested import NestedArchiveResolver
from filedeck.vfs.paths import classify


@pytest.fixture()
def resolver(scratch_dir: Path) -> NestedArchiveResolver:
    return NestedArchiveResolver(ArchiveStore(), temp_dir=scratch_dir)


def _inner_names(outer: Path, inner: str) -> list[str]:
    with zipfile.ZipFile(outer) as zf, zf.open(inner) as f, zipfile.ZipFile(f) as izf:
        return sorted(izf.namelist())


def test_resolve_extracts_inner_archive(nested_zip: Path, resolver, scratch_dir: Path) -> None:
    desc = classify(f"{nested_zip}/inner.zip/a.txt")
    resolved = resolver.resolve(desc)
    try:
        assert resolved.final_internal_path == "a.txt"
        assert resolved.final_archive_path.parent == scratch_dir
        assert ArchiveStore().read_entry(resolved.final_archive_path, "a.txt") == "alpha"
    finally:
        resolved.cleanup()
    assert list(scratch_dir.iterdir()) == []


def test_readable_cleans_up_on_exit(nested_zip: Path, resolver, scratch_dir: Path) -> None:
    desc = classify(f"{nested_zip}/inner.zip/a.txt")
    with resolver.readable(desc) as (archive, internal):
        assert archive.exists()
        assert internal == "a.txt"
    assert list(scratch_dir.iterdir()) == []


def test_readable_cleans_up_on_error(nested_zip: Path, resolver, scratch_dir: Path) -> None:
    desc = classify(f"{nested_zip}/inner.zip/a.txt")
    with pytest.raises(RuntimeError):
        with resolver.readable(desc):
            raise RuntimeError("boom")
    assert list(scratch_dir.iterdir()) == []


def test_readable_passes_top_level_through(tmp_path: Path, make_zip, resolver) -> None:
    z = make_zip(tmp_path / "a.zip", {"x.txt": b"1"})
    with resolver.readable(classify(f"{z}/x.txt")) as (archive, internal):
        assert archive == z
        assert internal == "x.txt"


def test_mutable_writes_back_to_outer(
    nested_zip: Path, resolver, scratch_dir: Path, tmp_path: Path
) -> None:
    src = tmp_path / "b.txt"
    src.write_text("beta")
    desc = classify(f"{nested_zip}/inner.zip/b.txt")

    with resolver.mutable(desc) as (archive, internal):
        ArchiveStore().write_entry(archive, src, internal)

    assert _inner_names(nested_zip, "inner.zip") == ["a.txt", "b.txt"]
    with zipfile.ZipFile(nested_zip) as zf:
        assert sorted(zf.namelist()) == ["docs/readme.md", "inner.zip"]
    assert list(scratch_dir.iterdir()) == []


def test_mutable_skips_write_back_on_error(nested_zip: Path, resolver, scratch_dir: Path) -> None:
    before = nested_zip.read_bytes()
    desc = classify(f"{nested_zip}/inner.zip/a.txt")

    with pytest.raises(RuntimeError):
        with resolver.mutable(desc) as (archive, internal):
            ArchiveStore().delete_entry(archive, internal)
            raise RuntimeError("boom")

    assert nested_zip.read_bytes() == before
    assert list(scratch_dir.iterdir()) == []


def test_two_level_write_back(tmp_path: Path, make_zip, resolver, scratch_dir: Path) -> None:
    level2 = make_zip(tmp_path / "_b" / "l2.zip", {"deep.txt": b"d"}).read_bytes()
    level1 = make_zip(tmp_path / "_b" / "l1.zip", {"lib/l2.zip": level2}).read_bytes()
    outer = make_zip(tmp_path / "outer.zip", {"l1.zip": level1})

    desc = classify(f"{outer}/l1.zip/lib/l2.zip/deep.txt")
    assert desc.nested_archive_names == ("l1.zip", "lib/l2.zip")

    with resolver.mutable(desc) as (archive, internal):
        assert ArchiveStore().delete_entry(archive, internal) == 1

    with zipfile.ZipFile(outer) as zf, zf.open("l1.zip") as f1, zipfile.ZipFile(f1) as z1:
        with z1.open("lib/l2.zip") as f2, zipfile.ZipFile(f2) as z2:
            assert z2.namelist() == []
    assert list(scratch_dir.iterdir()) == []


def test_missing_inner_archive_is_corrupt(
    tmp_path: Path, make_zip, resolver, scratch_dir: Path
) -> None:
    outer = make_zip(tmp_path / "outer.zip", {"other.txt": b"1"})
    desc = classify(f"{outer}/missing.zip/a.txt")
    with pytest.raises(ArchiveCorruptError, match="missing.zip"):
        resolver.resolve(desc)
    assert list(scratch_dir.iterdir()) == []


def test_inner_entry_that_is_not_zip(
    tmp_path: Path, make_zip, resolver, scratch_dir: Path
) -> None:
    outer = make_zip(tmp_path / "outer.zip", {"fake.zip": b"plain text"})
    desc = classify(f"{outer}/fake.zip/a.txt")
    with pytest.raises(ArchiveCorruptError, match="not a ZIP"):
        resolver.resolve(desc)
    assert list(scratch_dir.iterdir()) == []
