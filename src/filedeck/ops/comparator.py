"""Directory comparison over native directories and archive directories.

Both sides are flattened into ``relative_path -> DirectoryEntry`` maps with
forward-slash keys. Files are compared by size first and then byte for byte;
modification times are never trusted.
"""

from __future__ import annotations

import contextlib
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import IO, Any

from filedeck.core.errors import OperationError
from filedeck.core.logging import get_logger
from filedeck.vfs import native
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.paths import join_internal
from filedeck.vfs.types import DirectoryEntry, StepControl

log = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class DiffReason(StrEnum):
    TYPE = "type"
    SIZE = "size"
    CONTENT = "content"
    UNREADABLE = "unreadable"


class NativeTree:
    """A plain directory as a comparison side."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def label(self) -> str:
        return str(self.root)

    def entries(self, *, recursive: bool) -> dict[str, DirectoryEntry]:
        native.require_dir(self.root)
        if not recursive:
            listing = native.list_dir(self.root)
            return {e.name: e for e in [*listing.directories, *listing.files]}

        out: dict[str, DirectoryEntry] = {}
        for path, _st in native.walk(self.root):
            rel = path.relative_to(self.root).as_posix()
            try:
                out[rel] = native.stat_entry(path, relative_path=rel)
            except OSError as e:
                log.warning(f"compare: skipping unreadable entry {path}: {e.strerror or e}")
        return out

    @contextlib.contextmanager
    def open(self, relative_path: str) -> Iterator[IO[bytes]]:
        with native.open_source(self.root / relative_path) as f:
            yield f


class ArchiveTree:
    """A top-level archive or an archive-internal directory as a comparison side."""

    def __init__(
        self,
        store: ArchiveStore,
        archive_path: Path,
        internal_prefix: str = "",
        *,
        display_root: str | None = None,
    ) -> None:
        self.store = store
        self.archive_path = archive_path
        self.internal_prefix = internal_prefix
        self.display_root = display_root if display_root is not None else str(archive_path)

    @property
    def label(self) -> str:
        if self.internal_prefix:
            return f"{self.display_root}/{self.internal_prefix}"
        return self.display_root

    def entries(self, *, recursive: bool) -> dict[str, DirectoryEntry]:
        if not recursive:
            listing = self.store.list_entries(
                self.archive_path, self.internal_prefix, display_root=self.display_root
            )
            return {e.name: e for e in [*listing.directories, *listing.files]}
        walked = self.store.walk_entries(
            self.archive_path, self.internal_prefix, display_root=self.display_root
        )
        return {e.relative_path: e for e in walked}

    @contextlib.contextmanager
    def open(self, relative_path: str) -> Iterator[IO[bytes]]:
        internal = join_internal(self.internal_prefix, relative_path)
        with self.store.open_entry(self.archive_path, internal) as f:
            yield f


Tree = NativeTree | ArchiveTree


@dataclass(frozen=True)
class Difference:
    path: str
    reason: DiffReason

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "reason": str(self.reason)}


@dataclass
class ComparisonResult:
    """Four disjoint sets over the union of both sides' relative paths."""

    only_in_left: list[str] = field(default_factory=list)
    only_in_right: list[str] = field(default_factory=list)
    different: list[Difference] = field(default_factory=list)
    identical: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "onlyInLeft": list(self.only_in_left),
            "onlyInRight": list(self.only_in_right),
            "different": [d.to_dict() for d in self.different],
            "identical": list(self.identical),
            "summary": {
                "onlyInLeft": len(self.only_in_left),
                "onlyInRight": len(self.only_in_right),
                "different": len(self.different),
                "identical": len(self.identical),
            },
        }


class DirectoryComparator:
    def __init__(self, *, chunk_size: int = CHUNK_SIZE) -> None:
        self._chunk_size = chunk_size

    def compare(
        self,
        left: Tree,
        right: Tree,
        *,
        recursive: bool = False,
        control: StepControl | None = None,
    ) -> ComparisonResult:
        left_map = left.entries(recursive=recursive)
        right_map = right.entries(recursive=recursive)
        total = len(left_map) + len(right_map)
        result = ComparisonResult()

        for index, key in enumerate(sorted(left_map), start=1):
            if control is not None:
                control.check_cancelled()
            l_entry = left_map[key]
            r_entry = right_map.get(key)

            if r_entry is None:
                result.only_in_left.append(key)
            elif l_entry.is_directory and r_entry.is_directory:
                result.identical.append(key)
            elif l_entry.is_directory != r_entry.is_directory:
                result.different.append(Difference(key, DiffReason.TYPE))
            elif l_entry.size != r_entry.size:
                result.different.append(Difference(key, DiffReason.SIZE))
            else:
                reason = self._compare_content(left, right, key)
                if reason is None:
                    result.identical.append(key)
                else:
                    result.different.append(Difference(key, reason))

            if control is not None:
                control.report(index, total, key)

        result.only_in_right = sorted(k for k in right_map if k not in left_map)

        log.debug(
            f"compare left={left.label!r} right={right.label!r} recursive={recursive} "
            f"only_left={len(result.only_in_left)} only_right={len(result.only_in_right)} "
            f"different={len(result.different)} identical={len(result.identical)}"
        )
        return result

    def _compare_content(self, left: Tree, right: Tree, key: str) -> DiffReason | None:
        try:
            with left.open(key) as lf, right.open(key) as rf:
                while True:
                    lb = lf.read(self._chunk_size)
                    rb = rf.read(self._chunk_size)
                    if lb != rb:
                        return DiffReason.CONTENT
                    if not lb:
                        return None
        except (OSError, OperationError, zipfile.BadZipFile, zlib.error) as e:
            log.warning(f"compare: cannot read {key}: {e}")
            return DiffReason.UNREADABLE
