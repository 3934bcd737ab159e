"""Filename and content search over native and archive directories."""

from __future__ import annotations

import fnmatch
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filedeck.core.errors import OperationError
from filedeck.core.logging import get_logger
from filedeck.vfs import native
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.paths import join_internal
from filedeck.vfs.types import DirectoryEntry, StepControl

log = get_logger(__name__)

_WILDCARDS = ("*", "?", "[")


@dataclass(frozen=True)
class SearchQuery:
    """Filename glob (substring when it has no wildcard) plus optional text."""

    filename_pattern: str
    content_text: str | None = None
    recursive: bool = True
    case_sensitive: bool = False

    def matches_name(self, name: str) -> bool:
        pattern = self.filename_pattern
        if not pattern:
            return True
        if not self.case_sensitive:
            name, pattern = name.lower(), pattern.lower()
        if any(ch in pattern for ch in _WILDCARDS):
            return fnmatch.fnmatchcase(name, pattern)
        return pattern in name

    def matches_content(self, data: bytes) -> bool:
        if not self.content_text:
            return True
        text = data.decode("utf-8", errors="replace")
        needle = self.content_text
        if not self.case_sensitive:
            text, needle = text.lower(), needle.lower()
        return needle in text


@dataclass
class SearchResult:
    matches: list[DirectoryEntry] = field(default_factory=list)
    scanned: int = 0
    truncated: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [m.to_dict() for m in self.matches],
            "totalResults": len(self.matches),
            "scanned": self.scanned,
            "truncated": self.truncated,
            "warnings": list(self.warnings),
        }


def _run(
    query: SearchQuery,
    candidates: Iterable[DirectoryEntry],
    read: Callable[[DirectoryEntry], bytes],
    *,
    max_results: int,
    control: StepControl | None,
) -> SearchResult:
    result = SearchResult()
    for entry in candidates:
        if control is not None:
            control.check_cancelled()
        result.scanned += 1
        if control is not None:
            control.report(result.scanned, 0, entry.name)
        if not query.matches_name(entry.name):
            continue
        if query.content_text:
            if entry.is_directory:
                continue
            try:
                data = read(entry)
            except (OSError, OperationError) as e:
                msg = f"Skipped unreadable file {entry.full_path}: {e}"
                log.warning(msg)
                result.warnings.append(msg)
                continue
            if not query.matches_content(data):
                continue
        result.matches.append(entry)
        if len(result.matches) >= max_results:
            result.truncated = True
            break
    return result


def search_native(
    root: Path,
    query: SearchQuery,
    *,
    max_results: int = 1000,
    control: StepControl | None = None,
) -> SearchResult:
    native.require_dir(root)
    warnings: list[str] = []

    def candidates() -> Iterable[DirectoryEntry]:
        if not query.recursive:
            listing = native.list_dir(root)
            yield from listing.directories
            yield from listing.files
            return
        for path, _st in native.walk(root, warnings):
            try:
                yield native.stat_entry(path, relative_path=path.relative_to(root).as_posix())
            except OSError:
                continue

    def read(entry: DirectoryEntry) -> bytes:
        return native.read_bytes(Path(entry.full_path))

    result = _run(query, candidates(), read, max_results=max_results, control=control)
    result.warnings[:0] = warnings
    return result


def search_archive(
    store: ArchiveStore,
    archive_path: Path,
    internal_prefix: str,
    query: SearchQuery,
    *,
    display_root: str | None = None,
    max_results: int = 1000,
    control: StepControl | None = None,
) -> SearchResult:
    if query.recursive:
        entries = store.walk_entries(archive_path, internal_prefix, display_root=display_root)
    else:
        listing = store.list_entries(archive_path, internal_prefix, display_root=display_root)
        entries = [*listing.directories, *listing.files]

    def read(entry: DirectoryEntry) -> bytes:
        internal = join_internal(internal_prefix, entry.relative_path)
        return store.read_entry(archive_path, internal, True)

    return _run(query, entries, read, max_results=max_results, control=control)
