"""Types shared by the virtual filesystem layer.

ASCII-only.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

ProgressSink = Callable[[int, int, str], None]


class StepControl(Protocol):
    """Cancellation and progress hooks threaded through bulk steps."""

    def check_cancelled(self) -> None: ...

    def report(self, current: int, total: int, label: str) -> None: ...

    def pause(self) -> None: ...


class PathKind(StrEnum):
    PLAIN = "plain"
    ARCHIVE = "archive"
    NESTED = "nested"


class LinkTargetType(StrEnum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class PathDescriptor:
    """Classified form of a user-supplied path.

    ``internal_path`` is always the full forward-slash path inside the
    outermost archive, including any nested archive segments.
    ``nested_archive_names`` holds each inner archive's path relative to its
    parent archive, outermost first.
    """

    original: str
    native_path: str
    is_archive_path: bool = False
    archive_file: str = ""
    internal_path: str = ""
    nested_archive_names: tuple[str, ...] = ()

    @property
    def is_nested(self) -> bool:
        return bool(self.nested_archive_names)

    @property
    def kind(self) -> PathKind:
        if not self.is_archive_path:
            return PathKind.PLAIN
        if self.is_nested:
            return PathKind.NESTED
        return PathKind.ARCHIVE

    @property
    def final_internal_path(self) -> str:
        """Entry path inside the innermost archive."""
        if not self.is_nested:
            return self.internal_path
        consumed = "/".join(self.nested_archive_names)
        return self.internal_path[len(consumed) :].lstrip("/")

    @property
    def name(self) -> str:
        if self.is_archive_path and self.internal_path:
            return self.internal_path.rsplit("/", 1)[-1]
        return os.path.basename(self.native_path.rstrip("/\\")) or self.native_path

    def display(self) -> str:
        """User-facing path with forward-slash internal part."""
        if not self.is_archive_path:
            return self.native_path
        if not self.internal_path:
            return self.archive_file
        return f"{self.archive_file}/{self.internal_path}"

    def member_view(self) -> PathDescriptor:
        """View an archive-root path as the archive file itself.

        A top-level archive root becomes a plain path to the archive file. A
        nested archive root becomes an entry path inside its parent archive.
        Any other descriptor is returned unchanged.
        """
        if not self.is_archive_path or self.final_internal_path:
            return self
        if not self.is_nested:
            return PathDescriptor(original=self.original, native_path=self.archive_file)
        return replace(self, nested_archive_names=self.nested_archive_names[:-1])


@dataclass
class ResolvedNestedPath:
    """Flat view of a nested-archive path.

    Owns every temp file in ``temp_paths``; ``cleanup`` must run on every exit
    path. ``temp_paths[i]`` holds the extracted archive named by
    ``nested_archive_names[i]``.
    """

    final_archive_path: Path
    final_internal_path: str
    temp_paths: list[Path] = field(default_factory=list)

    def cleanup(self) -> None:
        for p in reversed(self.temp_paths):
            with contextlib.suppress(FileNotFoundError):
                p.unlink()
        self.temp_paths.clear()


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class DirectoryEntry:
    """Unified directory entry for native and archive listings."""

    name: str
    relative_path: str
    full_path: str
    size: int
    modified_time: float | None
    is_directory: bool
    is_symlink: bool = False
    link_target_type: LinkTargetType | None = None
    is_archive_entry: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.full_path,
            "size": self.size,
            "modified": _iso(self.modified_time),
            "isDirectory": self.is_directory,
            "isFile": not self.is_directory,
            "isSymlink": self.is_symlink,
            "linkTargetType": None if self.link_target_type is None else str(self.link_target_type),
            "isArchiveEntry": self.is_archive_entry,
        }


@dataclass(frozen=True)
class Listing:
    """One level of a (virtual) directory, split into files and directories."""

    path: str
    files: list[DirectoryEntry]
    directories: list[DirectoryEntry]
    is_archive_path: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "totalItems": len(self.files) + len(self.directories),
            "directories": [d.to_dict() for d in self.directories],
            "files": [f.to_dict() for f in self.files],
            "summary": {
                "totalFiles": len(self.files),
                "totalDirectories": len(self.directories),
            },
            "isArchivePath": self.is_archive_path,
        }
