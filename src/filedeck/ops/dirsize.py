"""Recursive size scan for native and archive directories."""

from __future__ import annotations

import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filedeck.core.logging import get_logger
from filedeck.vfs import native
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.types import StepControl

log = get_logger(__name__)


@dataclass
class SizeResult:
    total_size: int = 0
    file_count: int = 0
    directory_count: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSize": self.total_size,
            "fileCount": self.file_count,
            "directoryCount": self.directory_count,
            "warnings": list(self.warnings),
        }


def native_size(root: Path, *, control: StepControl | None = None) -> SizeResult:
    """Sum file sizes below ``root``; the total is unknown while scanning."""
    native.require_dir(root)
    result = SizeResult()
    for path, st in native.walk(root, result.warnings):
        if control is not None:
            control.check_cancelled()
        if stat.S_ISDIR(st.st_mode):
            result.directory_count += 1
            continue
        result.file_count += 1
        result.total_size += int(st.st_size)
        if control is not None:
            control.report(result.file_count, 0, path.name)
    return result


def archive_size(
    store: ArchiveStore,
    archive_path: Path,
    internal_prefix: str = "",
    *,
    control: StepControl | None = None,
) -> SizeResult:
    """Sum uncompressed entry sizes below an archive-internal directory."""
    result = SizeResult()
    for entry in store.walk_entries(archive_path, internal_prefix):
        if control is not None:
            control.check_cancelled()
        if entry.is_directory:
            result.directory_count += 1
            continue
        result.file_count += 1
        result.total_size += entry.size
        if control is not None:
            control.report(result.file_count, 0, entry.name)
    return result
