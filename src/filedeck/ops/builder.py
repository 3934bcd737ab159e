"""Archive building from files and directories on disk."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filedeck.core.errors import UnknownOperationFailure
from filedeck.core.logging import get_logger
from filedeck.vfs import archives, native
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.types import StepControl

log = get_logger(__name__)


@dataclass
class BuildResult:
    files_added: int
    total_files: int
    archive_size_bytes: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filesAdded": self.files_added,
            "totalFiles": self.total_files,
            "archiveSizeBytes": self.archive_size_bytes,
            "warnings": list(self.warnings),
        }


class ArchiveBuilder:
    def __init__(self, store: ArchiveStore) -> None:
        self._store = store

    def collect(
        self, inputs: list[Path], warnings: list[str], *, exclude: Path | None = None
    ) -> list[tuple[Path, str]]:
        """Flatten inputs into (disk path, entry name) pairs.

        Directories contribute no entry of their own; their files are named
        ``<dirName>/<relative path>``. A plain file is named by its base name.
        ``exclude`` (the archive being written) is never collected.
        """
        skip = os.path.realpath(exclude) if exclude is not None else None
        out: list[tuple[Path, str]] = []
        for item in inputs:
            if not os.path.lexists(item):
                msg = f"Skipped missing input {item}"
                log.warning(msg)
                warnings.append(msg)
                continue
            base = item.name
            if item.is_dir():
                for path, st in native.walk(item, warnings):
                    if stat.S_ISDIR(st.st_mode) or os.path.realpath(path) == skip:
                        continue
                    out.append((path, f"{base}/{path.relative_to(item).as_posix()}"))
            elif os.path.realpath(item) != skip:
                out.append((item, base))
        return out

    def build(
        self,
        inputs: list[Path],
        archive_path: Path,
        *,
        control: StepControl | None = None,
    ) -> BuildResult:
        """Write every collected file into ``archive_path`` in one rewrite.

        Unreadable files are skipped with a warning. Cancellation or a build
        that adds no file leaves any existing archive untouched.

        Raises:
            OperationCancelledError: cancelled between files.
            UnknownOperationFailure: no file could be added.
        """
        warnings: list[str] = []
        collected = self.collect(inputs, warnings, exclude=archive_path)
        total = len(collected)
        names = {name for _, name in collected}
        added = 0

        with self._store.rewriting(archive_path, drop=lambda n: n in names) as out:
            for index, (path, name) in enumerate(collected):
                if control is not None:
                    control.check_cancelled()
                    control.report(index + 1, total, name)
                try:
                    archives.add_file(out, path, name)
                except OSError as e:
                    msg = f"Skipped unreadable file {path}: {e.strerror or e}"
                    log.warning(msg)
                    warnings.append(msg)
                    continue
                added += 1
                if control is not None:
                    control.pause()

            if added == 0:
                raise UnknownOperationFailure(
                    f"No files could be added to {archive_path} ({total} candidate(s))"
                )

        size = archive_path.stat().st_size
        log.debug(f"zip archive={str(archive_path)!r} added={added} total={total} size={size}")
        return BuildResult(
            files_added=added, total_files=total, archive_size_bytes=size, warnings=warnings
        )
