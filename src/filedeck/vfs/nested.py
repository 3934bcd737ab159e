"""Flattening of nested-archive paths.

Each level of a nested path is extracted to its own uniquely named temp file
so the innermost archive can be handled like a top-level one. Temp files are
owned by the ``ResolvedNestedPath`` and released by the context managers on
every exit path.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from filedeck.core.errors import ArchiveCorruptError, NotAFileError, NotFoundError
from filedeck.core.logging import get_logger

from .archives import ArchiveStore
from .detect import looks_like_zip
from .types import PathDescriptor, ResolvedNestedPath

log = get_logger(__name__)


class NestedArchiveResolver:
    def __init__(self, store: ArchiveStore, *, temp_dir: Path | None = None) -> None:
        self._store = store
        self._temp_dir = temp_dir

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir if self._temp_dir is not None else Path(tempfile.gettempdir())

    def _new_temp(self, name: str) -> Path:
        suffix = Path(name).suffix or ".zip"
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix="filedeck-nested-", suffix=suffix, dir=self._temp_dir
        )
        os.close(fd)
        return Path(tmp_name)

    def resolve(self, descriptor: PathDescriptor) -> ResolvedNestedPath:
        """Extract every nested level, outermost first.

        On failure the temp files created so far are removed before the error
        propagates.

        Raises:
            ArchiveCorruptError: an intermediate archive is missing, is not a
                ZIP archive, or cannot be read.
        """
        resolved = ResolvedNestedPath(
            final_archive_path=Path(descriptor.archive_file),
            final_internal_path=descriptor.final_internal_path,
        )
        current = Path(descriptor.archive_file)
        try:
            for name in descriptor.nested_archive_names:
                tmp = self._new_temp(name)
                resolved.temp_paths.append(tmp)
                try:
                    self._store.extract_entry(current, name, tmp)
                except (NotFoundError, NotAFileError) as e:
                    raise ArchiveCorruptError(
                        descriptor.display(), f"nested archive '{name}' unavailable: {e.message}"
                    ) from e
                with open(tmp, "rb") as f:
                    if not looks_like_zip(f):
                        raise ArchiveCorruptError(
                            descriptor.display(), f"'{name}' is not a ZIP archive"
                        )
                current = tmp
        except BaseException:
            resolved.cleanup()
            raise

        resolved.final_archive_path = current
        log.debug(
            f"nested.resolve path={descriptor.display()!r} levels={len(resolved.temp_paths)}"
        )
        return resolved

    def write_back(self, descriptor: PathDescriptor, resolved: ResolvedNestedPath) -> None:
        """Re-insert each modified level into its parent, innermost first."""
        names = descriptor.nested_archive_names
        for i in reversed(range(len(names))):
            parent = Path(descriptor.archive_file) if i == 0 else resolved.temp_paths[i - 1]
            self._store.write_entry(parent, resolved.temp_paths[i], names[i])
        log.debug(f"nested.write_back path={descriptor.display()!r} levels={len(names)}")

    @contextlib.contextmanager
    def readable(self, descriptor: PathDescriptor) -> Iterator[tuple[Path, str]]:
        """Yield (archive_path, internal_path) for reading an archive path."""
        if not descriptor.is_nested:
            yield Path(descriptor.archive_file), descriptor.internal_path
            return
        resolved = self.resolve(descriptor)
        try:
            yield resolved.final_archive_path, resolved.final_internal_path
        finally:
            resolved.cleanup()

    @contextlib.contextmanager
    def mutable(self, descriptor: PathDescriptor) -> Iterator[tuple[Path, str]]:
        """Like ``readable``; on clean exit the edit is written back.

        A write-back failure propagates; temp files are removed either way.
        """
        if not descriptor.is_nested:
            yield Path(descriptor.archive_file), descriptor.internal_path
            return
        resolved = self.resolve(descriptor)
        try:
            yield resolved.final_archive_path, resolved.final_internal_path
            try:
                self.write_back(descriptor, resolved)
            except Exception as e:
                log.error(f"nested.write_back failed path={descriptor.display()!r}: {e}")
                raise
        finally:
            resolved.cleanup()
