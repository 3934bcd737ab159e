"""ZIP archive primitives for the virtual filesystem.

Every mutating call rewrites the whole archive into a sibling temp file and
atomically replaces the original, so an archive is never left half-written.
Entry names are forward-slash normalized.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
import zipfile
import zlib
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import IO, Literal, overload

from filedeck.core.errors import (
    ArchiveCorruptError,
    NotAFileError,
    NotFoundError,
    UnknownOperationFailure,
)
from filedeck.core.logging import get_logger

from .paths import join_internal, normalize_internal_path
from .types import DirectoryEntry, Listing, StepControl

log = get_logger(__name__)

EntryKind = Literal["file", "directory"]


def _entry_mtime(info: zipfile.ZipInfo) -> float | None:
    try:
        return datetime(*info.date_time).timestamp()
    except (ValueError, OverflowError):
        return None


def _clone_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    zi = zipfile.ZipInfo(filename=info.filename, date_time=info.date_time)
    zi.compress_type = info.compress_type
    zi.external_attr = info.external_attr
    zi.create_system = info.create_system
    zi.comment = info.comment
    zi.file_size = info.file_size
    return zi


def open_source(path: Path) -> IO[bytes]:
    """Open a disk file for insertion into an archive."""
    return open(path, "rb")


def add_file(out: zipfile.ZipFile, path: Path, arcname: str) -> None:
    """Stream one disk file into an open archive as ``arcname``.

    The source is opened before the entry is started, so an unreadable file
    leaves the archive untouched.
    """
    info = zipfile.ZipInfo.from_file(path, arcname=arcname)
    info.compress_type = zipfile.ZIP_DEFLATED
    with open_source(path) as src, out.open(info, "w") as dst:
        shutil.copyfileobj(src, dst, 1024 * 1024)


def _is_under(name: str, internal_path: str) -> bool:
    """True for the entry itself, its explicit dir entry, and all descendants."""
    if not internal_path:
        return True
    return name == internal_path or name.startswith(internal_path + "/")


class ArchiveStore:
    """Read/write primitives over a single ZIP archive."""

    @contextlib.contextmanager
    def _open(self, archive_path: Path | str) -> Iterator[zipfile.ZipFile]:
        path = Path(archive_path)
        if not path.exists():
            raise NotFoundError(f"Archive does not exist: {path}")
        if path.is_dir():
            raise NotAFileError(f"Archive path is a directory: {path}")
        try:
            zf = zipfile.ZipFile(path, "r")
        except zipfile.BadZipFile as e:
            raise ArchiveCorruptError(str(path), str(e)) from e
        except OSError as e:
            raise UnknownOperationFailure.from_os_error(e) from e
        with zf:
            yield zf

    def entry_names(self, archive_path: Path | str) -> list[str]:
        with self._open(archive_path) as zf:
            return [i.filename.replace("\\", "/") for i in zf.infolist()]

    def entry_count(self, archive_path: Path | str) -> int:
        return len(self.entry_names(archive_path))

    def entry_kind(self, archive_path: Path | str, internal_path: str) -> EntryKind | None:
        """Return 'file', 'directory' or None when nothing exists at the path.

        Directories are explicit 'dir/' entries or prefixes implied by deeper
        entries. The archive root is a directory.
        """
        internal = normalize_internal_path(internal_path)
        if not internal:
            return "directory"
        kind: EntryKind | None = None
        for name in self.entry_names(archive_path):
            if name == internal:
                return "file"
            if name.startswith(internal + "/"):
                kind = "directory"
        return kind

    def list_entries(
        self,
        archive_path: Path | str,
        internal_prefix: str = "",
        *,
        display_root: str | None = None,
    ) -> Listing:
        """List one level of the virtual directory at ``internal_prefix``.

        Deeper entries collapse into a single synthetic directory per
        immediate child name.
        """
        prefix = normalize_internal_path(internal_prefix)
        root = display_root if display_root is not None else str(archive_path)

        files: dict[str, DirectoryEntry] = {}
        dirs: dict[str, DirectoryEntry] = {}

        with self._open(archive_path) as zf:
            for info in zf.infolist():
                name = info.filename.replace("\\", "/")
                if prefix and not name.startswith(prefix + "/"):
                    continue
                rel = name[len(prefix) + 1 :] if prefix else name
                parts = [p for p in rel.split("/") if p]
                if not parts:
                    continue

                child = parts[0]
                internal = join_internal(prefix, child)
                is_dir = len(parts) > 1 or info.is_dir()
                if is_dir:
                    if child in dirs:
                        continue
                    dirs[child] = DirectoryEntry(
                        name=child,
                        relative_path=child,
                        full_path=f"{root}/{internal}",
                        size=0,
                        modified_time=_entry_mtime(info),
                        is_directory=True,
                        is_archive_entry=True,
                    )
                else:
                    files[child] = DirectoryEntry(
                        name=child,
                        relative_path=child,
                        full_path=f"{root}/{internal}",
                        size=int(info.file_size),
                        modified_time=_entry_mtime(info),
                        is_directory=False,
                        is_archive_entry=True,
                    )

        display = f"{root}/{prefix}" if prefix else root
        return Listing(
            path=display,
            files=[files[k] for k in sorted(files)],
            directories=[dirs[k] for k in sorted(dirs)],
            is_archive_path=True,
        )

    def walk_entries(
        self,
        archive_path: Path | str,
        internal_prefix: str = "",
        *,
        display_root: str | None = None,
    ) -> list[DirectoryEntry]:
        """Every entry below ``internal_prefix``, directories included.

        ``relative_path`` is relative to the prefix. Directories implied only
        by deeper entries are synthesized.
        """
        prefix = normalize_internal_path(internal_prefix)
        root = display_root if display_root is not None else str(archive_path)
        out: dict[str, DirectoryEntry] = {}

        with self._open(archive_path) as zf:
            for info in zf.infolist():
                name = info.filename.replace("\\", "/")
                if prefix and not name.startswith(prefix + "/"):
                    continue
                rel = name[len(prefix) + 1 :] if prefix else name
                parts = [p for p in rel.split("/") if p]
                if not parts:
                    continue

                mtime = _entry_mtime(info)
                for depth in range(1, len(parts)):
                    dir_rel = "/".join(parts[:depth])
                    if dir_rel not in out:
                        out[dir_rel] = DirectoryEntry(
                            name=parts[depth - 1],
                            relative_path=dir_rel,
                            full_path=f"{root}/{join_internal(prefix, dir_rel)}",
                            size=0,
                            modified_time=mtime,
                            is_directory=True,
                            is_archive_entry=True,
                        )

                rel_path = "/".join(parts)
                out[rel_path] = DirectoryEntry(
                    name=parts[-1],
                    relative_path=rel_path,
                    full_path=f"{root}/{join_internal(prefix, rel_path)}",
                    size=0 if info.is_dir() else int(info.file_size),
                    modified_time=mtime,
                    is_directory=info.is_dir(),
                    is_archive_entry=True,
                )

        return [out[k] for k in sorted(out)]

    @overload
    def read_entry(
        self, archive_path: Path | str, internal_path: str, binary: Literal[True]
    ) -> bytes: ...

    @overload
    def read_entry(
        self, archive_path: Path | str, internal_path: str, binary: Literal[False] = ...
    ) -> str: ...

    def read_entry(
        self, archive_path: Path | str, internal_path: str, binary: bool = False
    ) -> bytes | str:
        internal = normalize_internal_path(internal_path)
        with self._open(archive_path) as zf:
            info = self._find(zf, internal)
            try:
                data = zf.read(info)
            except (zipfile.BadZipFile, zlib.error) as e:
                raise ArchiveCorruptError(str(archive_path), f"{internal}: {e}") from e
        if binary:
            return data
        return data.decode("utf-8", errors="replace")

    @contextlib.contextmanager
    def open_entry(self, archive_path: Path | str, internal_path: str) -> Iterator[IO[bytes]]:
        """Stream a single entry's bytes."""
        internal = normalize_internal_path(internal_path)
        with self._open(archive_path) as zf:
            info = self._find(zf, internal)
            with zf.open(info, "r") as f:
                yield f

    def extract_entry(
        self, archive_path: Path | str, internal_path: str, destination: Path
    ) -> int:
        """Extract one file entry to ``destination``; returns bytes written."""
        internal = normalize_internal_path(internal_path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self._open(archive_path) as zf:
            info = self._find(zf, internal)
            try:
                with zf.open(info, "r") as src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except (zipfile.BadZipFile, zlib.error) as e:
                raise ArchiveCorruptError(str(archive_path), f"{internal}: {e}") from e
            return int(info.file_size)

    def extract_tree(
        self,
        archive_path: Path | str,
        internal_prefix: str,
        destination_dir: Path,
        *,
        control: StepControl | None = None,
    ) -> int:
        """Extract every entry under a directory prefix; returns files written."""
        prefix = normalize_internal_path(internal_prefix)
        dest_root = destination_dir.resolve()
        dest_root.mkdir(parents=True, exist_ok=True)
        written = 0

        with self._open(archive_path) as zf:
            members = [
                i
                for i in zf.infolist()
                if _is_under(i.filename.replace("\\", "/"), prefix)
                and i.filename.replace("\\", "/").rstrip("/") != prefix
            ]
            files = [i for i in members if not i.is_dir()]
            for info in members:
                name = info.filename.replace("\\", "/")
                rel = name[len(prefix) + 1 :] if prefix else name
                target = (dest_root / rel).resolve()
                try:
                    target.relative_to(dest_root)
                except ValueError:
                    raise ArchiveCorruptError(
                        str(archive_path), f"entry escapes destination: {name}"
                    ) from None

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                if control is not None:
                    control.check_cancelled()
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info, "r") as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                written += 1
                if control is not None:
                    control.report(written, len(files), rel)
                    control.pause()

        return written

    def write_entry(
        self, archive_path: Path | str, source_file_path: Path | str, internal_path: str
    ) -> None:
        """Insert or replace one entry from a file; creates the archive if absent."""
        internal = normalize_internal_path(internal_path)
        source = Path(source_file_path)
        if not source.exists():
            raise NotFoundError(f"Source file does not exist: {source}")
        if source.is_dir():
            raise NotAFileError(f"Source is not a file: {source}")

        with self.rewriting(archive_path, drop=lambda n: n == internal) as out:
            add_file(out, source, internal)
        log.debug(f"archive.write_entry archive={str(archive_path)!r} entry={internal!r}")

    def write_tree(
        self,
        archive_path: Path | str,
        source_dir: Path,
        internal_prefix: str,
        *,
        control: StepControl | None = None,
    ) -> tuple[int, list[str]]:
        """Insert every file under ``source_dir`` below ``internal_prefix``.

        Unreadable files are skipped with a warning. Returns
        (files_added, warnings).
        """
        prefix = normalize_internal_path(internal_prefix)
        files = sorted(p for p in source_dir.rglob("*") if p.is_file())
        warnings: list[str] = []
        added = 0

        def drop(name: str) -> bool:
            return bool(prefix) and _is_under(name, prefix)

        with self.rewriting(archive_path, drop=drop) as out:
            if prefix:
                out.mkdir(prefix)
            for path in files:
                rel = path.relative_to(source_dir).as_posix()
                if control is not None:
                    control.check_cancelled()
                try:
                    add_file(out, path, join_internal(prefix, rel))
                except OSError as e:
                    msg = f"Skipped unreadable file {path}: {e.strerror or e}"
                    log.warning(msg)
                    warnings.append(msg)
                else:
                    added += 1
                if control is not None:
                    control.report(added + len(warnings), len(files), rel)
                    control.pause()

        return added, warnings

    def add_directory(self, archive_path: Path | str, internal_path: str) -> None:
        """Insert an explicit directory entry."""
        internal = normalize_internal_path(internal_path)
        with self.rewriting(archive_path, drop=lambda n: n == internal + "/") as out:
            out.mkdir(internal)

    def rename_entry(self, archive_path: Path | str, old_path: str, new_path: str) -> int:
        """Rename an entry or a whole directory prefix; returns entries renamed."""
        old = normalize_internal_path(old_path)
        new = normalize_internal_path(new_path)
        if not old or not new:
            raise NotAFileError("The archive root cannot be renamed")

        renamed = 0
        with self.rewriting(archive_path, drop=lambda n: _is_under(n, old)) as out:
            with self._open(archive_path) as src:
                for info in src.infolist():
                    name = info.filename.replace("\\", "/")
                    if not _is_under(name, old):
                        continue
                    clone = _clone_info(info)
                    clone.filename = new + name[len(old) :]
                    if info.is_dir():
                        out.writestr(clone, b"")
                    else:
                        with src.open(info, "r") as fin, out.open(clone, "w") as fout:
                            shutil.copyfileobj(fin, fout)
                    renamed += 1
            if not renamed:
                raise NotFoundError(f"Entry not found in archive: {old}")
        return renamed

    def entry_info(
        self,
        archive_path: Path | str,
        internal_path: str,
        *,
        display_root: str | None = None,
    ) -> DirectoryEntry:
        """Describe a single file entry."""
        internal = normalize_internal_path(internal_path)
        root = display_root if display_root is not None else str(archive_path)
        with self._open(archive_path) as zf:
            info = self._find(zf, internal)
        return DirectoryEntry(
            name=internal.rsplit("/", 1)[-1],
            relative_path=internal,
            full_path=f"{root}/{internal}",
            size=int(info.file_size),
            modified_time=_entry_mtime(info),
            is_directory=False,
            is_archive_entry=True,
        )

    def delete_entry(self, archive_path: Path | str, internal_path: str) -> int:
        """Remove an entry (or a whole directory prefix); returns entries removed."""
        internal = normalize_internal_path(internal_path)
        if not internal:
            raise NotAFileError("Refusing to delete the archive root; delete the archive file")

        names = self.entry_names(archive_path)
        doomed = [n for n in names if _is_under(n, internal)]
        if not doomed:
            raise NotFoundError(f"Entry not found in archive: {internal}")

        with self.rewriting(archive_path, drop=lambda n: _is_under(n, internal)):
            pass
        log.debug(
            f"archive.delete_entry archive={str(archive_path)!r} entry={internal!r} "
            f"removed={len(doomed)}"
        )
        return len(doomed)

    @contextlib.contextmanager
    def rewriting(
        self, archive_path: Path | str, *, drop: Callable[[str], bool]
    ) -> Iterator[zipfile.ZipFile]:
        """Copy kept entries into a new archive and yield it for additions.

        The original is replaced only when the block exits cleanly; on error
        the temp file is discarded and the original is untouched.
        """
        path = Path(archive_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as out:
                if path.exists():
                    with self._open(path) as src:
                        for info in src.infolist():
                            name = info.filename.replace("\\", "/")
                            if drop(name):
                                continue
                            clone = _clone_info(info)
                            if info.is_dir():
                                out.writestr(clone, b"")
                                continue
                            with src.open(info, "r") as fin, out.open(clone, "w") as fout:
                                shutil.copyfileobj(fin, fout)
                yield out
            if path.exists():
                shutil.copymode(path, tmp_path)
            os.replace(tmp_path, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
            raise

    def _find(self, zf: zipfile.ZipFile, internal: str) -> zipfile.ZipInfo:
        for info in zf.infolist():
            if info.filename.replace("\\", "/") == internal and not info.is_dir():
                return info
        if any(i.filename.replace("\\", "/").startswith(internal + "/") for i in zf.infolist()):
            raise NotAFileError(f"Archive entry is a directory: {internal}")
        raise NotFoundError(f"Entry not found in archive: {internal}")
