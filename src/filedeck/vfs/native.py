"""Plain filesystem primitives.

All functions take absolute paths and raise taxonomy errors from
``filedeck.core.errors``; raw ``OSError`` is wrapped as
``UnknownOperationFailure`` with the OS message preserved.
"""

from __future__ import annotations

import errno
import os
import shutil
import stat
import string
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from filedeck.core.errors import (
    AlreadyExistsError,
    CrossDeviceFallback,
    NotADirError,
    NotAFileError,
    NotFoundError,
    UnknownOperationFailure,
)
from filedeck.core.logging import get_logger

from .types import DirectoryEntry, LinkTargetType, Listing, StepControl

log = get_logger(__name__)

DEFAULT_SYNC_FOLDER_PREFIXES: tuple[str, ...] = ("OneDrive",)


@dataclass
class CopyResult:
    files_copied: int = 0
    total_files: int = 0
    destination: Path | None = None
    warnings: list[str] = field(default_factory=list)


def require_exists(path: Path) -> None:
    if not os.path.lexists(path):
        raise NotFoundError(f"Path does not exist: {path}")


def require_dir(path: Path) -> None:
    require_exists(path)
    if not path.is_dir():
        raise NotADirError(f"Not a directory: {path}")


def _is_sync_folder(name: str, prefixes: Iterable[str]) -> bool:
    return any(name.startswith(p) for p in prefixes)


def stat_entry(
    path: Path,
    *,
    relative_path: str | None = None,
    sync_folder_prefixes: Iterable[str] = DEFAULT_SYNC_FOLDER_PREFIXES,
) -> DirectoryEntry:
    """Describe one native path without failing on broken links."""
    st = path.lstat()
    is_symlink = stat.S_ISLNK(st.st_mode)
    link_target: LinkTargetType | None = None
    is_dir = stat.S_ISDIR(st.st_mode)
    size = int(st.st_size)
    mtime: float | None = float(st.st_mtime)

    if is_symlink:
        try:
            target = path.stat()
        except OSError:
            # Broken link: keep the lstat data, no target type.
            link_target = None
        else:
            is_dir = stat.S_ISDIR(target.st_mode)
            link_target = LinkTargetType.DIRECTORY if is_dir else LinkTargetType.FILE
            size = int(target.st_size)
            mtime = float(target.st_mtime)

    # Vendor sync-folder junctions report ambiguous mode bits; list them as
    # plain directories.
    if (
        not stat.S_ISREG(st.st_mode)
        and _is_sync_folder(path.name, sync_folder_prefixes)
        and os.path.isdir(path)
    ):
        is_dir = True
        is_symlink = False
        link_target = None

    return DirectoryEntry(
        name=path.name,
        relative_path=relative_path if relative_path is not None else path.name,
        full_path=str(path),
        size=0 if is_dir else size,
        modified_time=mtime,
        is_directory=is_dir,
        is_symlink=is_symlink,
        link_target_type=link_target,
    )


def list_dir(
    path: Path, *, sync_folder_prefixes: Iterable[str] = DEFAULT_SYNC_FOLDER_PREFIXES
) -> Listing:
    """List one directory level, split into files and directories."""
    require_dir(path)
    prefixes = tuple(sync_folder_prefixes)
    files: list[DirectoryEntry] = []
    dirs: list[DirectoryEntry] = []
    try:
        children = sorted(os.scandir(path), key=lambda e: e.name)
    except OSError as e:
        raise UnknownOperationFailure.from_os_error(e) from e

    for child in children:
        try:
            entry = stat_entry(Path(child.path), sync_folder_prefixes=prefixes)
        except OSError as e:
            log.warning(f"Skipping unreadable entry {child.path}: {e.strerror or e}")
            continue
        (dirs if entry.is_directory else files).append(entry)

    return Listing(path=str(path), files=files, directories=dirs)


def walk(path: Path, warnings: list[str] | None = None) -> Iterator[tuple[Path, os.stat_result]]:
    """Yield (path, lstat) for everything below ``path``, depth-first, sorted.

    Symlinks are reported but not followed. Unreadable directories are
    skipped and noted in ``warnings``.
    """
    try:
        children = sorted(os.scandir(path), key=lambda e: e.name)
    except OSError as e:
        msg = f"Skipped unreadable directory {path}: {e.strerror or e}"
        log.warning(msg)
        if warnings is not None:
            warnings.append(msg)
        return
    for child in children:
        p = Path(child.path)
        try:
            st = p.lstat()
        except OSError:
            continue
        yield p, st
        if stat.S_ISDIR(st.st_mode):
            yield from walk(p, warnings)


def count_files(path: Path) -> int:
    """Count non-directory entries recursively."""
    return sum(1 for _, st in walk(path) if not stat.S_ISDIR(st.st_mode))


def unique_destination(path: Path) -> Path:
    """Return ``path`` or the first free ``name(-copyN).ext`` sibling.

    Directories get the suffix on their full name.
    """
    if not os.path.lexists(path):
        return path
    if path.is_dir():
        stem, suffix = path.name, ""
    else:
        stem, suffix = path.stem, path.suffix
    n = 1
    while True:
        candidate = path.with_name(f"{stem}(-copy{n}){suffix}")
        if not os.path.lexists(candidate):
            return candidate
        n += 1


def open_source(path: Path) -> IO[bytes]:
    """Open a disk file for reading."""
    return open(path, "rb")


def read_bytes(path: Path) -> bytes:
    require_exists(path)
    if path.is_dir():
        raise NotAFileError(f"Expected a file, got a directory: {path}")
    try:
        with open_source(path) as f:
            return f.read()
    except OSError as e:
        raise UnknownOperationFailure.from_os_error(e) from e


def _copy_one(src: Path, dst: Path) -> None:
    if src.is_symlink():
        os.symlink(os.readlink(src), dst)
        return
    with open_source(src) as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout, 1024 * 1024)
    shutil.copystat(src, dst)


def copy_file(src: Path, dst: Path, *, control: StepControl | None = None) -> CopyResult:
    """Copy a single file; an existing destination is auto-renamed."""
    require_exists(src)
    dst.parent.mkdir(parents=True, exist_ok=True)
    target = unique_destination(dst)
    if control is not None:
        control.report(0, 1, src.name)
    try:
        _copy_one(src, target)
    except OSError as e:
        raise UnknownOperationFailure.from_os_error(e) from e
    if control is not None:
        control.report(1, 1, src.name)
    return CopyResult(files_copied=1, total_files=1, destination=target)


def copy_tree(src: Path, dst: Path, *, control: StepControl | None = None) -> CopyResult:
    """Recursively copy a directory with per-file progress.

    The file total is counted before copying starts. Cancellation is polled
    before every file and directory step; unreadable files are skipped with
    a warning.
    """
    require_dir(src)
    target = unique_destination(dst)
    result = CopyResult(total_files=count_files(src), destination=target)
    target.mkdir(parents=True, exist_ok=False)

    for path, st in walk(src, result.warnings):
        if control is not None:
            control.check_cancelled()
        out = target / path.relative_to(src)
        if stat.S_ISDIR(st.st_mode):
            out.mkdir(parents=True, exist_ok=True)
            continue
        try:
            _copy_one(path, out)
        except OSError as e:
            msg = f"Skipped unreadable file {path}: {e.strerror or e}"
            log.warning(msg)
            result.warnings.append(msg)
            continue
        result.files_copied += 1
        if control is not None:
            control.report(result.files_copied, result.total_files, path.name)
            control.pause()

    return result


def rename_path(src: Path, dst: Path) -> None:
    """Atomic rename; raises ``CrossDeviceFallback`` across volumes."""
    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno == errno.EXDEV:
            raise CrossDeviceFallback(f"Cross-device rename: {src} -> {dst}") from e
        raise UnknownOperationFailure.from_os_error(e) from e


def delete_path(path: Path) -> str:
    """Delete a file, link or directory tree; returns 'file' or 'directory'."""
    require_exists(path)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return "directory"
        path.unlink()
        return "file"
    except OSError as e:
        raise UnknownOperationFailure.from_os_error(e) from e


def move_path(src: Path, dst: Path, *, control: StepControl | None = None) -> str:
    """Move via rename, falling back to copy + delete across volumes.

    Returns 'rename' or 'copy' for the strategy used.
    """
    require_exists(src)
    if os.path.lexists(dst):
        raise AlreadyExistsError(f"Destination already exists: {dst}")
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        rename_path(src, dst)
        return "rename"
    except CrossDeviceFallback:
        log.verbose(f"move: cross-device, copying {src} -> {dst}")

    if src.is_dir() and not src.is_symlink():
        result = copy_tree(src, dst, control=control)
        if result.warnings:
            raise UnknownOperationFailure(
                f"Move incomplete, source kept: {len(result.warnings)} file(s) could not be copied"
            )
    else:
        copy_file(src, dst, control=control)
    delete_path(src)
    return "copy"


def make_dir(path: Path) -> None:
    if os.path.lexists(path):
        raise AlreadyExistsError(f"Directory already exists: {path}")
    try:
        path.mkdir(parents=True)
    except OSError as e:
        raise UnknownOperationFailure.from_os_error(e) from e


def list_drives() -> list[dict[str, str]]:
    """Drive roots on Windows, mount points under common media dirs elsewhere."""
    if os.name == "nt":
        roots = [f"{letter}:\\" for letter in string.ascii_uppercase]
        return [{"name": r[:2], "path": r} for r in roots if os.path.exists(r)]

    drives = [{"name": "/", "path": "/"}]
    bases = ["/Volumes", "/media", "/mnt"]
    if os.environ.get("USER"):
        bases.append(f"/media/{os.environ['USER']}")
    for base in bases:
        try:
            children = sorted(os.scandir(base), key=lambda e: e.name)
        except OSError:
            continue
        for child in children:
            if child.is_dir() and os.path.ismount(child.path):
                drives.append({"name": child.name, "path": child.path})
    return drives
