"""Path classification for the virtual filesystem.

A user path is ``<native-path>[/<entry-path>[/<nested-entry-path>...]]``.
The first segment boundary that coincides with an existing archive file on
disk switches to archive mode. Inside the archive, segments that carry an
archive extension are treated as nested archives; they are recognised
syntactically because members cannot be inspected without extraction.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from filedeck.core.errors import InvalidParameterError

from .detect import DEFAULT_ARCHIVE_EXTENSIONS, has_archive_suffix
from .types import PathDescriptor


def _to_forward(path: str) -> str:
    return path.replace("\\", "/")


def normalize_internal_path(path: str) -> str:
    """Normalize an archive-internal path.

    Rules:
    - backslashes are treated as separators
    - leading/trailing slashes and empty or '.' segments are dropped
    - '..' segments are rejected

    Raises:
        InvalidParameterError
    """
    parts = [p for p in PurePosixPath(_to_forward(path or "")).parts if p not in ("/", ".")]
    if any(p == ".." for p in parts):
        raise InvalidParameterError(f"Parent path segments ('..') are not allowed: {path}")
    return "/".join(parts)


def join_internal(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def split_nested_names(
    internal_path: str, extensions: Iterable[str] = DEFAULT_ARCHIVE_EXTENSIONS
) -> tuple[str, ...]:
    """Group an internal path into nested archive names, outermost first.

    Example: 'a/in1.zip/b/in2.zip/c.txt' -> ('a/in1.zip', 'b/in2.zip')
    """
    exts = tuple(extensions)
    names: list[str] = []
    current: list[str] = []
    for segment in internal_path.split("/") if internal_path else []:
        current.append(segment)
        if has_archive_suffix(segment, exts):
            names.append("/".join(current))
            current = []
    return tuple(names)


def absolute_path(path: str) -> str:
    """Absolute, normalized native path (user home expanded)."""
    return os.path.abspath(os.path.expanduser(path))


def classify(
    path: str, *, extensions: Iterable[str] = DEFAULT_ARCHIVE_EXTENSIONS
) -> PathDescriptor:
    """Classify a path string as plain, single-archive or nested-archive.

    Never fails: a path without an archive prefix yields a plain descriptor.
    Only the outermost archive is checked against the filesystem.
    """
    exts = tuple(extensions)
    text = str(path).strip()
    if not text:
        return PathDescriptor(original=text, native_path="")

    absolute = _to_forward(absolute_path(_to_forward(text)))

    boundaries = [i for i, ch in enumerate(absolute) if ch == "/"] + [len(absolute)]
    for idx in boundaries:
        prefix = absolute[:idx]
        segment = prefix.rsplit("/", 1)[-1]
        if not segment or not has_archive_suffix(segment, exts):
            continue
        if not os.path.isfile(prefix):
            continue

        internal = normalize_internal_path(absolute[idx + 1 :])
        archive_file = os.path.normpath(prefix)
        return PathDescriptor(
            original=text,
            native_path=archive_file,
            is_archive_path=True,
            archive_file=archive_file,
            internal_path=internal,
            nested_archive_names=split_nested_names(internal, exts),
        )

    return PathDescriptor(original=text, native_path=os.path.normpath(absolute))


def validate_name(name: str) -> str:
    """Reject empty names, dot names and names containing separators."""
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise InvalidParameterError(f"Invalid name: {name!r}")
    return name


def with_native_name(parent: Path, name: str) -> Path:
    """Join a single user-supplied name to a directory."""
    return parent / validate_name(name)
