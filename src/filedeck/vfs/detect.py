"""Archive detection for the virtual filesystem.

Suffix detection is purely syntactic and is what path classification uses.
Magic detection is only used by callers that hold an open file.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterable
from typing import BinaryIO

DEFAULT_ARCHIVE_EXTENSIONS: tuple[str, ...] = (".zip",)

# Local file header, empty archive (end of central directory), spanned archive.
_ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")


def normalize_extensions(extensions: Iterable[str] | None) -> tuple[str, ...]:
    if extensions is None:
        return DEFAULT_ARCHIVE_EXTENSIONS
    out: list[str] = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in out:
            out.append(ext)
    return tuple(out) or DEFAULT_ARCHIVE_EXTENSIONS


def has_archive_suffix(name: str, extensions: Iterable[str] = DEFAULT_ARCHIVE_EXTENSIONS) -> bool:
    """Return True when ``name`` ends with a recognised archive extension.

    Matching is case-insensitive. A bare extension (".zip") is not an archive
    name.
    """
    lower = name.lower()
    return any(lower.endswith(ext) and len(lower) > len(ext) for ext in extensions)


def _read_prefix(stream: BinaryIO, n: int) -> bytes:
    pos = stream.tell()
    try:
        return stream.read(n)
    finally:
        with contextlib.suppress(OSError):
            stream.seek(pos)


def looks_like_zip(stream: BinaryIO) -> bool:
    return _read_prefix(stream, 4) in _ZIP_MAGICS
