"""Virtual filesystem: plain paths, ZIP archives and nested archives."""

from .archives import ArchiveStore
from .detect import DEFAULT_ARCHIVE_EXTENSIONS, has_archive_suffix, normalize_extensions
from .nested import NestedArchiveResolver
from .paths import classify, join_internal, normalize_internal_path
from .types import (
    DirectoryEntry,
    LinkTargetType,
    Listing,
    PathDescriptor,
    PathKind,
    ProgressSink,
    ResolvedNestedPath,
    StepControl,
)

__all__ = [
    "ArchiveStore",
    "NestedArchiveResolver",
    "classify",
    "join_internal",
    "normalize_internal_path",
    "DEFAULT_ARCHIVE_EXTENSIONS",
    "has_archive_suffix",
    "normalize_extensions",
    "DirectoryEntry",
    "LinkTargetType",
    "Listing",
    "PathDescriptor",
    "PathKind",
    "ProgressSink",
    "ResolvedNestedPath",
    "StepControl",
]
