"""Operation layer: dispatcher, comparison, archive building, scans."""

from .builder import ArchiveBuilder, BuildResult
from .comparator import (
    ArchiveTree,
    ComparisonResult,
    DiffReason,
    Difference,
    DirectoryComparator,
    NativeTree,
)
from .context import OperationContext
from .dispatcher import CANCELLABLE, FileOperationDispatcher, Operation

__all__ = [
    "ArchiveBuilder",
    "BuildResult",
    "ArchiveTree",
    "ComparisonResult",
    "DiffReason",
    "Difference",
    "DirectoryComparator",
    "NativeTree",
    "OperationContext",
    "CANCELLABLE",
    "FileOperationDispatcher",
    "Operation",
]
