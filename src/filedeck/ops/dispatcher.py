"""File operation dispatcher.

Routes an operation name plus a parameter mapping to its handler. Handlers
classify every path parameter, flatten nested archives through the resolver
and delegate to the archive store or the native primitives. Every call
returns a response envelope; no exception crosses ``execute``.

Handlers are synchronous and run in a worker thread, one per call, so the
event loop stays free to deliver cancellation while a bulk step runs.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import mimetypes
import os
import tempfile
import threading
import time
import traceback
from collections.abc import Callable, Iterator
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import Any

from filedeck.core.config import ConfigResolver
from filedeck.core.diagnostics import build_envelope, utc_timestamp
from filedeck.core.errors import (
    AlreadyExistsError,
    ConfigError,
    InvalidParameterError,
    NotADirError,
    NotFoundError,
    OperationError,
    UnknownOperationFailure,
)
from filedeck.core.events import get_event_bus
from filedeck.core.logging import get_logger
from filedeck.vfs import native
from filedeck.vfs.archives import ArchiveStore
from filedeck.vfs.detect import DEFAULT_ARCHIVE_EXTENSIONS, normalize_extensions
from filedeck.vfs.nested import NestedArchiveResolver
from filedeck.vfs.paths import classify, join_internal, validate_name, with_native_name
from filedeck.vfs.types import PathDescriptor, ProgressSink

from . import dirsize, search
from .builder import ArchiveBuilder
from .comparator import ArchiveTree, DirectoryComparator, NativeTree, Tree
from .context import OperationContext

_logger = get_logger(__name__)

IMAGE_EXTENSIONS = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tif", ".tiff"}
)


class Operation(StrEnum):
    LIST = "list"
    READ = "read"
    COPY = "copy"
    MOVE = "move"
    RENAME = "rename"
    MKDIR = "mkdir"
    DELETE = "delete"
    COMPARE = "compare"
    ZIP = "zip"
    DIRECTORY_SIZE = "directory-size"
    SEARCH = "search"
    DRIVES = "drives"
    CANCEL = "cancel"


CANCELLABLE = frozenset(
    {
        Operation.COPY,
        Operation.MOVE,
        Operation.COMPARE,
        Operation.ZIP,
        Operation.DIRECTORY_SIZE,
        Operation.SEARCH,
    }
)

Handler = Callable[[dict[str, Any], OperationContext], dict[str, Any]]


def _short_traceback(*, max_lines: int = 20) -> str:
    tb_lines = traceback.format_exc().strip().splitlines()
    return "\n".join(tb_lines[-max_lines:])


def _safe_publish(event: str, payload: dict[str, Any]) -> None:
    try:
        get_event_bus().publish(event, payload)
    except Exception:
        # Diagnostics must never break an operation.
        return


_SUMMARY_KEYS = (
    "totalItems",
    "filesCopied",
    "filesAdded",
    "totalFiles",
    "entriesRemoved",
    "totalResults",
    "fileCount",
    "totalSize",
    "type",
)


@contextlib.contextmanager
def _observe_operation(*, operation: str, base: dict[str, Any]) -> Iterator[dict[str, Any]]:
    start = time.perf_counter()
    _safe_publish(
        "operation.start",
        build_envelope(
            event="operation.start", component="file_ops", operation=operation, data=dict(base)
        ),
    )

    summary: dict[str, Any] = {}
    try:
        yield summary
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        end_data = dict(base)
        end_data.update(
            {
                "status": "failed",
                "duration_ms": duration_ms,
                "error_type": getattr(e, "kind", type(e).__name__),
                "error_message": str(e),
                "traceback": _short_traceback(),
            }
        )
        _safe_publish(
            "operation.end",
            build_envelope(
                event="operation.end", component="file_ops", operation=operation, data=end_data
            ),
        )
        _logger.warning(
            f"{operation} status=failed duration_ms={duration_ms} "
            f"error_type={end_data['error_type']} error={str(e)!r}"
        )
        raise
    else:
        duration_ms = int((time.perf_counter() - start) * 1000)
        end_data = dict(base)
        end_data.update(summary)
        end_data.update({"status": "succeeded", "duration_ms": duration_ms})
        _safe_publish(
            "operation.end",
            build_envelope(
                event="operation.end", component="file_ops", operation=operation, data=end_data
            ),
        )
        # Summary logs are emitted on end only to avoid spam.
        parts = ["status=succeeded", f"duration_ms={duration_ms}"]
        parts.extend(f"{k}={v!r}" for k, v in base.items())
        parts.extend(f"{k}={v!r}" for k, v in summary.items())
        _logger.info(f"{operation} " + " ".join(parts))


def _require_str(params: dict[str, Any], key: str, operation: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidParameterError(f"{key} is required for {operation} operation")
    return value


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidParameterError(f"{key} must be a string")
    return value


def _optional_bool(params: dict[str, Any], key: str, default: bool) -> bool:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off"):
        return False
    raise InvalidParameterError(f"{key} must be a boolean")


def _archive_root(d: PathDescriptor) -> str:
    """User-facing path of the innermost archive of ``d``."""
    if d.is_nested:
        return f"{d.archive_file}/{'/'.join(d.nested_archive_names)}"
    return d.archive_file


def _location(d: PathDescriptor) -> tuple[str, ...]:
    """Archive file plus every internal segment, nested archives included."""
    segments = d.internal_path.split("/") if d.internal_path else []
    return (os.path.realpath(d.archive_file), *segments)


def _same_archive(a: PathDescriptor, b: PathDescriptor) -> bool:
    return (
        os.path.realpath(a.archive_file) == os.path.realpath(b.archive_file)
        and a.nested_archive_names == b.nested_archive_names
    )


def _parent_internal(internal: str) -> str:
    parent = str(PurePosixPath(internal).parent)
    return "" if parent == "." else parent


class FileOperationDispatcher:
    """Command surface over the virtual filesystem."""

    def __init__(
        self,
        *,
        store: ArchiveStore | None = None,
        extensions: tuple[str, ...] = DEFAULT_ARCHIVE_EXTENSIONS,
        temp_dir: Path | None = None,
        yield_seconds: float = 0.0,
        max_search_results: int = 1000,
        sync_folder_prefixes: tuple[str, ...] = native.DEFAULT_SYNC_FOLDER_PREFIXES,
    ) -> None:
        self.store = store or ArchiveStore()
        self.extensions = normalize_extensions(extensions)
        self.temp_dir = temp_dir
        self.resolver = NestedArchiveResolver(self.store, temp_dir=temp_dir)
        self.comparator = DirectoryComparator()
        self.builder = ArchiveBuilder(self.store)
        self.yield_seconds = yield_seconds
        self.max_search_results = max_search_results
        self.sync_folder_prefixes = tuple(sync_folder_prefixes)

        self._active: dict[str, OperationContext] = {}
        self._lock = threading.Lock()

        self._handlers: dict[Operation, Handler] = {
            Operation.LIST: self._list,
            Operation.READ: self._read,
            Operation.COPY: self._copy,
            Operation.MOVE: self._move,
            Operation.RENAME: self._rename,
            Operation.MKDIR: self._mkdir,
            Operation.DELETE: self._delete,
            Operation.COMPARE: self._compare,
            Operation.ZIP: self._zip,
            Operation.DIRECTORY_SIZE: self._directory_size,
            Operation.SEARCH: self._search,
            Operation.DRIVES: self._drives,
            Operation.CANCEL: self._cancel,
        }

    @classmethod
    def from_resolver(cls, resolver: ConfigResolver) -> FileOperationDispatcher:
        """Build a dispatcher from ``file_ops.*`` config keys.

        Invalid values fall back to defaults with a warning.
        """

        def _get(fn: Callable[[], Any], default: Any, key: str) -> Any:
            try:
                return fn()
            except ConfigError as e:
                _logger.warning(f"config {key}: {e}; using default {default!r}")
                return default

        temp_dir_raw = _get(lambda: resolver.resolve("file_ops.temp_dir")[0], "", "temp_dir")
        temp_dir = Path(os.path.expanduser(str(temp_dir_raw))) if temp_dir_raw else None
        extensions = _get(
            lambda: resolver.resolve_list("file_ops.archives.extensions", [".zip"]),
            [".zip"],
            "file_ops.archives.extensions",
        )
        prefixes = _get(
            lambda: resolver.resolve_list("file_ops.sync_folder_prefixes", ["OneDrive"]),
            ["OneDrive"],
            "file_ops.sync_folder_prefixes",
        )
        return cls(
            extensions=normalize_extensions(extensions),
            temp_dir=temp_dir,
            yield_seconds=_get(
                lambda: resolver.resolve_float("file_ops.copy.yield_seconds", 0.001),
                0.001,
                "file_ops.copy.yield_seconds",
            ),
            max_search_results=_get(
                lambda: resolver.resolve_int("file_ops.search.max_results", 1000),
                1000,
                "file_ops.search.max_results",
            ),
            sync_folder_prefixes=tuple(prefixes),
        )

    @property
    def handlers(self) -> dict[Operation, Handler]:
        return dict(self._handlers)

    # ------------------------------------------------------------------
    # Entry points

    async def execute(
        self,
        operation: str,
        params: dict[str, Any] | None = None,
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        """Run one operation and return its response envelope."""
        name = str(operation or "")
        try:
            op = Operation(name)
        except ValueError:
            return self._failure(name, InvalidParameterError(f"Unknown operation: {name}"))

        if params is not None and not isinstance(params, dict):
            return self._failure(op, InvalidParameterError("params must be an object"))
        params = params or {}

        ctx = OperationContext(operation_id, progress=progress, yield_seconds=self.yield_seconds)
        if op in CANCELLABLE:
            with self._lock:
                self._active[ctx.id] = ctx

        base = {k: v for k, v in params.items() if isinstance(v, str | bool | int | float)}
        base["operation_id"] = ctx.id
        try:
            with _observe_operation(operation=f"file_ops.{op}", base=base) as summary:
                data = await asyncio.to_thread(self._run_handler, op, params, ctx)
                summary.update({k: data[k] for k in _SUMMARY_KEYS if k in data})
        except Exception as e:
            return self._failure(op, e)
        finally:
            with self._lock:
                self._active.pop(ctx.id, None)

        return {
            "success": True,
            "operation": str(op),
            "data": data,
            "timestamp": utc_timestamp(),
        }

    def cancel(self, operation_id: str | None = None) -> int:
        """Cancel one active operation, or all of them; returns how many."""
        with self._lock:
            if operation_id is None:
                targets = list(self._active.values())
            else:
                ctx = self._active.get(operation_id)
                targets = [ctx] if ctx is not None else []
        for ctx in targets:
            ctx.cancel()
        if targets:
            _logger.info(f"cancel requested operations={[c.id for c in targets]!r}")
        return len(targets)

    def active_operations(self) -> list[str]:
        with self._lock:
            return sorted(self._active)

    def _run_handler(
        self, op: Operation, params: dict[str, Any], ctx: OperationContext
    ) -> dict[str, Any]:
        try:
            return self._handlers[op](params, ctx)
        except OSError as e:
            raise UnknownOperationFailure.from_os_error(e) from e

    def _failure(self, operation: str, exc: BaseException) -> dict[str, Any]:
        if isinstance(exc, OperationError):
            error, kind = exc.message, exc.kind
        elif isinstance(exc, OSError):
            wrapped = UnknownOperationFailure.from_os_error(exc)
            error, kind = wrapped.message, wrapped.kind
        else:
            _logger.error(f"file_ops.{operation} unexpected error: {type(exc).__name__}: {exc}")
            error, kind = str(exc) or type(exc).__name__, UnknownOperationFailure.kind
        response: dict[str, Any] = {
            "success": False,
            "operation": operation,
            "error": error,
            "errorType": kind,
            "timestamp": utc_timestamp(),
        }
        suggestion = getattr(exc, "suggestion", None)
        if suggestion:
            response["suggestion"] = suggestion
        return response

    def classify(self, path: str) -> PathDescriptor:
        return classify(path, extensions=self.extensions)

    # ------------------------------------------------------------------
    # Shared routing helpers

    def _archive_kind(self, archive: Path, internal: str, d: PathDescriptor) -> str:
        kind = self.store.entry_kind(archive, internal)
        if kind is None:
            raise NotFoundError(f"Path does not exist: {d.display()}")
        return kind

    def _require_archive_dir(self, archive: Path, internal: str, d: PathDescriptor) -> None:
        if self._archive_kind(archive, internal, d) != "directory":
            raise NotADirError(f"Not a directory: {d.display()}")

    def _extract(
        self, src: PathDescriptor, target: Path, ctx: OperationContext
    ) -> tuple[str, int]:
        """Extract an archive file or directory to ``target``; returns (type, files)."""
        with self.resolver.readable(src) as (archive, internal):
            if self._archive_kind(archive, internal, src) == "directory":
                count = self.store.extract_tree(archive, internal, target, control=ctx)
                return "directory", count
            ctx.report(0, 1, src.name)
            self.store.extract_entry(archive, internal, target)
            ctx.report(1, 1, src.name)
            return "file", 1

    def _insert(
        self, source: Path, dst: PathDescriptor, ctx: OperationContext
    ) -> tuple[str, int, list[str]]:
        """Insert a disk file or directory below an archive path.

        Returns (entry path, files added, warnings).
        """
        with self.resolver.mutable(dst) as (archive, internal):
            if not internal or self.store.entry_kind(archive, internal) == "directory":
                internal = join_internal(internal, source.name)
            if source.is_dir():
                added, warnings = self.store.write_tree(archive, source, internal, control=ctx)
            else:
                ctx.report(0, 1, source.name)
                self.store.write_entry(archive, source, internal)
                ctx.report(1, 1, source.name)
                added, warnings = 1, []
        return f"{_archive_root(dst)}/{internal}", added, warnings

    @contextlib.contextmanager
    def _scratch(self) -> Iterator[Path]:
        if self.temp_dir is not None:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="filedeck-", dir=self.temp_dir) as tmp:
            yield Path(tmp)

    def _transfer(
        self, src: PathDescriptor, dst: PathDescriptor, ctx: OperationContext
    ) -> dict[str, Any]:
        """Copy between any two domains; disk targets are auto-renamed."""
        if not src.is_archive_path and not dst.is_archive_path:
            srcp = Path(src.native_path)
            native.require_exists(srcp)
            target = Path(dst.native_path)
            if target.is_dir():
                target = target / srcp.name
            if srcp.is_dir():
                if target.resolve().is_relative_to(srcp.resolve()):
                    raise InvalidParameterError(
                        f"Cannot copy a directory into itself: {srcp} -> {target}"
                    )
                result = native.copy_tree(srcp, target, control=ctx)
                kind = "directory"
            else:
                result = native.copy_file(srcp, target, control=ctx)
                kind = "file"
            return {
                "destinationPath": str(result.destination),
                "type": kind,
                "filesCopied": result.files_copied,
                "totalFiles": result.total_files,
                "warnings": result.warnings,
            }

        if src.is_archive_path and not dst.is_archive_path:
            target = Path(dst.native_path)
            if target.is_dir():
                target = target / src.name
            target = native.unique_destination(target)
            kind, count = self._extract(src, target, ctx)
            return {
                "destinationPath": str(target),
                "type": kind,
                "filesCopied": count,
                "totalFiles": count,
                "warnings": [],
            }

        if not src.is_archive_path:
            srcp = Path(src.native_path)
            native.require_exists(srcp)
            entry, added, warnings = self._insert(srcp, dst, ctx)
            return {
                "destinationPath": entry,
                "type": "directory" if srcp.is_dir() else "file",
                "filesCopied": added,
                "totalFiles": added + len(warnings),
                "warnings": warnings,
            }

        with self._scratch() as tmp:
            staged = tmp / src.name
            kind, _count = self._extract(src, staged, ctx)
            entry, added, warnings = self._insert(staged, dst, ctx)
        return {
            "destinationPath": entry,
            "type": kind,
            "filesCopied": added,
            "totalFiles": added + len(warnings),
            "warnings": warnings,
        }

    def _remove(self, d: PathDescriptor) -> dict[str, Any]:
        if not d.is_archive_path:
            kind = native.delete_path(Path(d.native_path))
            return {"type": kind, "entriesRemoved": 1}
        with self.resolver.mutable(d) as (archive, internal):
            kind = self._archive_kind(archive, internal, d)
            removed = self.store.delete_entry(archive, internal)
        return {
            "type": "archive-directory" if kind == "directory" else "archive-entry",
            "entriesRemoved": removed,
        }

    # ------------------------------------------------------------------
    # Handlers

    def _list(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "folderPath", "list"))
        if not d.is_archive_path:
            listing = native.list_dir(
                Path(d.native_path), sync_folder_prefixes=self.sync_folder_prefixes
            )
            return listing.to_dict()
        with self.resolver.readable(d) as (archive, internal):
            self._require_archive_dir(archive, internal, d)
            listing = self.store.list_entries(archive, internal, display_root=_archive_root(d))
        return listing.to_dict()

    def _read(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "filePath", "read")).member_view()
        if not d.is_archive_path:
            path = Path(d.native_path)
            data = native.read_bytes(path)
            entry = native.stat_entry(path)
        else:
            with self.resolver.readable(d) as (archive, internal):
                data = self.store.read_entry(archive, internal, True)
                entry = self.store.entry_info(archive, internal, display_root=_archive_root(d))

        is_image = Path(d.name).suffix.lower() in IMAGE_EXTENSIONS
        if is_image:
            mime = mimetypes.guess_type(d.name)[0] or "application/octet-stream"
            content = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
        else:
            content = data.decode("utf-8", errors="replace")
        meta = entry.to_dict()
        return {
            "path": d.display(),
            "content": content,
            "size": len(data),
            "modified": meta["modified"],
            "isImage": is_image,
        }

    def _copy(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        source = _require_str(params, "sourcePath", "copy")
        destination = _require_str(params, "destinationPath", "copy")
        src = self.classify(source).member_view()
        dst = self.classify(destination)
        data = self._transfer(src, dst, ctx)
        data["sourcePath"] = src.display()
        return data

    def _move(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        source = _require_str(params, "sourcePath", "move")
        destination = _require_str(params, "destinationPath", "move")
        src = self.classify(source).member_view()
        dst = self.classify(destination)

        if not src.is_archive_path and not dst.is_archive_path:
            srcp = Path(src.native_path)
            target = Path(dst.native_path)
            if target.is_dir():
                target = target / srcp.name
            method = native.move_path(srcp, target, control=ctx)
            return {
                "sourcePath": str(srcp),
                "destinationPath": str(target),
                "type": "directory" if target.is_dir() else "file",
                "method": method,
            }

        if not dst.is_archive_path:
            target = Path(dst.native_path)
            if target.is_dir():
                target = target / src.name
            if os.path.lexists(target):
                raise AlreadyExistsError(f"Destination already exists: {target}")
        elif not src.is_archive_path:
            holder = Path(os.path.realpath(dst.archive_file))
            if holder.is_relative_to(os.path.realpath(src.native_path)):
                raise InvalidParameterError(
                    f"Cannot move a path into itself: {src.display()} -> {dst.display()}"
                )
        else:
            src_loc, dst_loc = _location(src), _location(dst)
            if dst_loc[: len(src_loc)] == src_loc:
                raise InvalidParameterError(
                    f"Cannot move a path into itself: {src.display()} -> {dst.display()}"
                )
            if _same_archive(src, dst):
                return self._move_within_archive(src, dst)

        data = self._transfer(src, dst, ctx)
        if data["warnings"]:
            raise UnknownOperationFailure(
                f"Move incomplete, source kept: {len(data['warnings'])} file(s) could not be copied"
            )
        self._remove(src)
        data.update({"sourcePath": src.display(), "method": "copy"})
        return data

    def _move_within_archive(self, src: PathDescriptor, dst: PathDescriptor) -> dict[str, Any]:
        """Move inside one archive by renaming entries in a single rewrite."""
        with self.resolver.mutable(dst) as (archive, dst_internal):
            source = src.final_internal_path
            kind = self._archive_kind(archive, source, src)
            target = dst_internal
            if not target or self.store.entry_kind(archive, target) == "directory":
                target = join_internal(target, src.name)
            if target == source:
                raise InvalidParameterError(
                    f"Source and destination are the same: {src.display()}"
                )
            if self.store.entry_kind(archive, target) is not None:
                raise AlreadyExistsError(f"Destination already exists in archive: {target}")
            renamed = self.store.rename_entry(archive, source, target)
        return {
            "sourcePath": src.display(),
            "destinationPath": f"{_archive_root(dst)}/{target}",
            "type": "directory" if kind == "directory" else "file",
            "filesCopied": renamed,
            "totalFiles": renamed,
            "warnings": [],
            "method": "rename",
        }

    def _rename(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        source = _require_str(params, "sourcePath", "rename")
        new_name = _optional_str(params, "newName")
        if new_name is None:
            legacy = _optional_str(params, "destinationPath")
            if legacy is None:
                raise InvalidParameterError("newName is required for rename operation")
            new_name = legacy.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]

        src = self.classify(source).member_view()
        if not src.is_archive_path:
            srcp = Path(src.native_path)
            native.require_exists(srcp)
            target = with_native_name(srcp.parent, new_name)
            if os.path.lexists(target):
                raise AlreadyExistsError(f"Destination already exists: {target}")
            kind = "directory" if srcp.is_dir() else "file"
            native.rename_path(srcp, target)
            return {"sourcePath": str(srcp), "newPath": str(target), "type": kind}

        validate_name(new_name)
        with self.resolver.mutable(src) as (archive, internal):
            kind = self._archive_kind(archive, internal, src)
            new_internal = join_internal(_parent_internal(internal), new_name)
            if self.store.entry_kind(archive, new_internal) is not None:
                raise AlreadyExistsError(f"Destination already exists in archive: {new_internal}")
            self.store.rename_entry(archive, internal, new_internal)
        return {
            "sourcePath": src.display(),
            "newPath": f"{_archive_root(src)}/{new_internal}",
            "type": "archive-directory" if kind == "directory" else "archive-entry",
        }

    def _mkdir(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "dirPath", "mkdir"))
        if not d.is_archive_path:
            native.make_dir(Path(d.native_path))
            return {"dirPath": d.native_path, "created": True}
        with self.resolver.mutable(d) as (archive, internal):
            if not internal or self.store.entry_kind(archive, internal) is not None:
                raise AlreadyExistsError(f"Directory already exists: {d.display()}")
            self.store.add_directory(archive, internal)
        return {"dirPath": d.display(), "created": True}

    def _delete(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "sourcePath", "delete")).member_view()
        data = self._remove(d)
        data["sourcePath"] = d.display()
        return data

    def _tree(self, d: PathDescriptor, stack: contextlib.ExitStack) -> Tree:
        if not d.is_archive_path:
            return NativeTree(Path(d.native_path))
        archive, internal = stack.enter_context(self.resolver.readable(d))
        self._require_archive_dir(archive, internal, d)
        return ArchiveTree(self.store, archive, internal, display_root=_archive_root(d))

    def _compare(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        left = self.classify(_require_str(params, "leftPath", "compare"))
        right = self.classify(_require_str(params, "rightPath", "compare"))
        recursive = _optional_bool(params, "recursive", False)
        with contextlib.ExitStack() as stack:
            result = self.comparator.compare(
                self._tree(left, stack), self._tree(right, stack), recursive=recursive, control=ctx
            )
        data = result.to_dict()
        data.update(
            {"leftPath": left.display(), "rightPath": right.display(), "recursive": recursive}
        )
        return data

    def _zip(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        files = params.get("files")
        if isinstance(files, str):
            try:
                files = json.loads(files)
            except json.JSONDecodeError as e:
                raise InvalidParameterError(f"files must be a JSON array: {e.msg}") from e
        if not isinstance(files, list) or not files:
            raise InvalidParameterError("files is required for zip operation")
        if not all(isinstance(f, str) and f.strip() for f in files):
            raise InvalidParameterError("files must be a list of path strings")
        target = self.classify(_require_str(params, "zipFilePath", "zip"))

        inputs: list[Path] = []
        for f in files:
            d = self.classify(f)
            if d.is_archive_path and d.internal_path:
                raise InvalidParameterError(f"zip inputs must be paths on disk: {f}")
            inputs.append(Path(d.native_path))

        if not target.is_archive_path:
            result = self.builder.build(inputs, Path(target.native_path), control=ctx)
        elif target.final_internal_path:
            raise InvalidParameterError(f"zipFilePath must name an archive: {target.display()}")
        else:
            with self.resolver.mutable(target) as (archive, _internal):
                result = self.builder.build(inputs, archive, control=ctx)

        data = result.to_dict()
        data["zipFilePath"] = target.display()
        return data

    def _directory_size(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "dirPath", "directory-size"))
        if not d.is_archive_path:
            result = dirsize.native_size(Path(d.native_path), control=ctx)
        else:
            with self.resolver.readable(d) as (archive, internal):
                self._require_archive_dir(archive, internal, d)
                result = dirsize.archive_size(self.store, archive, internal, control=ctx)
        data = result.to_dict()
        data["dirPath"] = d.display()
        return data

    def _search(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        d = self.classify(_require_str(params, "searchPath", "search"))
        pattern = params.get("filenamePattern")
        if not isinstance(pattern, str):
            raise InvalidParameterError("filenamePattern is required for search operation")
        query = search.SearchQuery(
            filename_pattern=pattern,
            content_text=_optional_str(params, "contentText"),
            recursive=_optional_bool(params, "recursive", True),
            case_sensitive=_optional_bool(params, "caseSensitive", False),
        )
        if not d.is_archive_path:
            result = search.search_native(
                Path(d.native_path), query, max_results=self.max_search_results, control=ctx
            )
        else:
            with self.resolver.readable(d) as (archive, internal):
                self._require_archive_dir(archive, internal, d)
                result = search.search_archive(
                    self.store,
                    archive,
                    internal,
                    query,
                    display_root=_archive_root(d),
                    max_results=self.max_search_results,
                    control=ctx,
                )
        data = result.to_dict()
        data.update({"searchPath": d.display(), "filenamePattern": pattern})
        return data

    def _drives(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        drives = native.list_drives()
        return {"drives": drives, "totalItems": len(drives)}

    def _cancel(self, params: dict[str, Any], ctx: OperationContext) -> dict[str, Any]:
        operation_id = _optional_str(params, "operationId")
        return {"cancelled": self.cancel(operation_id), "operationId": operation_id}
