"""Named tools exposed to the CLI and the IPC bridge.

Each tool takes a parameter mapping and returns a data mapping or raises.
``CommandRegistry.run`` turns either outcome into the tool envelope:

    {"success": true, "data": {...}, "toolname": "...", "timestamp": "..."}
    {"success": false, "error": "...", "errorType": "...", "toolname": "...", ...}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from filedeck.core.diagnostics import utc_timestamp
from filedeck.core.errors import FileDeckError, InvalidParameterError, OperationError
from filedeck.core.logging import get_logger
from filedeck.ops.dispatcher import FileOperationDispatcher, Operation
from filedeck.vfs.types import ProgressSink

log = get_logger(__name__)

_PROGRESS_EVENTS: dict[str, str] = {
    Operation.COPY: "copy-progress",
    Operation.MOVE: "copy-progress",
    Operation.ZIP: "zip-progress",
    Operation.COMPARE: "scan-progress",
    Operation.DIRECTORY_SIZE: "scan-progress",
    Operation.SEARCH: "scan-progress",
}


class ToolFailure(FileDeckError):
    """A tool reported failure; carries the error kind tag."""

    def __init__(
        self, message: str, kind: str = "unknown", suggestion: str | None = None
    ) -> None:
        self.kind = kind
        super().__init__(message, suggestion)


@dataclass(frozen=True)
class CommandParameter:
    name: str
    type: str
    description: str
    required: bool = False
    options: tuple[str, ...] | None = None
    default: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "required": self.required,
        }
        if self.options is not None:
            out["options"] = list(self.options)
        if self.default is not None:
            out["default"] = self.default
        return out


class Command(Protocol):
    def description(self) -> str: ...

    def parameters(self) -> list[CommandParameter]: ...

    async def execute(
        self,
        params: dict[str, Any],
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]: ...


class PingCommand:
    def description(self) -> str:
        return "Simple ping command - returns Pong with timestamp"

    def parameters(self) -> list[CommandParameter]:
        return []

    async def execute(
        self,
        params: dict[str, Any],
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        return {"message": "Pong", "params": params, "timestamp": utc_timestamp()}


class HelpCommand:
    def __init__(self, registry: CommandRegistry) -> None:
        self._registry = registry

    def description(self) -> str:
        return "Help command - lists all available commands"

    def parameters(self) -> list[CommandParameter]:
        return []

    async def execute(
        self,
        params: dict[str, Any],
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        return {
            "availableCommands": self._registry.descriptions(),
            "commandParameters": self._registry.parameter_table(),
            "usage": "filedeck run <toolname> [params]",
            "example1": "filedeck run ping",
            "example2": 'filedeck run file-operations \'{"operation":"list","folderPath":"."}\'',
        }


class FileOperationsCommand:
    """The ``file-operations`` tool: one dispatcher call per request."""

    def __init__(self, dispatcher: FileOperationDispatcher) -> None:
        self.dispatcher = dispatcher

    def description(self) -> str:
        return (
            "File operations: list, read, copy, move, rename, mkdir, delete, compare, zip, "
            "directory-size, search, drives and cancel, on folders and ZIP archives "
            "(including archives inside archives)"
        )

    def parameters(self) -> list[CommandParameter]:
        return [
            CommandParameter(
                "operation",
                "select",
                "Operation to perform",
                required=True,
                options=tuple(str(op) for op in Operation),
            ),
            CommandParameter("folderPath", "string", "Folder or archive path (list)"),
            CommandParameter("filePath", "string", "File path (read)"),
            CommandParameter("sourcePath", "string", "Source path (copy/move/rename/delete)"),
            CommandParameter("destinationPath", "string", "Destination path (copy/move)"),
            CommandParameter("newName", "string", "New name (rename)"),
            CommandParameter("dirPath", "string", "Directory path (mkdir/directory-size)"),
            CommandParameter("leftPath", "string", "Left folder (compare)"),
            CommandParameter("rightPath", "string", "Right folder or archive (compare)"),
            CommandParameter("recursive", "boolean", "Recurse into subfolders (compare/search)"),
            CommandParameter("files", "string", "JSON array of input paths (zip)"),
            CommandParameter("zipFilePath", "string", "Archive to create or extend (zip)"),
            CommandParameter("searchPath", "string", "Folder or archive to search (search)"),
            CommandParameter("filenamePattern", "string", "Glob or substring (search)"),
            CommandParameter("contentText", "string", "Text the file must contain (search)"),
            CommandParameter("caseSensitive", "boolean", "Case-sensitive matching (search)"),
            CommandParameter("operationId", "string", "Operation to cancel (cancel)"),
        ]

    def progress_event(self, params: dict[str, Any]) -> str | None:
        return _PROGRESS_EVENTS.get(str(params.get("operation") or ""))

    async def execute(
        self,
        params: dict[str, Any],
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        operation = params.get("operation")
        if not isinstance(operation, str) or not operation:
            raise InvalidParameterError("operation is required")
        op_params = {k: v for k, v in params.items() if k != "operation"}

        response = await self.dispatcher.execute(
            operation, op_params, progress=progress, operation_id=operation_id
        )
        if not response["success"]:
            raise ToolFailure(
                response["error"], response.get("errorType", "unknown"), response.get("suggestion")
            )
        return {
            "operation": response["operation"],
            **response["data"],
            "timestamp": response["timestamp"],
        }


class CommandRegistry:
    """Central registry for all available tools."""

    def __init__(self, dispatcher: FileOperationDispatcher | None = None) -> None:
        self._commands: dict[str, Command] = {}
        self.file_operations = FileOperationsCommand(dispatcher or FileOperationDispatcher())
        self.register("ping", PingCommand())
        self.register("help", HelpCommand(self))
        self.register("file-operations", self.file_operations)

    def register(self, name: str, command: Command) -> None:
        self._commands[name.lower()] = command

    def get(self, name: str) -> Command | None:
        return self._commands.get(name.lower())

    def names(self) -> list[str]:
        return list(self._commands)

    def descriptions(self) -> dict[str, str]:
        return {name: cmd.description() for name, cmd in self._commands.items()}

    def parameter_table(self) -> dict[str, Any]:
        return {
            name: {
                "description": cmd.description(),
                "parameters": [p.to_dict() for p in cmd.parameters()],
            }
            for name, cmd in self._commands.items()
        }

    def progress_event(self, toolname: str, params: dict[str, Any]) -> str | None:
        if self.get(toolname) is self.file_operations:
            return self.file_operations.progress_event(params)
        return None

    def cancel(self, operation_id: str | None = None) -> int:
        return self.file_operations.dispatcher.cancel(operation_id)

    async def run(
        self,
        toolname: str,
        params: dict[str, Any] | None = None,
        *,
        progress: ProgressSink | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        """Run a tool and wrap its outcome in the tool envelope."""
        command = self.get(toolname or "")
        try:
            if command is None:
                raise InvalidParameterError(
                    f"Unknown command: {toolname}. Available: {', '.join(self.names())}"
                )
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise InvalidParameterError("params must be an object")
            data = await command.execute(params, progress=progress, operation_id=operation_id)
        except (ToolFailure, OperationError) as e:
            return self._failure(toolname, e.message, getattr(e, "kind", "unknown"), e.suggestion)
        except Exception as e:
            log.error(f"tool {toolname!r} failed: {type(e).__name__}: {e}")
            return self._failure(toolname, str(e) or type(e).__name__, "unknown", None)

        return {"success": True, "data": data, "toolname": toolname, "timestamp": utc_timestamp()}

    def _failure(
        self, toolname: str, error: str, kind: str, suggestion: str | None
    ) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": False,
            "error": error,
            "errorType": kind,
            "toolname": toolname,
            "timestamp": utc_timestamp(),
        }
        if suggestion:
            out["suggestion"] = suggestion
        return out
