"""JSON-lines request/response bridge over stdio.

Requests, one JSON object per line:

    {"id": "1", "toolname": "file-operations", "params": {...}}
    {"id": "1", "cancel": true}

Each request runs as its own task. Responses echo ``id``; progress for long
operations is streamed as events before the response:

    {"id": "1", "event": "copy-progress",
     "data": {"current": 3, "total": 10, "fileName": "a.txt", "percentage": 30}}
"""

from __future__ import annotations

import asyncio
import json
import sys
import threading
from typing import Any, TextIO

from filedeck.commands import CommandRegistry
from filedeck.core.diagnostics import utc_timestamp
from filedeck.core.logging import get_logger
from filedeck.vfs.types import ProgressSink

log = get_logger(__name__)


def progress_payload(current: int, total: int, file_name: str) -> dict[str, Any]:
    percentage = round(current / total * 100) if total > 0 else 0
    return {"current": current, "total": total, "fileName": file_name, "percentage": percentage}


class StdioBridge:
    def __init__(
        self,
        registry: CommandRegistry,
        *,
        reader: TextIO | None = None,
        writer: TextIO | None = None,
    ) -> None:
        self.registry = registry
        self._reader = reader if reader is not None else sys.stdin
        self._writer = writer if writer is not None else sys.stdout
        # Progress is emitted from worker threads.
        self._write_lock = threading.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    def write(self, message: dict[str, Any]) -> None:
        line = json.dumps(message, ensure_ascii=False, default=str)
        with self._write_lock:
            self._writer.write(line + "\n")
            self._writer.flush()

    def _progress_sink(self, request_id: Any, event: str | None) -> ProgressSink | None:
        if event is None:
            return None

        def _sink(current: int, total: int, file_name: str) -> None:
            payload = progress_payload(current, total, file_name)
            self.write({"id": request_id, "event": event, "data": payload})

        return _sink

    async def serve(self) -> None:
        """Read requests until EOF, then wait for in-flight requests."""
        log.info(f"bridge ready tools={self.registry.names()!r}")
        while True:
            line = await asyncio.to_thread(self._reader.readline)
            if not line:
                break
            await self.handle_line(line)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        log.info("bridge stopped")

    async def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            self.write(self._error(None, None, f"Invalid JSON request: {e.msg}"))
            return
        if not isinstance(message, dict):
            self.write(self._error(None, None, "Request must be a JSON object"))
            return

        request_id = message.get("id")
        if message.get("cancel"):
            target = message.get("operationId", request_id)
            cancelled = self.registry.cancel(None if target is None else str(target))
            self.write({"id": request_id, "event": "cancelled", "data": {"cancelled": cancelled}})
            return

        task = asyncio.create_task(self._handle_request(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_request(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        toolname = message.get("toolname")
        params = message.get("params")
        if not isinstance(toolname, str) or not toolname:
            self.write(self._error(request_id, toolname, "toolname is required"))
            return
        if params is None:
            params = {}

        event = (
            self.registry.progress_event(toolname, params) if isinstance(params, dict) else None
        )
        response = await self.registry.run(
            toolname,
            params,
            progress=self._progress_sink(request_id, event),
            operation_id=None if request_id is None else str(request_id),
        )
        self.write({"id": request_id, **response})

    def _error(self, request_id: Any, toolname: Any, error: str) -> dict[str, Any]:
        return {
            "id": request_id,
            "success": False,
            "error": error,
            "errorType": "invalid_parameter",
            "toolname": toolname,
            "timestamp": utc_timestamp(),
        }
