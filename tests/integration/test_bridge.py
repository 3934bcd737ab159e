"""JSON-lines bridge over in-memory streams."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pytest

from filedeck.bridge import StdioBridge, progress_payload
from filedeck.commands import CommandRegistry


def _lines(*requests: Any) -> list[str]:
    return [r if isinstance(r, str) else json.dumps(r) for r in requests]


async def _run(registry: CommandRegistry, *requests: Any) -> list[dict[str, Any]]:
    reader = io.StringIO("\n".join(_lines(*requests)) + "\n")
    writer = io.StringIO()
    await StdioBridge(registry, reader=reader, writer=writer).serve()
    return [json.loads(line) for line in writer.getvalue().splitlines()]


@pytest.fixture()
def registry(dispatcher) -> CommandRegistry:
    return CommandRegistry(dispatcher)


def test_progress_payload_percentage() -> None:
    assert progress_payload(1, 4, "a") == {
        "current": 1,
        "total": 4,
        "fileName": "a",
        "percentage": 25,
    }
    assert progress_payload(3, 0, "a")["percentage"] == 0


@pytest.mark.asyncio
async def test_ping_round_trip(registry) -> None:
    (response,) = await _run(registry, {"id": "1", "toolname": "ping", "params": {"x": 1}})
    assert response["id"] == "1"
    assert response["success"] is True
    assert response["toolname"] == "ping"
    assert response["data"]["message"] == "Pong"
    assert response["data"]["params"] == {"x": 1}


@pytest.mark.asyncio
async def test_invalid_json_line(registry) -> None:
    (response,) = await _run(registry, "{not json")
    assert response["success"] is False
    assert response["id"] is None
    assert response["error"].startswith("Invalid JSON request")


@pytest.mark.asyncio
async def test_missing_toolname(registry) -> None:
    (response,) = await _run(registry, {"id": 9, "params": {}})
    assert response["id"] == 9
    assert response["error"] == "toolname is required"


@pytest.mark.asyncio
async def test_unknown_tool(registry) -> None:
    (response,) = await _run(registry, {"id": "2", "toolname": "launch"})
    assert response["success"] is False
    assert response["errorType"] == "invalid_parameter"
    assert "Unknown command: launch" in response["error"]


@pytest.mark.asyncio
async def test_copy_streams_progress_before_response(registry, tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.txt").write_text("a")
    (src / "b.txt").write_text("b")

    messages = await _run(
        registry,
        {
            "id": "7",
            "toolname": "file-operations",
            "params": {
                "operation": "copy",
                "sourcePath": str(src),
                "destinationPath": str(tmp_path / "dst"),
            },
        },
    )

    *events, response = messages
    assert [e["event"] for e in events] == ["copy-progress", "copy-progress"]
    assert [e["data"]["percentage"] for e in events] == [50, 100]
    assert all(e["id"] == "7" for e in events)
    assert response["success"] is True
    assert response["data"]["filesCopied"] == 2
    assert response["data"]["operation"] == "copy"


@pytest.mark.asyncio
async def test_operation_failure_is_reported(registry, tmp_path: Path) -> None:
    (response,) = await _run(
        registry,
        {
            "id": "3",
            "toolname": "file-operations",
            "params": {"operation": "list", "folderPath": str(tmp_path / "nope")},
        },
    )
    assert response["success"] is False
    assert response["errorType"] == "not_found"
    assert response["toolname"] == "file-operations"


@pytest.mark.asyncio
async def test_cancel_message_is_acknowledged(registry) -> None:
    (ack,) = await _run(registry, {"id": "c1", "cancel": True, "operationId": "missing"})
    assert ack == {"id": "c1", "event": "cancelled", "data": {"cancelled": 0}}


@pytest.mark.asyncio
async def test_requests_run_concurrently_and_keep_ids(registry, tmp_path: Path) -> None:
    messages = await _run(
        registry,
        {"id": "a", "toolname": "ping"},
        {"id": "b", "toolname": "help"},
    )
    by_id = {m["id"]: m for m in messages}
    assert by_id["a"]["data"]["message"] == "Pong"
    assert "file-operations" in by_id["b"]["data"]["availableCommands"]
