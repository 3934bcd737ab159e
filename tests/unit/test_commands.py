"""Tool registry and tool envelopes."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from filedeck.commands import CommandRegistry
from filedeck.vfs.detect import has_archive_suffix, looks_like_zip, normalize_extensions


@pytest.fixture()
def registry(dispatcher) -> CommandRegistry:
    return CommandRegistry(dispatcher)


def test_builtin_tools(registry) -> None:
    assert registry.names() == ["ping", "help", "file-operations"]
    assert registry.get("PING") is registry.get("ping")


def test_parameter_table_lists_operations(registry) -> None:
    table = registry.parameter_table()
    (operation,) = [
        p for p in table["file-operations"]["parameters"] if p["name"] == "operation"
    ]
    assert operation["required"] is True
    assert "directory-size" in operation["options"]


def test_progress_event_mapping(registry) -> None:
    assert registry.progress_event("file-operations", {"operation": "copy"}) == "copy-progress"
    assert registry.progress_event("file-operations", {"operation": "zip"}) == "zip-progress"
    assert registry.progress_event("file-operations", {"operation": "search"}) == "scan-progress"
    assert registry.progress_event("file-operations", {"operation": "list"}) is None
    assert registry.progress_event("ping", {"operation": "copy"}) is None


@pytest.mark.asyncio
async def test_tool_envelope_on_success(registry) -> None:
    response = await registry.run("ping", {"a": 1})
    assert set(response) == {"success", "data", "toolname", "timestamp"}
    assert response["data"]["params"] == {"a": 1}


@pytest.mark.asyncio
async def test_file_operations_requires_operation(registry) -> None:
    response = await registry.run("file-operations", {})
    assert response["success"] is False
    assert response["error"] == "operation is required"
    assert response["errorType"] == "invalid_parameter"


@pytest.mark.asyncio
async def test_file_operations_failure_keeps_error_type(registry, tmp_path: Path) -> None:
    response = await registry.run(
        "file-operations", {"operation": "read", "filePath": str(tmp_path)}
    )
    assert response["success"] is False
    assert response["errorType"] == "not_a_file"
    assert response["toolname"] == "file-operations"


@pytest.mark.asyncio
async def test_params_must_be_mapping(registry) -> None:
    response = await registry.run("ping", ["x"])  # type: ignore[arg-type]
    assert response["error"] == "params must be an object"


def test_archive_suffix_detection() -> None:
    assert has_archive_suffix("Photos.ZIP") is True
    assert has_archive_suffix(".zip") is False
    assert has_archive_suffix("notes.zip.txt") is False
    assert normalize_extensions(["ZIP", " .cbz ", "zip", ""]) == (".zip", ".cbz")
    assert normalize_extensions([]) == (".zip",)


def test_looks_like_zip_restores_position(tmp_path: Path, make_zip) -> None:
    z = make_zip(tmp_path / "a.zip", {"a": b"1"})
    with open(z, "rb") as f:
        assert looks_like_zip(f) is True
        assert f.tell() == 0
    assert looks_like_zip(io.BytesIO(b"plain")) is False
