"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

# Add src to path so the suite runs from a plain checkout.
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from filedeck.core.events import get_event_bus  # noqa: E402
from filedeck.core.logging import set_console_output  # noqa: E402
from filedeck.ops.dispatcher import FileOperationDispatcher  # noqa: E402

ZipFactory = Callable[[Path, dict[str, bytes | None]], Path]


def build_zip(path: Path, entries: dict[str, bytes | None]) -> Path:
    """Write a ZIP at ``path``; a ``None`` value makes a directory entry."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            if data is None:
                zf.mkdir(name.rstrip("/"))
            else:
                zf.writestr(name, data)
    return path


def zip_bytes(entries: dict[str, bytes | None], scratch: Path) -> bytes:
    """Serialized ZIP content, for embedding one archive inside another."""
    return build_zip(scratch, entries).read_bytes()


@pytest.fixture(autouse=True)
def _quiet_console():
    set_console_output(False)
    yield
    set_console_output(True)


@pytest.fixture(autouse=True)
def _isolate_event_bus():
    get_event_bus().clear()
    yield
    get_event_bus().clear()


@pytest.fixture
def make_zip() -> ZipFactory:
    return build_zip


@pytest.fixture
def scratch_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Temp dir used for nested-archive extraction; checked for leftovers."""
    return tmp_path_factory.mktemp("scratch")


@pytest.fixture
def nested_zip(tmp_path: Path) -> Path:
    """outer.zip -> inner.zip -> a.txt (plus docs/readme.md in outer)."""
    inner = zip_bytes({"a.txt": b"alpha"}, tmp_path / "_build" / "inner.zip")
    return build_zip(
        tmp_path / "data" / "outer.zip",
        {"inner.zip": inner, "docs/readme.md": b"# readme"},
    )


@pytest.fixture
def dispatcher(scratch_dir: Path) -> FileOperationDispatcher:
    return FileOperationDispatcher(temp_dir=scratch_dir, yield_seconds=0)
