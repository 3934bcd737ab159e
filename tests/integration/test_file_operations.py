"""End-to-end file operations across folders, archives and nested archives."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

import pytest

from filedeck.ops.dispatcher import FileOperationDispatcher
from filedeck.vfs.archives import ArchiveStore


def _names(path: Path) -> list[str]:
    with zipfile.ZipFile(path) as zf:
        return sorted(zf.namelist())


def _inner_names(outer: Path, inner: str) -> list[str]:
    with zipfile.ZipFile(outer) as zf, zf.open(inner) as f, zipfile.ZipFile(f) as izf:
        return sorted(izf.namelist())


async def _ok(dispatcher: FileOperationDispatcher, op: str, **params: Any) -> dict[str, Any]:
    response = await dispatcher.execute(op, params)
    assert response["success"] is True, response
    return response["data"]


async def _fail(dispatcher: FileOperationDispatcher, op: str, **params: Any) -> dict[str, Any]:
    response = await dispatcher.execute(op, params)
    assert response["success"] is False, response
    return response


@pytest.mark.asyncio
async def test_list_plain_directory(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.txt").write_text("abc")

    data = await _ok(dispatcher, "list", folderPath=str(tmp_path))

    assert data["totalItems"] == 2
    assert [d["name"] for d in data["directories"]] == ["sub"]
    assert data["files"][0]["size"] == 3
    assert data["isArchivePath"] is False


@pytest.mark.asyncio
async def test_list_archive_matches_store(dispatcher, tmp_path: Path, make_zip) -> None:
    z = make_zip(tmp_path / "a.zip", {"x.txt": b"1", "docs/y.md": b"2", "docs/z/w": b"3"})

    data = await _ok(dispatcher, "list", folderPath=str(z))

    assert data == ArchiveStore().list_entries(z, "").to_dict()
    assert data["isArchivePath"] is True
    assert data["summary"] == {"totalFiles": 1, "totalDirectories": 1}


@pytest.mark.asyncio
async def test_list_nested_archive(dispatcher, nested_zip: Path, scratch_dir: Path) -> None:
    data = await _ok(dispatcher, "list", folderPath=f"{nested_zip}/inner.zip")

    assert [f["name"] for f in data["files"]] == ["a.txt"]
    assert data["files"][0]["path"] == f"{nested_zip}/inner.zip/a.txt"
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_list_archive_file_entry_is_not_a_directory(dispatcher, nested_zip: Path) -> None:
    response = await _fail(dispatcher, "list", folderPath=f"{nested_zip}/docs/readme.md")
    assert response["errorType"] == "not_a_directory"


@pytest.mark.asyncio
async def test_read_nested_entry(dispatcher, nested_zip: Path, scratch_dir: Path) -> None:
    data = await _ok(dispatcher, "read", filePath=f"{nested_zip}/inner.zip/a.txt")

    assert data["content"] == "alpha"
    assert data["size"] == 5
    assert data["isImage"] is False
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_read_image_returns_data_url(dispatcher, tmp_path: Path) -> None:
    img = tmp_path / "pixel.png"
    img.write_bytes(b"\x89PNG\r\n")

    data = await _ok(dispatcher, "read", filePath=str(img))

    assert data["isImage"] is True
    assert data["content"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_copy_file_auto_renames(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "dst").mkdir()
    (tmp_path / "src" / "a.txt").write_text("new")
    (tmp_path / "dst" / "a.txt").write_text("old")

    data = await _ok(
        dispatcher,
        "copy",
        sourcePath=str(tmp_path / "src" / "a.txt"),
        destinationPath=str(tmp_path / "dst"),
    )

    assert data["destinationPath"] == str(tmp_path / "dst" / "a(-copy1).txt")
    assert (tmp_path / "dst" / "a.txt").read_text() == "old"


@pytest.mark.asyncio
async def test_copy_directory_into_itself_is_rejected(dispatcher, tmp_path: Path) -> None:
    src = tmp_path / "src"
    (src / "inner").mkdir(parents=True)
    response = await _fail(
        dispatcher, "copy", sourcePath=str(src), destinationPath=str(src / "inner")
    )
    assert response["errorType"] == "invalid_parameter"


@pytest.mark.asyncio
async def test_copy_disk_file_into_nested_archive(
    dispatcher, nested_zip: Path, tmp_path: Path, scratch_dir: Path
) -> None:
    src = tmp_path / "b.txt"
    src.write_text("beta")

    data = await _ok(
        dispatcher, "copy", sourcePath=str(src), destinationPath=f"{nested_zip}/inner.zip"
    )

    assert data["destinationPath"] == f"{nested_zip}/inner.zip/b.txt"
    assert _inner_names(nested_zip, "inner.zip") == ["a.txt", "b.txt"]
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_copy_archive_directory_to_disk(dispatcher, nested_zip: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()

    data = await _ok(
        dispatcher, "copy", sourcePath=f"{nested_zip}/docs", destinationPath=str(out)
    )

    assert data["type"] == "directory"
    assert data["filesCopied"] == 1
    assert (out / "docs" / "readme.md").read_text() == "# readme"


@pytest.mark.asyncio
async def test_copy_between_archives(dispatcher, nested_zip: Path, tmp_path: Path, make_zip):
    target = make_zip(tmp_path / "target.zip", {"keep.txt": b"k"})

    data = await _ok(
        dispatcher,
        "copy",
        sourcePath=f"{nested_zip}/inner.zip/a.txt",
        destinationPath=f"{target}/copied",
    )

    assert data["destinationPath"] == f"{target}/copied"
    assert _names(target) == ["copied", "keep.txt"]
    assert ArchiveStore().read_entry(target, "copied") == "alpha"


@pytest.mark.asyncio
async def test_copy_directory_into_archive_root(dispatcher, tmp_path: Path, make_zip) -> None:
    folder = tmp_path / "photos"
    (folder / "2024").mkdir(parents=True)
    (folder / "2024" / "a.jpg").write_bytes(b"jpg")
    target = make_zip(tmp_path / "t.zip", {"x": b""})

    data = await _ok(dispatcher, "copy", sourcePath=str(folder), destinationPath=str(target))

    assert data["filesCopied"] == 1
    assert _names(target) == ["photos/", "photos/2024/a.jpg", "x"]


@pytest.mark.asyncio
async def test_delete_nested_entry_removes_exactly_one(
    dispatcher, nested_zip: Path, scratch_dir: Path
) -> None:
    before = len(_inner_names(nested_zip, "inner.zip"))

    data = await _ok(dispatcher, "delete", sourcePath=f"{nested_zip}/inner.zip/a.txt")

    assert data == {
        "type": "archive-entry",
        "entriesRemoved": 1,
        "sourcePath": f"{nested_zip}/inner.zip/a.txt",
    }
    assert len(_inner_names(nested_zip, "inner.zip")) == before - 1
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_delete_archive_directory(dispatcher, nested_zip: Path) -> None:
    data = await _ok(dispatcher, "delete", sourcePath=f"{nested_zip}/docs")
    assert data["type"] == "archive-directory"
    assert _names(nested_zip) == ["inner.zip"]


@pytest.mark.asyncio
async def test_delete_archive_root_deletes_the_file(dispatcher, tmp_path: Path, make_zip):
    z = make_zip(tmp_path / "gone.zip", {"a": b"1"})
    data = await _ok(dispatcher, "delete", sourcePath=str(z))
    assert data["type"] == "file"
    assert not z.exists()


@pytest.mark.asyncio
async def test_move_archive_entry_to_disk(dispatcher, nested_zip: Path, tmp_path: Path) -> None:
    data = await _ok(
        dispatcher,
        "move",
        sourcePath=f"{nested_zip}/docs/readme.md",
        destinationPath=str(tmp_path / "readme.md"),
    )

    assert data["method"] == "copy"
    assert (tmp_path / "readme.md").read_text() == "# readme"
    assert _names(nested_zip) == ["inner.zip"]


@pytest.mark.asyncio
async def test_move_to_existing_disk_target_fails(dispatcher, nested_zip: Path, tmp_path: Path):
    (tmp_path / "readme.md").write_text("mine")
    response = await _fail(
        dispatcher,
        "move",
        sourcePath=f"{nested_zip}/docs/readme.md",
        destinationPath=str(tmp_path / "readme.md"),
    )
    assert response["errorType"] == "already_exists"
    assert "docs/readme.md" in _names(nested_zip)


@pytest.mark.asyncio
async def test_move_plain_uses_rename(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    data = await _ok(
        dispatcher, "move", sourcePath=str(tmp_path / "a.txt"), destinationPath=str(tmp_path / "b")
    )
    assert data["method"] == "rename"
    assert (tmp_path / "b").read_text() == "a"


@pytest.mark.asyncio
async def test_move_entry_onto_its_own_archive_root_keeps_data(
    dispatcher, tmp_path: Path, make_zip
) -> None:
    z = make_zip(tmp_path / "x.zip", {"a.txt": b"a", "sub/b.txt": b"b"})

    response = await _fail(dispatcher, "move", sourcePath=f"{z}/a.txt", destinationPath=str(z))

    assert response["errorType"] == "invalid_parameter"
    assert _names(z) == ["a.txt", "sub/b.txt"]


@pytest.mark.asyncio
async def test_move_archive_directory_into_itself_keeps_data(
    dispatcher, tmp_path: Path, make_zip
) -> None:
    z = make_zip(tmp_path / "y.zip", {"sub/a.txt": b"a", "sub/deep/b.txt": b"b"})

    for destination in (f"{z}/sub", f"{z}/sub/deep"):
        response = await _fail(
            dispatcher, "move", sourcePath=f"{z}/sub", destinationPath=destination
        )
        assert response["errorType"] == "invalid_parameter"
        assert _names(z) == ["sub/a.txt", "sub/deep/b.txt"]


@pytest.mark.asyncio
async def test_move_nested_archive_into_itself_keeps_data(dispatcher, nested_zip: Path) -> None:
    response = await _fail(
        dispatcher,
        "move",
        sourcePath=f"{nested_zip}/inner.zip",
        destinationPath=f"{nested_zip}/inner.zip",
    )
    assert response["errorType"] == "invalid_parameter"
    assert _inner_names(nested_zip, "inner.zip") == ["a.txt"]


@pytest.mark.asyncio
async def test_move_archive_file_into_itself_keeps_data(
    dispatcher, tmp_path: Path, make_zip
) -> None:
    z = make_zip(tmp_path / "x.zip", {"sub/": None, "a.txt": b"a"})

    response = await _fail(dispatcher, "move", sourcePath=str(z), destinationPath=f"{z}/sub")

    assert response["errorType"] == "invalid_parameter"
    assert _names(z) == ["a.txt", "sub/"]


@pytest.mark.asyncio
async def test_move_within_one_archive_renames_entries(
    dispatcher, tmp_path: Path, make_zip
) -> None:
    z = make_zip(tmp_path / "x.zip", {"a.txt": b"a", "sub/b.txt": b"b", "docs/": None})

    data = await _ok(dispatcher, "move", sourcePath=f"{z}/a.txt", destinationPath=f"{z}/sub")
    assert data["method"] == "rename"
    assert data["destinationPath"] == f"{z}/sub/a.txt"

    await _ok(dispatcher, "move", sourcePath=f"{z}/sub", destinationPath=f"{z}/docs")
    assert _names(z) == ["docs/", "docs/sub/a.txt", "docs/sub/b.txt"]
    with zipfile.ZipFile(z) as zf:
        assert zf.read("docs/sub/a.txt") == b"a"


@pytest.mark.asyncio
async def test_move_within_nested_archive_onto_existing_entry_fails(
    dispatcher, tmp_path: Path, make_zip, scratch_dir: Path
) -> None:
    inner = make_zip(tmp_path / "_build" / "inner.zip", {"a.txt": b"a", "d/a.txt": b"old"})
    outer = make_zip(tmp_path / "outer.zip", {"inner.zip": inner.read_bytes()})

    response = await _fail(
        dispatcher,
        "move",
        sourcePath=f"{outer}/inner.zip/a.txt",
        destinationPath=f"{outer}/inner.zip/d",
    )

    assert response["errorType"] == "already_exists"
    assert _inner_names(outer, "inner.zip") == ["a.txt", "d/a.txt"]
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_rename_plain_and_collision(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "taken.txt").write_text("t")

    data = await _ok(dispatcher, "rename", sourcePath=str(tmp_path / "a.txt"), newName="b.txt")
    assert data["newPath"] == str(tmp_path / "b.txt")

    response = await _fail(
        dispatcher, "rename", sourcePath=str(tmp_path / "b.txt"), newName="taken.txt"
    )
    assert response["errorType"] == "already_exists"


@pytest.mark.asyncio
async def test_rename_rejects_path_separators(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    response = await _fail(
        dispatcher, "rename", sourcePath=str(tmp_path / "a.txt"), newName="../escape.txt"
    )
    assert response["errorType"] == "invalid_parameter"


@pytest.mark.asyncio
async def test_rename_archive_directory(dispatcher, nested_zip: Path) -> None:
    data = await _ok(dispatcher, "rename", sourcePath=f"{nested_zip}/docs", newName="manual")
    assert data["newPath"] == f"{nested_zip}/manual"
    assert _names(nested_zip) == ["inner.zip", "manual/readme.md"]


@pytest.mark.asyncio
async def test_mkdir_plain_and_archive(dispatcher, tmp_path: Path, nested_zip: Path) -> None:
    await _ok(dispatcher, "mkdir", dirPath=str(tmp_path / "new"))
    assert (tmp_path / "new").is_dir()

    await _ok(dispatcher, "mkdir", dirPath=f"{nested_zip}/inner.zip/empty")
    assert _inner_names(nested_zip, "inner.zip") == ["a.txt", "empty/"]

    response = await _fail(dispatcher, "mkdir", dirPath=str(tmp_path / "new"))
    assert response["errorType"] == "already_exists"


@pytest.mark.asyncio
async def test_compare_folder_with_archive(dispatcher, tmp_path: Path, make_zip) -> None:
    left = tmp_path / "left"
    left.mkdir()
    (left / "same.txt").write_text("same")
    (left / "changed.txt").write_text("abc")
    z = make_zip(tmp_path / "right.zip", {"same.txt": b"same", "changed.txt": b"abd", "new": b""})

    data = await _ok(dispatcher, "compare", leftPath=str(left), rightPath=str(z), recursive=True)

    assert data["identical"] == ["same.txt"]
    assert data["different"] == [{"path": "changed.txt", "reason": "content"}]
    assert data["onlyInRight"] == ["new"]
    assert data["recursive"] is True


@pytest.mark.asyncio
async def test_zip_builds_archive_with_progress(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    folder = tmp_path / "folder"
    folder.mkdir()
    (folder / "b.txt").write_text("b")
    seen: list[tuple[int, int, str]] = []

    response = await dispatcher.execute(
        "zip",
        {
            "files": [str(tmp_path / "a.txt"), str(folder)],
            "zipFilePath": str(tmp_path / "out.zip"),
        },
        progress=lambda c, t, n: seen.append((c, t, n)),
    )

    assert response["success"] is True
    assert response["data"]["filesAdded"] == 2
    assert _names(tmp_path / "out.zip") == ["a.txt", "folder/b.txt"]
    assert [s[:2] for s in seen] == [(1, 2), (2, 2)]


@pytest.mark.asyncio
async def test_zip_into_nested_archive(dispatcher, nested_zip: Path, tmp_path: Path) -> None:
    (tmp_path / "c.txt").write_text("c")
    await _ok(
        dispatcher,
        "zip",
        files=[str(tmp_path / "c.txt")],
        zipFilePath=f"{nested_zip}/inner.zip",
    )
    assert _inner_names(nested_zip, "inner.zip") == ["a.txt", "c.txt"]


@pytest.mark.asyncio
async def test_directory_size_of_archive_directory(dispatcher, nested_zip: Path) -> None:
    data = await _ok(dispatcher, "directory-size", dirPath=f"{nested_zip}/docs")
    assert data["totalSize"] == len(b"# readme")
    assert data["fileCount"] == 1


@pytest.mark.asyncio
async def test_search_nested_archive(dispatcher, nested_zip: Path) -> None:
    data = await _ok(
        dispatcher,
        "search",
        searchPath=str(nested_zip),
        filenamePattern="*.md",
        contentText="README",
    )
    assert [r["path"] for r in data["results"]] == [f"{nested_zip}/docs/readme.md"]


@pytest.mark.asyncio
async def test_zip_accepts_json_encoded_file_list(dispatcher, tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    files = '["' + str(tmp_path / "a.txt").replace("\\", "\\\\") + '"]'

    data = await _ok(dispatcher, "zip", files=files, zipFilePath=str(tmp_path / "out.zip"))

    assert data["filesAdded"] == 1
    assert _names(tmp_path / "out.zip") == ["a.txt"]

    response = await dispatcher.execute(
        "zip", {"files": "[broken", "zipFilePath": str(tmp_path / "x.zip")}
    )
    assert response["errorType"] == "invalid_parameter"
    assert response["error"].startswith("files must be a JSON array")
