from __future__ import annotations

import pytest

from review_comics.artifacts import FileArtifactStore
from review_comics.errors import StorageError


@pytest.mark.asyncio
async def test_put_given_base_url_when_stored_then_file_is_written_and_public_url_returned(tmp_path) -> None:
    # Given
    store = FileArtifactStore(tmp_path / "comics", base_url="https://cdn.example.test/comics/")

    # When
    url = await store.put("abc123", b"png-bytes")

    # Then
    assert url == "https://cdn.example.test/comics/abc123.png"
    assert (tmp_path / "comics" / "abc123.png").read_bytes() == b"png-bytes"
    assert not (tmp_path / "comics" / "abc123.png.tmp").exists()


@pytest.mark.asyncio
async def test_put_given_no_base_url_when_stored_then_file_uri_is_returned(tmp_path) -> None:
    # Given
    store = FileArtifactStore(tmp_path)

    # When
    url = await store.put("abc", b"x")

    # Then
    assert url.startswith("file://")
    assert url.endswith("/abc.png")


@pytest.mark.asyncio
@pytest.mark.parametrize("artifact_id", ["../escape", "a/b", ""])
async def test_put_given_unsafe_artifact_id_when_stored_then_storage_error_is_raised(tmp_path, artifact_id) -> None:
    # Given
    store = FileArtifactStore(tmp_path)

    # When / Then
    with pytest.raises(StorageError):
        await store.put(artifact_id, b"x")


@pytest.mark.asyncio
async def test_put_given_empty_payload_when_stored_then_storage_error_is_raised(tmp_path) -> None:
    # Given / When / Then
    with pytest.raises(StorageError):
        await FileArtifactStore(tmp_path).put("abc", b"")


@pytest.mark.asyncio
async def test_delete_given_existing_and_missing_artifacts_when_deleted_then_result_reports_removal(tmp_path) -> None:
    # Given
    store = FileArtifactStore(tmp_path)
    await store.put("abc", b"x")

    # When / Then
    assert await store.delete("abc") is True
    assert await store.delete("abc") is False
    assert not store.path_for("abc").exists()
