"""Tests for staging and uploading deliverables (app/services/uploads.py)."""

import asyncio
import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.errors import UpstreamError, ValidationError
from app.services.blob_store import BlobLocator, StagedFile
from app.services.uploads import discard_staged, stage_upload, upload_deliverables


class RecordingStore:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.uploaded: list[str] = []

    async def upload(self, file: StagedFile, container_name: str) -> BlobLocator:
        await asyncio.sleep(0)
        if file.name in self.fail_on:
            raise OSError(f"disk full writing {file.name}")
        self.uploaded.append(file.name)
        url = f"https://blobs.test/{container_name}/{file.name}"
        return BlobLocator(view_url=url, download_url=url + "?dl=1")


def _upload(name: str, body: bytes = b"data") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(body), filename=name, headers=Headers({"content-type": "image/png"})
    )


@pytest.mark.asyncio
async def test_stage_upload_spools_to_disk() -> None:
    staged = await stage_upload(_upload("a.png", b"\x89PNG"))
    assert staged.name == "a.png"
    assert staged.mime_type == "image/png"
    assert staged.size == 4
    assert staged.path.read_bytes() == b"\x89PNG"
    discard_staged([staged])
    assert not staged.path.exists()


@pytest.mark.asyncio
async def test_stage_upload_requires_filename() -> None:
    with pytest.raises(ValidationError):
        await stage_upload(_upload(""))


@pytest.mark.asyncio
async def test_upload_deliverables_returns_records_in_order() -> None:
    files = [await stage_upload(_upload(n)) for n in ("one.png", "two.png")]
    store = RecordingStore()
    records = await upload_deliverables(store, files, "Job_1_Logo")

    assert [r["name"] for r in records] == ["one.png", "two.png"]
    assert records[0]["view_url"] == "https://blobs.test/Job_1_Logo/one.png"
    assert records[0]["mime_type"] == "image/png"
    assert records[0]["uploaded_at"]
    assert not any(f.path.exists() for f in files)


@pytest.mark.asyncio
async def test_upload_failure_is_all_or_nothing() -> None:
    files = [await stage_upload(_upload(n)) for n in ("ok.png", "bad.png")]
    with pytest.raises(UpstreamError):
        await upload_deliverables(RecordingStore(fail_on={"bad.png"}), files, "c")
    assert not any(f.path.exists() for f in files)


@pytest.mark.asyncio
async def test_upload_requires_files() -> None:
    with pytest.raises(ValidationError, match="No files uploaded"):
        await upload_deliverables(RecordingStore(), [], "c")


def test_discard_tolerates_missing_files(tmp_path: Path) -> None:
    ghost = StagedFile(name="x", mime_type="text/plain", path=tmp_path / "gone", size=0)
    discard_staged([ghost])
