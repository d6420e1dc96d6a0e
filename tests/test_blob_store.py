"""Tests for blob store adapters (app/services/blob_store.py)."""

import uuid
from pathlib import Path

import httpx
import pytest

from app.config import settings
from app.errors import UpstreamError
from app.services.blob_store import (
    HttpBlobStore,
    LocalBlobStore,
    StagedFile,
    build_blob_store,
    container_name_for,
)


def _staged(tmp_path: Path, name: str = "report.pdf", body: bytes = b"%PDF-1.7") -> StagedFile:
    path = tmp_path / f"staged_{uuid.uuid4().hex}"
    path.write_bytes(body)
    return StagedFile(name=name, mime_type="application/pdf", path=path, size=len(body))


def test_container_name_sanitizes_title() -> None:
    job_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
    assert container_name_for(job_id, "Logo & brand kit!") == f"Job_{job_id}_Logo___brand_kit_"


@pytest.mark.asyncio
async def test_local_store_copies_file(tmp_path: Path) -> None:
    store = LocalBlobStore(str(tmp_path / "blobs"), "http://blobs.test/")
    locator = await store.upload(_staged(tmp_path), "Job_x_Logo")

    stored = list((tmp_path / "blobs" / "Job_x_Logo").iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"%PDF-1.7"
    assert locator.view_url == f"http://blobs.test/Job_x_Logo/{stored[0].name}"
    assert locator.download_url == locator.view_url + "?download=1"


@pytest.mark.asyncio
async def test_http_store_uploads_multipart(tmp_path: Path) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "b1", "viewUrl": "https://v/b1", "downloadUrl": "https://d/b1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = HttpBlobStore(client, "https://storage.test/v1/", "tok")
    locator = await store.upload(_staged(tmp_path), "Job_x_Logo")

    assert locator.view_url == "https://v/b1"
    assert locator.download_url == "https://d/b1"
    request = seen[0]
    assert str(request.url) == "https://storage.test/v1/containers/Job_x_Logo/objects"
    assert request.headers["authorization"] == "Bearer tok"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"%PDF-1.7" in request.content


@pytest.mark.asyncio
async def test_http_store_error_status(tmp_path: Path) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    store = HttpBlobStore(client, "https://storage.test/v1", "tok")
    with pytest.raises(UpstreamError):
        await store.upload(_staged(tmp_path), "c")


@pytest.mark.asyncio
async def test_http_store_missing_locator(tmp_path: Path) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"id": "b"})))
    store = HttpBlobStore(client, "https://storage.test/v1", "tok")
    with pytest.raises(UpstreamError, match="no locator"):
        await store.upload(_staged(tmp_path), "c")


@pytest.mark.asyncio
async def test_http_store_non_json_body(tmp_path: Path) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="ok")))
    store = HttpBlobStore(client, "https://storage.test/v1", "tok")
    with pytest.raises(UpstreamError, match="no locator"):
        await store.upload(_staged(tmp_path), "c")


def test_build_blob_store_selects_backend() -> None:
    client = httpx.AsyncClient()
    assert isinstance(build_blob_store(client), LocalBlobStore)
    object.__setattr__(settings, "blob_store_backend", "http")
    object.__setattr__(settings, "blob_store_url", "https://storage.test/v1")
    assert isinstance(build_blob_store(client), HttpBlobStore)
