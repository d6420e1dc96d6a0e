"""Blob store adapters for submitted deliverables.

Supports two backends:
- HTTP object-storage gateway via httpx (production)
- Local directory (development / testing): copies files under a folder and
  serves them from ``blob_store_public_url``

Set BLOB_STORE_BACKEND=http and configure BLOB_STORE_* settings for production.
"""

import asyncio
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
from fastapi import Request

from app.config import settings
from app.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class StagedFile:
    """An uploaded file spooled to local disk, awaiting transfer."""
    name: str
    mime_type: str
    path: Path
    size: int


@dataclass
class BlobLocator:
    view_url: str
    download_url: str


class BlobStore(Protocol):
    async def upload(self, file: StagedFile, container_name: str) -> BlobLocator: ...


def container_name_for(job_id: uuid.UUID, title: str) -> str:
    """Folder name grouping one job's submissions: Job_<id>_<sanitized title>."""
    return f"Job_{job_id}_{re.sub(r'[^a-zA-Z0-9]', '_', title)}"


class LocalBlobStore:
    """Development store: copies files into a local directory."""

    def __init__(self, root: str, public_url: str) -> None:
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    async def upload(self, file: StagedFile, container_name: str) -> BlobLocator:
        blob_id = uuid.uuid4().hex
        target_dir = self.root / container_name
        target = target_dir / f"{blob_id}_{Path(file.name).name}"
        try:
            await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, file.path, target)
        except OSError as e:
            logger.error("Local blob write failed for %s: %s", file.name, e)
            raise UpstreamError(f"Failed to upload file: {file.name}")

        url = f"{self.public_url}/{container_name}/{target.name}"
        return BlobLocator(view_url=url, download_url=f"{url}?download=1")


class HttpBlobStore:
    """Production store: multipart upload to an object-storage gateway.

    The gateway answers ``{"id", "viewUrl", "downloadUrl"}`` and is expected to
    make the object readable by anyone holding the link.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, token: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.token = token

    async def upload(self, file: StagedFile, container_name: str) -> BlobLocator:
        url = f"{self.base_url}/containers/{container_name}/objects"
        try:
            with file.path.open("rb") as fh:
                resp = await self.client.post(
                    url,
                    headers={"Authorization": f"Bearer {self.token}"},
                    files={"file": (file.name, fh, file.mime_type)},
                )
        except httpx.TimeoutException:
            logger.error("Blob store timed out uploading %s", file.name)
            raise UpstreamError(f"Blob store timed out uploading {file.name}")
        except (httpx.RequestError, OSError) as e:
            logger.error("Blob store request failed for %s: %s", file.name, e)
            raise UpstreamError(f"Failed to upload file: {file.name}")

        if resp.status_code not in (200, 201):
            logger.error(
                "Blob store upload returned %d: %s", resp.status_code, resp.text[:500]
            )
            raise UpstreamError(f"Failed to upload file: {file.name} (status {resp.status_code})")

        try:
            data = resp.json()
            return BlobLocator(view_url=data["viewUrl"], download_url=data["downloadUrl"])
        except (ValueError, KeyError, TypeError):
            logger.error("Blob store response missing locators: %s", resp.text[:500])
            raise UpstreamError(f"Blob store returned no locator for {file.name}")


def build_blob_store(client: httpx.AsyncClient) -> BlobStore:
    if settings.blob_store_backend == "http":
        return HttpBlobStore(client, settings.blob_store_url, settings.blob_store_token)
    return LocalBlobStore(settings.blob_store_local_dir, settings.blob_store_public_url)


def get_blob_store(request: Request) -> BlobStore:
    """Dependency: the process-wide store built in the app lifespan."""
    return request.app.state.blob_store
