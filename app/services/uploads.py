"""Deliverable upload step shared by initial and revision submissions."""

import asyncio
import logging
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from fastapi import UploadFile

from app.config import settings
from app.errors import ServiceError, UpstreamError, ValidationError
from app.services.blob_store import BlobStore, StagedFile

logger = logging.getLogger(__name__)


async def stage_upload(upload: UploadFile) -> StagedFile:
    """Spool a request upload to a named temp file the blob store can read."""
    if not upload.filename:
        raise ValidationError("Uploaded file is missing a filename")
    staging_dir = settings.upload_staging_dir or None
    with tempfile.NamedTemporaryFile(delete=False, dir=staging_dir, prefix="upload_") as tmp:
        await upload.seek(0)
        await asyncio.to_thread(shutil.copyfileobj, upload.file, tmp)
        size = tmp.tell()
    return StagedFile(
        name=upload.filename,
        mime_type=upload.content_type or "application/octet-stream",
        path=Path(tmp.name),
        size=size,
    )


def discard_staged(files: list[StagedFile]) -> None:
    for staged in files:
        try:
            staged.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove staged upload %s: %s", staged.path, e)


async def upload_deliverables(
    blob_store: BlobStore, files: list[StagedFile], container_name: str
) -> list[dict]:
    """Upload every file concurrently and return deliverable records.

    All or nothing: the first failure propagates and no records are returned.
    Blobs that did upload in a failed batch are left orphaned in the store.
    Staged files are removed whatever the outcome.
    """
    if not files:
        raise ValidationError("No files uploaded")

    async def _one(staged: StagedFile) -> dict:
        locator = await blob_store.upload(staged, container_name)
        return {
            "name": staged.name,
            "view_url": locator.view_url,
            "download_url": locator.download_url,
            "mime_type": staged.mime_type,
            "uploaded_at": datetime.now(UTC).isoformat(),
        }

    try:
        results = await asyncio.gather(*(_one(f) for f in files), return_exceptions=True)
    finally:
        discard_staged(files)

    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        uploaded = len(results) - len(failures)
        if uploaded:
            logger.warning(
                "Upload batch for %s failed; %d uploaded blob(s) orphaned",
                container_name, uploaded,
            )
        first = failures[0]
        if isinstance(first, ServiceError):
            raise first
        logger.error("Blob upload failed: %r", first)
        raise UpstreamError("Failed to upload files") from first

    logger.info("Uploaded %d file(s) to %s", len(results), container_name)
    return list(results)
