"""Upload a packaged workspace to its presigned URL, and clean up afterwards."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from taskassist.core.constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    UPLOAD_CONTENT_TYPE,
    RemoteOperation,
)
from taskassist.core.exceptions import DomainRemoteError, TransientRemoteError
from taskassist.workspace.packager import ZipCreationResult

logger = structlog.get_logger()

_OPERATION = str(RemoteOperation.UPLOAD_TO_S3)


async def upload_artifact(
    upload_url: str,
    artifact: ZipCreationResult,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> None:
    """PUT the archive bytes to *upload_url* with checksum headers."""
    loop = asyncio.get_running_loop()
    body = await loop.run_in_executor(None, artifact.path.read_bytes)

    headers = {
        "content-type": UPLOAD_CONTENT_TYPE,
        "x-amz-checksum-sha256": artifact.checksum,
        "content-length": str(artifact.content_length),
    }

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        resp = await http.put(upload_url, content=body, headers=headers)
    except httpx.TimeoutException as exc:
        raise TransientRemoteError("Upload timed out", operation=_OPERATION) from exc
    except httpx.TransportError as exc:
        raise TransientRemoteError(f"Upload failed: {exc}", operation=_OPERATION) from exc
    finally:
        if owns_client:
            await http.aclose()

    if resp.is_success:
        logger.info("artifact_uploaded", content_length=artifact.content_length)
        return

    text = f"Upload failed ({resp.status_code}): {resp.reason_phrase}"
    if resp.status_code == 429 or resp.status_code >= 500:
        raise TransientRemoteError(text, operation=_OPERATION, status_code=resp.status_code)
    raise DomainRemoteError(text, operation=_OPERATION, status_code=resp.status_code)


def delete_upload_artifact(path: Path) -> None:
    """Remove a temporary archive. Best effort: failures are logged, not raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("artifact_cleanup_failed", path=str(path), error=str(exc))
        return
    logger.debug("artifact_deleted", path=str(path))
