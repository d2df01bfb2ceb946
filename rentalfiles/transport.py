"""Direct write of file bytes to the blob store.

The upload URL is presigned by the metadata service, so no bearer token
is sent with the PUT.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Protocol

import httpx

from .errors import TransferError
from .models import TransferOutcome, UploadFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Chunk size for streamed PUT bodies (64KB)
CHUNK_SIZE = 64 * 1024


class HttpUploader(Protocol):
    """Transfer-with-progress primitive.

    Implementations report progress as a percentage of bytes sent and
    return a failed TransferOutcome (or raise TransferError) on failure.
    """

    async def put(
        self, url: str, file: UploadFile, on_progress: ProgressCallback
    ) -> TransferOutcome: ...


class HttpxUploader:
    """HttpUploader that streams the body through httpx."""

    def __init__(self, timeout: float = 300.0, chunk_size: int = CHUNK_SIZE):
        self._chunk_size = chunk_size
        self._http = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._http.aclose()

    async def put(
        self, url: str, file: UploadFile, on_progress: ProgressCallback
    ) -> TransferOutcome:
        """PUT the file to a presigned URL.

        PUT <url> with Content-Type set to the file's content type.
        """
        total = file.size

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, self._chunk_size):
                chunk = file.data[offset : offset + self._chunk_size]
                yield chunk
                sent += len(chunk)
                on_progress(sent * 100 / total)

        # Presigned PUTs reject chunked encoding, so the length is explicit
        headers = {
            "Content-Type": file.content_type,
            "Content-Length": str(total),
        }

        try:
            response = await self._http.put(url, content=body(), headers=headers)
        except httpx.InvalidURL as e:
            return TransferOutcome.failed(f"Invalid upload URL: {e}")
        except httpx.RequestError as e:
            return TransferOutcome.failed(f"Network error during upload: {e}")

        if response.status_code != 200:
            return TransferOutcome.failed(
                f"Storage upload failed: {response.status_code}",
                status_code=response.status_code,
            )

        return TransferOutcome.succeeded(response.headers.get("ETag"))


class _ProgressTracker:
    """Keeps reported progress within [0, 100] and non-decreasing."""

    def __init__(self, callback: ProgressCallback | None):
        self._callback = callback
        self.last = -1.0

    def report(self, percent: float) -> None:
        percent = min(100.0, max(0.0, float(percent)))
        if percent <= self.last:
            return
        self.last = percent
        if self._callback is not None:
            self._callback(percent)

    def finish(self) -> None:
        self.report(100.0)


class StorageTransporter:
    """Performs a single write to the blob store with progress reporting.

    Never retries. A failed transfer is returned as an unsuccessful
    TransferOutcome so the caller can cancel the credential.
    """

    def __init__(self, uploader: HttpUploader | None = None):
        self._owned: HttpxUploader | None = None
        if uploader is None:
            uploader = self._owned = HttpxUploader()
        self._uploader = uploader

    async def close(self) -> None:
        """Close the uploader if this transporter created it."""
        if self._owned is not None:
            await self._owned.close()

    async def transfer(
        self,
        upload_url: str,
        file: UploadFile,
        on_progress: ProgressCallback | None = None,
    ) -> TransferOutcome:
        """Write the file to the credential's upload URL.

        Args:
            upload_url: Presigned blob store URL
            file: Validated file; its content type is sent as-is
            on_progress: Called with non-decreasing percentages in [0, 100],
                ending at 100 on success

        Returns:
            TransferOutcome with the store's ETag when it provides one
        """
        tracker = _ProgressTracker(on_progress)
        tracker.report(0.0)

        try:
            outcome = await self._uploader.put(upload_url, file, tracker.report)
        except TransferError as e:
            outcome = TransferOutcome.failed(str(e), status_code=e.status_code)

        if outcome.success:
            tracker.finish()
            logger.debug(
                f"Transferred {file.name} ({file.size} bytes)",
                extra={"etag": outcome.integrity_tag},
            )
        else:
            logger.warning(
                f"Transfer of {file.name} failed: {outcome.error}",
                extra={"status_code": outcome.status_code},
            )
        return outcome
