"""Upload pipeline and replace orchestration.

One upload attempt moves through:

    IDLE -> VALIDATED -> NEGOTIATED -> TRANSFERRING -> CONFIRMED -> SUCCEEDED

Any failure after a credential was issued and before confirm goes through
CANCEL_REQUESTED (a best-effort cancel) to FAILED. A failed confirm goes
straight to FAILED: the bytes are stored but no record exists, and the
orphaned object is left for out-of-band cleanup. There is no retry within
an attempt; callers retry by calling upload() again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from .client import FilesApiClient
from .compressor import DEFAULT_MAX_WIDTH, DEFAULT_QUALITY, ImageCompressor
from .config import ClientConfig
from .errors import (
    NegotiationError,
    RentalFilesError,
    TransferError,
    UploadValidationError,
)
from .limits import load_limits
from .models import (
    FileRecord,
    FileSlot,
    UploadCredential,
    UploadFile,
    UploadIntent,
    is_image_category,
)
from .negotiator import UploadUrlNegotiator
from .reconciler import UploadReconciler
from .transport import HttpxUploader, ProgressCallback, StorageTransporter
from .validator import FileValidator

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    """State of one upload attempt."""

    IDLE = "idle"
    VALIDATED = "validated"
    NEGOTIATED = "negotiated"
    TRANSFERRING = "transferring"
    CONFIRMED = "confirmed"
    CANCEL_REQUESTED = "cancel_requested"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.IDLE: frozenset({UploadState.VALIDATED, UploadState.FAILED}),
    UploadState.VALIDATED: frozenset({UploadState.NEGOTIATED, UploadState.FAILED}),
    UploadState.NEGOTIATED: frozenset(
        {UploadState.TRANSFERRING, UploadState.CANCEL_REQUESTED}
    ),
    UploadState.TRANSFERRING: frozenset(
        {UploadState.CONFIRMED, UploadState.CANCEL_REQUESTED, UploadState.FAILED}
    ),
    UploadState.CONFIRMED: frozenset({UploadState.SUCCEEDED}),
    UploadState.CANCEL_REQUESTED: frozenset({UploadState.FAILED}),
    UploadState.SUCCEEDED: frozenset(),
    UploadState.FAILED: frozenset(),
}

StateCallback = Callable[[UploadState], None]


class UploadAttempt:
    """State machine for a single upload attempt."""

    def __init__(self, file_name: str, on_state: StateCallback | None = None):
        self.file_name = file_name
        self.state = UploadState.IDLE
        self.history: list[UploadState] = [UploadState.IDLE]
        self.credential: UploadCredential | None = None
        self.error: BaseException | None = None
        self._on_state = on_state

    @property
    def is_terminal(self) -> bool:
        return self.state in (UploadState.SUCCEEDED, UploadState.FAILED)

    def advance(self, state: UploadState) -> None:
        """Move to the next state.

        Raises:
            RuntimeError: On a transition the state machine does not allow
        """
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid upload state transition: {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)
        logger.debug(
            f"Upload of {self.file_name}: {state.value}",
            extra={
                "state": state.value,
                "upload_token": self.credential.token_hint if self.credential else None,
            },
        )
        if self._on_state is not None:
            self._on_state(state)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.advance(UploadState.FAILED)


class UploadPipeline:
    """Validate, compress, negotiate, transfer, and reconcile one file.

    Example:
        config = ClientConfig()
        async with UploadPipeline.from_config(config) as pipeline:
            slot = FileSlot(
                entity_type=EntityType.TENANT,
                entity_id=42,
                file_category=FileCategory.TENANT_IMAGE,
            )
            record = await pipeline.upload(slot, UploadFile.from_path("me.png"))
            print(record.public_url)
    """

    def __init__(
        self,
        client: FilesApiClient,
        *,
        validator: FileValidator | None = None,
        compressor: ImageCompressor | None = None,
        transporter: StorageTransporter | None = None,
        image_max_width: int = DEFAULT_MAX_WIDTH,
        image_quality: float = DEFAULT_QUALITY,
    ):
        self._client = client
        self._validator = validator or FileValidator()
        self._compressor = compressor
        self._transporter = transporter or StorageTransporter()
        self._negotiator = UploadUrlNegotiator(client)
        self._reconciler = UploadReconciler(client)
        self._image_max_width = image_max_width
        self._image_quality = image_quality

    @classmethod
    def from_config(cls, config: ClientConfig) -> UploadPipeline:
        """Assemble a pipeline from configuration."""
        limits = load_limits(config.limits_file) if config.limits_file else None
        return cls(
            FilesApiClient(
                api_url=config.base_url,
                api_token=config.api_token,
                timeout=config.timeout,
            ),
            validator=FileValidator(limits),
            compressor=ImageCompressor() if config.compress_images else None,
            transporter=StorageTransporter(
                HttpxUploader(timeout=config.transfer_timeout)
            ),
            image_max_width=config.image_max_width,
            image_quality=config.image_quality,
        )

    @property
    def client(self) -> FilesApiClient:
        return self._client

    async def upload(
        self,
        slot: FileSlot,
        file: UploadFile,
        on_progress: ProgressCallback | None = None,
        on_state: StateCallback | None = None,
    ) -> FileRecord:
        """Upload a file into an entity's slot.

        Args:
            slot: Target entity, category and optional document type
            file: File to upload
            on_progress: Called with transfer progress in [0, 100]
            on_state: Called on every state transition

        Returns:
            The confirmed FileRecord

        Raises:
            UploadValidationError: File rejected locally; no network call made
            NegotiationError: Credential declined or unusable
            TransferError: Blob store write failed
            ReconciliationError: Confirm failed after a successful transfer
            AuthenticationError: On 401 from the metadata service
            AccessError: On 403 from the metadata service
        """
        attempt = UploadAttempt(file.name, on_state)

        try:
            self._validator.validate(file, slot.file_category)
        except RentalFilesError as e:
            attempt.fail(e)
            raise
        attempt.advance(UploadState.VALIDATED)

        if self._compressor is not None and is_image_category(slot.file_category):
            compressed = self._compressor.compress(
                file, self._image_max_width, self._image_quality
            )
            try:
                self._validator.validate(compressed, slot.file_category)
            except UploadValidationError as e:
                logger.warning(
                    f"Compressed {file.name} no longer fits its category, "
                    f"uploading the original: {e}",
                    extra={"file_name": file.name, "reason": e.reason.value},
                )
            else:
                file = compressed

        intent = UploadIntent.for_file(slot, file)
        try:
            credential = await self._negotiator.request_upload_url(intent)
        except (RentalFilesError, asyncio.CancelledError) as e:
            attempt.fail(e)
            raise
        attempt.credential = credential
        attempt.advance(UploadState.NEGOTIATED)

        try:
            problem = credential.permits(file)
            if problem is None and credential.is_expired():
                problem = "Upload credential expired before transfer"
            if problem is not None:
                raise NegotiationError(problem)

            attempt.advance(UploadState.TRANSFERRING)
            outcome = await self._transporter.transfer(
                credential.upload_url, file, on_progress
            )
            if not outcome.success:
                raise TransferError(
                    outcome.error or "Storage upload failed", outcome.status_code
                )
        except asyncio.CancelledError as e:
            await self._compensate(attempt, credential, "Upload aborted", e)
            raise
        except Exception as e:
            await self._compensate(attempt, credential, str(e) or "Upload failed", e)
            raise

        try:
            record = await self._reconciler.confirm(credential, outcome)
        except (RentalFilesError, asyncio.CancelledError) as e:
            attempt.fail(e)
            raise
        attempt.advance(UploadState.CONFIRMED)
        attempt.advance(UploadState.SUCCEEDED)
        return record

    async def _compensate(
        self,
        attempt: UploadAttempt,
        credential: UploadCredential,
        reason: str,
        error: BaseException,
    ) -> None:
        """Cancel the credential after a failure, then mark the attempt failed."""
        attempt.advance(UploadState.CANCEL_REQUESTED)
        try:
            await self._reconciler.cancel(credential, reason)
        finally:
            attempt.fail(error)

    async def close(self) -> None:
        """Close the API client and transporter."""
        await self._transporter.close()
        await self._client.close()

    async def __aenter__(self) -> UploadPipeline:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()


class ReplaceOrchestrator:
    """Uploads a new file, then retires the one it replaces.

    The new file is always confirmed before the old one is deleted, so the
    entity never has zero files during a replace. Failure to delete the old
    file is logged and does not fail the replace.
    """

    def __init__(self, pipeline: UploadPipeline, client: FilesApiClient | None = None):
        self._pipeline = pipeline
        self._client = client or pipeline.client

    @classmethod
    def from_config(cls, config: ClientConfig) -> ReplaceOrchestrator:
        return cls(UploadPipeline.from_config(config))

    @property
    def pipeline(self) -> UploadPipeline:
        return self._pipeline

    async def replace(
        self,
        slot: FileSlot,
        new_file: UploadFile,
        old_file_id: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> FileRecord:
        """Replace an entity's file.

        Args:
            slot: Target entity, category and optional document type
            new_file: Replacement file
            old_file_id: Record to delete once the new file is confirmed
            on_progress: Called with transfer progress in [0, 100]

        Returns:
            The new file's FileRecord

        Raises:
            Any error of UploadPipeline.upload for the new file. Errors
            deleting the old file are never raised.
        """
        try:
            record = await self._pipeline.upload(slot, new_file, on_progress)
        except RentalFilesError as e:
            logger.error(f"File replacement failed: {e}")
            raise

        if old_file_id is None or old_file_id == record.id:
            return record

        try:
            deleted = await self._client.delete_file(old_file_id)
        except RentalFilesError as e:
            logger.warning(
                f"Failed to delete old file {old_file_id}: {e}",
                extra={"old_file_id": old_file_id, "new_file_id": record.id},
            )
            return record

        if deleted:
            logger.info(
                f"Old file {old_file_id} deleted",
                extra={"old_file_id": old_file_id, "new_file_id": record.id},
            )
        else:
            logger.warning(
                f"Service did not delete old file {old_file_id}",
                extra={"old_file_id": old_file_id, "new_file_id": record.id},
            )
        return record

    async def close(self) -> None:
        await self._pipeline.close()

    async def __aenter__(self) -> ReplaceOrchestrator:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
