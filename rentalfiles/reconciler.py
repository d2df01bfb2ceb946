"""Turns a transfer outcome into a durable metadata decision."""

import logging

from .client import FilesApiClient
from .errors import RentalFilesError
from .models import FileRecord, TransferOutcome, UploadCredential

logger = logging.getLogger(__name__)


class UploadReconciler:
    """Confirms or cancels a negotiated credential.

    Confirm is the only action that creates a FileRecord. Cancel exists
    for storage hygiene only: a client that never cancels leaves an
    orphaned blob but no incorrect metadata.
    """

    def __init__(self, client: FilesApiClient):
        self._client = client

    async def confirm(
        self, credential: UploadCredential, outcome: TransferOutcome
    ) -> FileRecord:
        """Confirm a successful transfer.

        Consumes the credential, whether or not the service accepts it.

        Raises:
            ReconciliationError: If the service does not create the record
            AuthenticationError: On 401
            AccessError: On 403
            ValueError: If the outcome is a failure or the credential has
                no bound intent
            RuntimeError: If the credential was already used
        """
        if not outcome.success:
            raise ValueError("Cannot confirm a failed transfer")
        intent = credential.intent
        if intent is None:
            raise ValueError("Upload credential is not bound to an upload intent")

        credential.consume()
        confirmation = await self._client.confirm_upload(
            credential, outcome.integrity_tag
        )
        record = FileRecord.from_confirmation(intent, confirmation)

        logger.info(
            f"Confirmed upload of {record.file_name} as file {record.id}",
            extra={
                "file_id": record.id,
                "storage_key": credential.storage_key,
                "public_url": record.public_url,
            },
        )
        return record

    async def cancel(self, credential: UploadCredential, reason: str) -> None:
        """Cancel the credential, best-effort.

        Errors from the service are logged and discarded: a failed cancel
        leaves an orphaned blob that expires with the credential, and the
        caller's original error is what matters.

        Raises:
            RuntimeError: If the credential was already used
        """
        credential.consume()
        try:
            await self._client.cancel_upload(credential.upload_token, reason)
        except RentalFilesError as e:
            logger.warning(
                f"Ignoring failed cancel for upload {credential.token_hint}: {e}",
                extra={"storage_key": credential.storage_key, "reason": reason},
            )
            return

        logger.debug(
            f"Cancelled upload {credential.token_hint}",
            extra={"storage_key": credential.storage_key, "reason": reason},
        )
