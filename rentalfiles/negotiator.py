"""Upload credential negotiation."""

import logging

from .client import FilesApiClient
from .models import UploadCredential, UploadIntent

logger = logging.getLogger(__name__)


class UploadUrlNegotiator:
    """Exchanges an upload intent for a time-boxed write credential.

    Does not retry. A declined or failed negotiation surfaces as
    NegotiationError and retry policy is left to the caller.
    """

    def __init__(self, client: FilesApiClient):
        self._client = client

    async def request_upload_url(self, intent: UploadIntent) -> UploadCredential:
        """Request a credential scoped to one entity/category/file name.

        Raises:
            NegotiationError: If the metadata service declines
            AuthenticationError: On 401
            AccessError: On 403
        """
        credential = await self._client.request_upload(intent)
        logger.info(
            f"Negotiated upload for {intent.file_name}",
            extra={
                "entity_type": intent.entity_type.value,
                "entity_id": intent.entity_id,
                "file_category": intent.file_category.value,
                "storage_key": credential.storage_key,
                "upload_token": credential.token_hint,
                "expires_at": credential.expires_at.isoformat(),
            },
        )
        return credential
