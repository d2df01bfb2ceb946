"""API client for the file metadata service.

All calls are bearer-authenticated JSON over HTTP. The token is passed in
explicitly; the client never reads it from ambient state.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from .errors import (
    AccessError,
    AuthenticationError,
    CancelError,
    NegotiationError,
    ReconciliationError,
    RecordNotFoundError,
    RentalFilesError,
)
from .models import (
    EntityFileSet,
    EntityType,
    FileCategory,
    FileRecord,
    UploadConfirmation,
    UploadCredential,
    UploadIntent,
)

UPLOAD_DENIED = "Access denied - you can only upload to your own entities"
ENTITY_DENIED = "Access denied - you can only access your own entities"
FILE_DENIED = "Access denied - you can only access your own files"
DELETE_DENIED = "Access denied - you can only delete your own files"


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Extract the service's human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return fallback


def _unwrap(response: httpx.Response) -> Any:
    """Return the response payload, unwrapping a {"data": ...} envelope."""
    body = response.json()
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _raise_for_access(error: httpx.HTTPStatusError, denied_message: str) -> None:
    """Raise AuthenticationError on 401 and AccessError on 403."""
    status = error.response.status_code
    if status == 401:
        raise AuthenticationError("Authentication failed") from error
    if status == 403:
        raise AccessError(_error_message(error.response, denied_message)) from error


class FilesApiClient:
    """Async client for the file metadata service.

    Example:
        async with FilesApiClient(
            api_url="http://localhost:5268/api/v1",
            api_token=token,
        ) as client:
            files = await client.list_entity_files(EntityType.TENANT, 42)
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        *,
        timeout: float = 30.0,
    ):
        """Create a new metadata service client.

        Args:
            api_url: Base URL of the metadata service
            api_token: Bearer token for authentication
            timeout: Request timeout in seconds (default: 30.0)

        Raises:
            ValueError: If api_url or api_token is empty
        """
        self._api_url = (api_url or "").rstrip("/")
        self._api_token = api_token or ""

        if not self._api_url:
            raise ValueError("api_url is required")
        if not self._api_token:
            raise ValueError("api_token is required")

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={"Authorization": f"Bearer {self._api_token}"},
            timeout=timeout,
        )

    async def request_upload(self, intent: UploadIntent) -> UploadCredential:
        """Exchange an upload intent for a write credential.

        POST /files/request-upload

        Returns:
            Credential bound to the intent it was issued for

        Raises:
            NegotiationError: If the service declines or the request fails
            AuthenticationError: On 401
            AccessError: On 403
        """
        try:
            response = await self._client.post(
                "/files/request-upload", json=intent.to_wire()
            )
            response.raise_for_status()
            credential = UploadCredential.model_validate(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, UPLOAD_DENIED)
            raise NegotiationError(
                _error_message(e.response, "Failed to get upload URL")
            ) from e
        except httpx.RequestError as e:
            raise NegotiationError(f"Request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise NegotiationError(f"Malformed upload credential: {e}") from e

        return credential.bind(intent)

    async def confirm_upload(
        self, credential: UploadCredential, etag: str | None = None
    ) -> UploadConfirmation:
        """Confirm a completed transfer, creating the file record.

        POST /files/confirm-upload

        Raises:
            ReconciliationError: If the service does not confirm the upload
            AuthenticationError: On 401
            AccessError: On 403
        """
        body: dict[str, Any] = {
            "uploadToken": credential.upload_token,
            "s3Key": credential.storage_key,
        }
        if etag:
            body["etag"] = etag

        try:
            response = await self._client.post("/files/confirm-upload", json=body)
            response.raise_for_status()
            return UploadConfirmation.model_validate(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, UPLOAD_DENIED)
            raise ReconciliationError(
                _error_message(e.response, "Failed to confirm upload")
            ) from e
        except httpx.RequestError as e:
            raise ReconciliationError(f"Request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise ReconciliationError(f"Malformed confirmation: {e}") from e

    async def cancel_upload(self, upload_token: str, reason: str) -> None:
        """Tell the service an upload was abandoned.

        POST /files/cancel-upload

        Raises:
            CancelError: On any failure, including 401/403
        """
        try:
            response = await self._client.post(
                "/files/cancel-upload",
                json={"uploadToken": upload_token, "reason": reason},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CancelError(
                f"Cancel failed: {e.response.status_code} - "
                f"{_error_message(e.response, e.response.text)}"
            ) from e
        except httpx.RequestError as e:
            raise CancelError(f"Request failed: {e}") from e

    async def list_entity_files(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        file_category: FileCategory | str | None = None,
    ) -> EntityFileSet:
        """List the live files of an entity.

        GET /files/{entityType}/{entityId}?fileCategory=

        Raises:
            AccessError: If the entity belongs to another tenant
            RentalFilesError: If the request fails
        """
        path = f"/files/{EntityType(entity_type).value}/{entity_id}"
        params = {}
        if file_category:
            params["fileCategory"] = FileCategory(file_category).value

        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return EntityFileSet.model_validate(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, ENTITY_DENIED)
            raise RentalFilesError(
                f"Failed to get entity files: {e.response.status_code} - "
                f"{_error_message(e.response, e.response.text)}"
            ) from e
        except httpx.RequestError as e:
            raise RentalFilesError(f"Request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise RentalFilesError(f"Malformed entity file list: {e}") from e

    async def get_latest_file(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        file_category: FileCategory | str,
    ) -> FileRecord | None:
        """Get the most recent file in a category.

        GET /files/{entityType}/{entityId}/latest/{fileCategory}

        Returns:
            The record, or None if the entity has no file in that category yet

        Raises:
            AccessError: If the entity belongs to another tenant
            RentalFilesError: If the request fails
        """
        path = (
            f"/files/{EntityType(entity_type).value}/{entity_id}"
            f"/latest/{FileCategory(file_category).value}"
        )

        try:
            response = await self._client.get(path)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return FileRecord.model_validate(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, ENTITY_DENIED)
            raise RentalFilesError(
                f"Failed to get latest file: {e.response.status_code} - "
                f"{_error_message(e.response, e.response.text)}"
            ) from e
        except httpx.RequestError as e:
            raise RentalFilesError(f"Request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise RentalFilesError(f"Malformed file record: {e}") from e

    async def get_file(self, file_id: int) -> FileRecord:
        """Get a file record by id.

        GET /files/file/{fileId}

        Raises:
            RecordNotFoundError: If the file does not exist
            AccessError: If the file belongs to another tenant
            RentalFilesError: If the request fails
        """
        try:
            response = await self._client.get(f"/files/file/{file_id}")
            response.raise_for_status()
            return FileRecord.model_validate(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, FILE_DENIED)
            if e.response.status_code == 404:
                raise RecordNotFoundError("File not found", file_id) from e
            raise RentalFilesError(
                f"Failed to get file: {e.response.status_code} - "
                f"{_error_message(e.response, e.response.text)}"
            ) from e
        except httpx.RequestError as e:
            raise RentalFilesError(f"Request failed: {e}") from e
        except (ValidationError, ValueError) as e:
            raise RentalFilesError(f"Malformed file record: {e}") from e

    async def delete_file(self, file_id: int) -> bool:
        """Delete a file record.

        DELETE /files/file/{fileId}

        Returns:
            The service's deletion result

        Raises:
            RecordNotFoundError: If the file does not exist or was already deleted
            AccessError: If the file belongs to another tenant
            RentalFilesError: If the request fails
        """
        try:
            response = await self._client.delete(f"/files/file/{file_id}")
            response.raise_for_status()
            if not response.content:
                return True
            return bool(_unwrap(response))
        except httpx.HTTPStatusError as e:
            _raise_for_access(e, DELETE_DENIED)
            if e.response.status_code == 404:
                raise RecordNotFoundError(
                    "File not found or already deleted", file_id
                ) from e
            raise RentalFilesError(
                f"Failed to delete file: {e.response.status_code} - "
                f"{_error_message(e.response, e.response.text)}"
            ) from e
        except httpx.RequestError as e:
            raise RentalFilesError(f"Request failed: {e}") from e
        except ValueError as e:
            raise RentalFilesError(f"Malformed delete response: {e}") from e

    async def close(self) -> None:
        """Close the client connection."""
        await self._client.aclose()

    async def __aenter__(self) -> FilesApiClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
