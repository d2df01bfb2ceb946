"""Error types for the upload client.

Every failure carries a human-readable message suitable for showing to
the user as-is.
"""

from enum import Enum


class RentalFilesError(Exception):
    """Base exception for rentalfiles client errors."""


class AuthenticationError(RentalFilesError):
    """Bearer token was rejected (401)."""


class AccessError(RentalFilesError):
    """Cross-tenant access was attempted (403)."""


class RecordNotFoundError(RentalFilesError):
    """File record not found (404)."""

    def __init__(self, message: str, file_id: int | None = None):
        super().__init__(message)
        self.file_id = file_id


class UploadError(RentalFilesError):
    """Base class for failures of a single upload attempt."""


class ValidationReason(str, Enum):
    """Why a file was rejected locally."""

    TOO_LARGE = "tooLarge"
    UNSUPPORTED_TYPE = "unsupportedType"
    UNSUPPORTED_EXTENSION = "unsupportedExtension"


class UploadValidationError(UploadError):
    """File rejected before any network call."""

    def __init__(self, reason: ValidationReason, message: str):
        super().__init__(message)
        self.reason = reason


class NegotiationError(UploadError):
    """Metadata service declined to issue an upload credential."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TransferError(UploadError):
    """Network or storage-side failure while writing to the blob store."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ReconciliationError(UploadError):
    """Confirm failed after a successful transfer.

    The bytes exist in storage but no file record was created; the
    orphaned object is left for out-of-band cleanup.
    """


class CancelError(RentalFilesError):
    """Best-effort cancel failed.

    Raised by the API client only. The reconciler catches and logs it;
    cancel is storage hygiene and never decides the outcome of an upload.
    """


class ImageCodecError(RentalFilesError):
    """Image could not be decoded or re-encoded."""
