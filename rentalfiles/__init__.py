"""Direct-to-storage upload client for rental management files.

Validates a file locally, negotiates a temporary write credential with the
metadata service, PUTs the bytes straight to the blob store, and confirms
or cancels the credential depending on the outcome.

Example:
    from rentalfiles import (
        ClientConfig, EntityType, FileCategory, FileSlot,
        ReplaceOrchestrator, UploadFile,
    )

    slot = FileSlot(
        entity_type=EntityType.TENANT,
        entity_id=42,
        file_category=FileCategory.TENANT_IMAGE,
    )

    async with ReplaceOrchestrator.from_config(ClientConfig()) as orchestrator:
        record = await orchestrator.replace(
            slot,
            UploadFile.from_path("profile.png"),
            old_file_id=7,
            on_progress=lambda pct: print(f"{pct:.0f}%"),
        )
        print(record.public_url)
"""

from importlib.metadata import PackageNotFoundError, version

from .client import FilesApiClient
from .compressor import ImageCodec, ImageCompressor, PillowImageCodec
from .config import ClientConfig
from .errors import (
    AccessError,
    AuthenticationError,
    CancelError,
    ImageCodecError,
    NegotiationError,
    ReconciliationError,
    RecordNotFoundError,
    RentalFilesError,
    TransferError,
    UploadError,
    UploadValidationError,
    ValidationReason,
)
from .limits import DEFAULT_LIMITS, CategoryLimits, load_limits
from .models import (
    DocumentType,
    EntityFileSet,
    EntityType,
    FileCategory,
    FileRecord,
    FileSlot,
    TransferOutcome,
    UploadConfirmation,
    UploadCredential,
    UploadFile,
    UploadIntent,
    category_for_entity,
    find_document,
    format_file_size,
    is_document_category,
    is_image_category,
)
from .negotiator import UploadUrlNegotiator
from .pipeline import ReplaceOrchestrator, UploadAttempt, UploadPipeline, UploadState
from .reconciler import UploadReconciler
from .transport import HttpUploader, HttpxUploader, StorageTransporter
from .validator import FileValidator

try:
    __version__ = version("rentalfiles")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "DEFAULT_LIMITS",
    "AccessError",
    "AuthenticationError",
    "CancelError",
    "CategoryLimits",
    "ClientConfig",
    "DocumentType",
    "EntityFileSet",
    "EntityType",
    "FileCategory",
    "FileRecord",
    "FileSlot",
    "FileValidator",
    "FilesApiClient",
    "HttpUploader",
    "HttpxUploader",
    "ImageCodec",
    "ImageCodecError",
    "ImageCompressor",
    "NegotiationError",
    "PillowImageCodec",
    "ReconciliationError",
    "RecordNotFoundError",
    "RentalFilesError",
    "ReplaceOrchestrator",
    "StorageTransporter",
    "TransferError",
    "TransferOutcome",
    "UploadAttempt",
    "UploadConfirmation",
    "UploadCredential",
    "UploadError",
    "UploadFile",
    "UploadIntent",
    "UploadPipeline",
    "UploadReconciler",
    "UploadState",
    "UploadUrlNegotiator",
    "UploadValidationError",
    "ValidationReason",
    # Version
    "__version__",
    "category_for_entity",
    "find_document",
    "format_file_size",
    "is_document_category",
    "is_image_category",
    "load_limits",
]
