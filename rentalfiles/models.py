"""Pydantic models for the direct-to-storage upload protocol.

Wire models use camelCase aliases to match the metadata service's JSON,
and can be populated either by alias or by field name.
"""

from __future__ import annotations

import math
import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from typing_extensions import Self

from .types import ByteSize, ContentType, EntityId, FileId, FileName

# =============================================================================
# Enum Classes
# =============================================================================


class EntityType(str, Enum):
    """Domain object a file is attached to."""

    TENANT = "Tenant"
    OWNER = "Owner"
    PROPERTY = "Property"
    ROOM = "Room"


class FileCategory(str, Enum):
    """Slot a file occupies for an entity."""

    PROPERTY_IMAGE = "PropertyImage"
    TENANT_IMAGE = "TenantImage"
    ROOM_IMAGE = "RoomImage"
    OWNER_IMAGE = "OwnerImage"
    TENANT_DOCUMENT = "TenantDocument"


class DocumentType(str, Enum):
    """Sub-classification within the document category."""

    AGREEMENT = "Agreement"
    PERMANENT_ADDRESS_PROOF = "PermanentAddressProof"
    IDENTITY_PROOF = "IdentityProof"


IMAGE_CATEGORIES = frozenset(
    {
        FileCategory.TENANT_IMAGE,
        FileCategory.OWNER_IMAGE,
        FileCategory.PROPERTY_IMAGE,
        FileCategory.ROOM_IMAGE,
    }
)

DOCUMENT_CATEGORIES = frozenset({FileCategory.TENANT_DOCUMENT})

_ENTITY_IMAGE_CATEGORY = {
    EntityType.TENANT: FileCategory.TENANT_IMAGE,
    EntityType.OWNER: FileCategory.OWNER_IMAGE,
    EntityType.PROPERTY: FileCategory.PROPERTY_IMAGE,
    EntityType.ROOM: FileCategory.ROOM_IMAGE,
}


def category_for_entity(entity_type: EntityType | str) -> FileCategory:
    """Get the image category used for an entity's profile picture.

    Raises:
        ValueError: If the entity type is unknown
    """
    try:
        return _ENTITY_IMAGE_CATEGORY[EntityType(entity_type)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unknown entity type: {entity_type}") from e


def _as_category(category: FileCategory | str) -> FileCategory | None:
    try:
        return FileCategory(category)
    except ValueError:
        return None


def is_image_category(category: FileCategory | str) -> bool:
    return _as_category(category) in IMAGE_CATEGORIES


def is_document_category(category: FileCategory | str) -> bool:
    return _as_category(category) in DOCUMENT_CATEGORIES


def format_file_size(size: int) -> str:
    """Format a byte count for display, e.g. ``1.5 KB``."""
    units = ["Bytes", "KB", "MB", "GB"]
    if size <= 0:
        return "0 Bytes"
    i = 0
    while i < len(units) - 1 and size >= 1024 ** (i + 1):
        i += 1
    value = math.floor(size / 1024**i * 100 + 0.5) / 100
    return f"{value:g} {units[i]}"


# =============================================================================
# Payload
# =============================================================================


class UploadFile(BaseModel):
    """In-memory file handed to the upload pipeline."""

    model_config = ConfigDict(frozen=True)

    name: FileName
    content_type: ContentType
    data: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        """Lower-cased extension including the dot, or "" if none."""
        suffix = Path(self.name).suffix
        return suffix.lower()

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    def with_data(self, data: bytes) -> UploadFile:
        """Copy with new content, keeping name and content type."""
        return self.model_copy(update={"data": data})

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> Self:
        """Read a local file.

        Args:
            path: Local file path
            content_type: MIME type (default: guessed from the extension)

        Returns:
            UploadFile with the file's bytes
        """
        path = Path(path)
        if content_type is None:
            guessed, _ = mimetypes.guess_type(path.name)
            content_type = guessed or "application/octet-stream"
        return cls(name=path.name, content_type=content_type, data=path.read_bytes())


# =============================================================================
# Wire Models
# =============================================================================


class WireModel(BaseModel):
    """Base for models exchanged with the metadata service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialize for a JSON request body."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class FileSlot(WireModel):
    """The (entity, category, document type) slot an upload targets."""

    entity_type: EntityType
    entity_id: EntityId
    file_category: FileCategory
    document_type: DocumentType | None = None

    @model_validator(mode="after")
    def _document_type_only_for_documents(self) -> Self:
        if self.document_type is not None and not is_document_category(
            self.file_category
        ):
            raise ValueError(
                f"document_type is only valid for document categories, "
                f"not {self.file_category.value}"
            )
        return self


class UploadIntent(WireModel):
    """Declares what is about to be uploaded. Never persisted."""

    entity_type: EntityType
    entity_id: EntityId
    file_category: FileCategory
    document_type: DocumentType | None = None
    file_name: FileName
    file_size_bytes: ByteSize = Field(alias="fileSize")
    content_type: ContentType

    @classmethod
    def for_file(cls, slot: FileSlot, file: UploadFile) -> Self:
        return cls(
            entity_type=slot.entity_type,
            entity_id=slot.entity_id,
            file_category=slot.file_category,
            document_type=slot.document_type,
            file_name=file.name,
            file_size_bytes=file.size,
            content_type=file.content_type,
        )


class UploadCredential(WireModel):
    """Time-boxed, single-use write credential for one upload attempt."""

    upload_url: str
    upload_token: str = Field(min_length=1)
    storage_key: str = Field(alias="s3Key")
    expires_at: datetime
    max_file_size_bytes: ByteSize
    allowed_content_types: list[str] = Field(default_factory=list)

    _intent: UploadIntent | None = PrivateAttr(default=None)
    _consumed: bool = PrivateAttr(default=False)

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def bind(self, intent: UploadIntent) -> Self:
        """Attach the intent this credential was issued for. Returns self."""
        self._intent = intent
        return self

    @property
    def intent(self) -> UploadIntent | None:
        return self._intent

    @property
    def consumed(self) -> bool:
        """True once confirmed or cancelled."""
        return self._consumed

    @property
    def token_hint(self) -> str:
        """Truncated upload token for log output."""
        return f"{self.upload_token[:8]}..."

    def consume(self) -> None:
        """Mark the credential used.

        Raises:
            RuntimeError: If the credential was already confirmed or cancelled
        """
        if self._consumed:
            raise RuntimeError(
                f"Upload credential {self.token_hint} was already used"
            )
        self._consumed = True

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def permits(self, file: UploadFile) -> str | None:
        """Check a file against the credential's own limits.

        Returns:
            None if the file is acceptable, otherwise the reason it is not
        """
        if file.size > self.max_file_size_bytes:
            return (
                f"File size {format_file_size(file.size)} exceeds the "
                f"negotiated limit of {format_file_size(self.max_file_size_bytes)}"
            )
        if self.allowed_content_types and (
            file.content_type not in self.allowed_content_types
        ):
            return f"Content type {file.content_type} is not allowed for this upload"
        return None


class TransferOutcome(BaseModel):
    """Result of a blob-store write. Consumed immediately, never stored."""

    success: bool
    integrity_tag: str | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def succeeded(cls, integrity_tag: str | None = None) -> Self:
        return cls(success=True, integrity_tag=integrity_tag)

    @classmethod
    def failed(cls, error: str, status_code: int | None = None) -> Self:
        return cls(success=False, error=error, status_code=status_code)


class UploadConfirmation(WireModel):
    """Response of a successful confirm call."""

    file_id: FileId
    cloud_front_url: str
    file_name: str
    file_size: ByteSize
    uploaded_at: datetime
    message: str = ""


class FileRecord(WireModel):
    """Durable file record. Created only by a successful confirm."""

    id: FileId
    entity_type: EntityType
    entity_id: EntityId
    file_category: FileCategory
    document_type: DocumentType | None = None
    file_name: str
    file_size_bytes: ByteSize = Field(alias="fileSize")
    content_type: str
    public_url: str = Field(alias="cloudFrontUrl")
    uploaded_at: datetime
    uploaded_by: int | None = None
    uploaded_by_name: str | None = None

    @classmethod
    def from_confirmation(
        cls, intent: UploadIntent, confirmation: UploadConfirmation
    ) -> Self:
        """Assemble the record for a just-confirmed upload."""
        return cls(
            id=confirmation.file_id,
            entity_type=intent.entity_type,
            entity_id=intent.entity_id,
            file_category=intent.file_category,
            document_type=intent.document_type,
            file_name=confirmation.file_name,
            file_size_bytes=confirmation.file_size,
            content_type=intent.content_type,
            public_url=confirmation.cloud_front_url,
            uploaded_at=confirmation.uploaded_at,
        )


class EntityFileSet(WireModel):
    """Read-only projection of an entity's live files."""

    entity_type: EntityType
    entity_id: EntityId
    files: list[FileRecord] = Field(default_factory=list)
    total_size_bytes: ByteSize = Field(default=0, alias="totalFileSize")
    total_count: int = Field(default=0, ge=0, alias="totalFileCount")


def find_document(
    file_set: EntityFileSet, document_type: DocumentType | str
) -> FileRecord | None:
    """Get the live record for one document type, if any."""
    wanted = DocumentType(document_type)
    for record in file_set.files:
        if record.document_type == wanted:
            return record
    return None
