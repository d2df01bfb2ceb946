"""Per-category upload limits.

Defaults match the metadata service's own limits. They can be overridden
from a YAML file keyed by category name:

    TenantImage:
      max_size_bytes: 5242880
      allowed_content_types: [image/jpeg, image/png]
      allowed_extensions: [.jpg, .jpeg, .png]
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import FileCategory

MB = 1024 * 1024

IMAGE_CONTENT_TYPES = ("image/jpeg", "image/png", "image/gif")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


class CategoryLimits(BaseModel):
    """Size ceiling and accepted formats for one file category."""

    model_config = ConfigDict(frozen=True)

    max_size_bytes: int = Field(gt=0)
    allowed_content_types: tuple[str, ...] = Field(min_length=1)
    allowed_extensions: tuple[str, ...] = Field(min_length=1)

    @field_validator("allowed_extensions")
    @classmethod
    def _normalize_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in value
        )

    @property
    def max_size_mb(self) -> float:
        return self.max_size_bytes / MB


_IMAGE_LIMITS = CategoryLimits(
    max_size_bytes=5 * MB,
    allowed_content_types=IMAGE_CONTENT_TYPES,
    allowed_extensions=IMAGE_EXTENSIONS,
)

DEFAULT_LIMITS: dict[FileCategory, CategoryLimits] = {
    FileCategory.TENANT_IMAGE: _IMAGE_LIMITS,
    FileCategory.OWNER_IMAGE: _IMAGE_LIMITS,
    FileCategory.PROPERTY_IMAGE: _IMAGE_LIMITS,
    FileCategory.ROOM_IMAGE: _IMAGE_LIMITS,
    FileCategory.TENANT_DOCUMENT: CategoryLimits(
        max_size_bytes=10 * MB,
        allowed_content_types=("application/pdf",),
        allowed_extensions=(".pdf",),
    ),
}


def load_limits(path: str | Path) -> dict[FileCategory, CategoryLimits]:
    """Load category limits from YAML, layered over the defaults.

    Args:
        path: YAML file mapping category names to limits

    Returns:
        Complete limits table

    Raises:
        ValueError: If the file is not a mapping or names an unknown category
        pydantic.ValidationError: If an entry is malformed
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Limits file {path} must contain a mapping of categories")

    limits = dict(DEFAULT_LIMITS)
    for name, entry in data.items():
        try:
            category = FileCategory(name)
        except ValueError as e:
            raise ValueError(f"Unknown file category in {path}: {name}") from e
        limits[category] = CategoryLimits.model_validate(entry)
    return limits
