"""Local file validation.

Runs before any network call: a file that will be rejected here never
reaches the metadata service.
"""

from collections.abc import Mapping

from .errors import UploadValidationError, ValidationReason
from .limits import DEFAULT_LIMITS, CategoryLimits
from .models import FileCategory, UploadFile


class FileValidator:
    """Checks a file against its category's size and format limits."""

    def __init__(self, limits: Mapping[FileCategory, CategoryLimits] | None = None):
        self._limits = dict(limits or DEFAULT_LIMITS)

    def limits_for(self, file_category: FileCategory | str) -> CategoryLimits:
        """Get limits for a category.

        Raises:
            ValueError: If the category is unknown. This is a programming
                error, not something to show to a user.
        """
        try:
            return self._limits[FileCategory(file_category)]
        except (KeyError, ValueError) as e:
            raise ValueError(f"Unknown file category: {file_category}") from e

    def validate(self, file: UploadFile, file_category: FileCategory | str) -> None:
        """Validate a file for upload into a category.

        Checks size first, then MIME type, then extension.

        Raises:
            UploadValidationError: If the file is too large or of the wrong kind
            ValueError: If the category is unknown
        """
        limits = self.limits_for(file_category)

        if file.size > limits.max_size_bytes:
            raise UploadValidationError(
                ValidationReason.TOO_LARGE,
                f"File size exceeds {limits.max_size_mb:g}MB limit",
            )

        if file.content_type not in limits.allowed_content_types:
            raise UploadValidationError(
                ValidationReason.UNSUPPORTED_TYPE,
                f"File type {file.content_type} is not allowed. "
                f"Allowed types: {', '.join(limits.allowed_content_types)}",
            )

        extension = file.extension
        if extension not in limits.allowed_extensions:
            raise UploadValidationError(
                ValidationReason.UNSUPPORTED_EXTENSION,
                f"File extension {extension or '(none)'} is not allowed. "
                f"Allowed extensions: {', '.join(limits.allowed_extensions)}",
            )
