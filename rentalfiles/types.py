"""Common annotated types for field validation.

These types provide consistent validation patterns across the package.
"""

from typing import Annotated

from pydantic import Field

# Pattern for MIME types (type/subtype, parameters not allowed)
CONTENT_TYPE_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9!#$&^_.+-]*/[a-zA-Z0-9][a-zA-Z0-9!#$&^_.+-]*$"

# Pattern for file names (no path separators)
FILE_NAME_PATTERN = r"^[^/\\]+$"


# Entity identifier - database ids issued by the metadata service
EntityId = Annotated[int, Field(gt=0)]

# File record identifier
FileId = Annotated[int, Field(gt=0)]

# File name - a bare name, never a path
FileName = Annotated[str, Field(min_length=1, max_length=255, pattern=FILE_NAME_PATTERN)]

# MIME content type, e.g. "image/png"
ContentType = Annotated[str, Field(min_length=3, pattern=CONTENT_TYPE_PATTERN)]

# Size in bytes
ByteSize = Annotated[int, Field(ge=0)]
