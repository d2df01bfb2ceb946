"""Client-side image compression.

Images are proportionally downsized to a maximum width and re-encoded at
a quality factor before upload. Compression is an optimization only: any
decode or encode failure returns the original file unchanged.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Protocol

from PIL import Image, UnidentifiedImageError

from .errors import ImageCodecError
from .models import UploadFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 1920
DEFAULT_QUALITY = 0.8


class ImageCodec(Protocol):
    """Platform image primitives used by ImageCompressor.

    Implementations raise ImageCodecError on any failure, including images
    they cannot re-encode without loss of frames.
    """

    def decode(self, data: bytes) -> Any: ...

    def dimensions(self, image: Any) -> tuple[int, int]: ...

    def resize(self, image: Any, width: int, height: int) -> Any: ...

    def encode(self, image: Any, content_type: str, quality: float) -> bytes: ...


class PillowImageCodec:
    """ImageCodec backed by Pillow."""

    FORMATS = {
        "image/jpeg": "JPEG",
        "image/png": "PNG",
        "image/gif": "GIF",
        "image/webp": "WEBP",
    }

    def decode(self, data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as e:
            raise ImageCodecError(f"Cannot decode image: {e}") from e
        # Only the first frame would survive resize and save
        if getattr(image, "is_animated", False):
            raise ImageCodecError("Animated images are not re-encoded")
        return image

    def dimensions(self, image: Image.Image) -> tuple[int, int]:
        return image.size

    def resize(self, image: Image.Image, width: int, height: int) -> Image.Image:
        try:
            return image.resize((width, height), Image.Resampling.LANCZOS)
        except (OSError, ValueError) as e:
            raise ImageCodecError(f"Cannot resize image: {e}") from e

    def encode(self, image: Image.Image, content_type: str, quality: float) -> bytes:
        fmt = self.FORMATS.get(content_type)
        if fmt is None:
            raise ImageCodecError(f"Cannot encode {content_type}")

        options: dict[str, Any] = {}
        if fmt in ("JPEG", "WEBP"):
            options["quality"] = max(1, min(100, round(quality * 100)))
            if fmt == "JPEG" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
        elif fmt == "PNG":
            options["optimize"] = True

        buf = io.BytesIO()
        try:
            image.save(buf, format=fmt, **options)
        except (OSError, ValueError, KeyError) as e:
            raise ImageCodecError(f"Cannot encode image as {fmt}: {e}") from e
        return buf.getvalue()


def scaled_dimensions(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Fit width to max_width, scaling height to keep the aspect ratio."""
    if width <= max_width:
        return width, height
    return max_width, max(1, round(height * max_width / width))


class ImageCompressor:
    """Downsizes and re-encodes image payloads."""

    def __init__(self, codec: ImageCodec | None = None):
        self._codec = codec or PillowImageCodec()

    def compress(
        self,
        file: UploadFile,
        max_width_px: int = DEFAULT_MAX_WIDTH,
        quality: float = DEFAULT_QUALITY,
    ) -> UploadFile:
        """Compress an image file.

        Non-images pass through unchanged. The result keeps the original
        name and content type.

        Args:
            file: File to compress
            max_width_px: Maximum output width in pixels
            quality: Encoder quality factor in (0, 1]

        Returns:
            Compressed file, or the input if it is not an image, could not
            be processed, or would only grow without being resized
        """
        if not file.is_image:
            return file

        try:
            image = self._codec.decode(file.data)
            width, height = self._codec.dimensions(image)
            new_width, new_height = scaled_dimensions(width, height, max_width_px)
            resized = (new_width, new_height) != (width, height)
            if resized:
                image = self._codec.resize(image, new_width, new_height)
            data = self._codec.encode(image, file.content_type, quality)
        except ImageCodecError as e:
            logger.warning(
                f"Image compression skipped for {file.name}: {e}",
                extra={"file_name": file.name},
            )
            return file

        if not resized and len(data) >= file.size:
            return file

        logger.debug(
            f"Compressed {file.name}: {width}x{height} -> {new_width}x{new_height}, "
            f"{file.size} -> {len(data)} bytes"
        )
        return file.with_data(data)
