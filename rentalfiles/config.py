"""Client configuration."""

from pathlib import Path

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """
    Upload client configuration.

    Uses Pydantic BaseSettings for automatic environment variable loading.
    Environment variables are prefixed with RENTALFILES_.

    Required environment variables:
        RENTALFILES_API_URL: Metadata service base URL
            (e.g., "http://localhost:5268/api/v1")
        RENTALFILES_API_TOKEN: Bearer token for the metadata service

    Optional environment variables:
        RENTALFILES_TIMEOUT: Metadata request timeout in seconds (default: 30)
        RENTALFILES_TRANSFER_TIMEOUT: Blob store PUT timeout in seconds (default: 300)
        RENTALFILES_COMPRESS_IMAGES: Re-encode images before upload (default: true)
        RENTALFILES_IMAGE_MAX_WIDTH: Downscale images wider than this (default: 1920)
        RENTALFILES_IMAGE_QUALITY: Re-encode quality in (0, 1] (default: 0.8)
        RENTALFILES_LIMITS_FILE: YAML file overriding per-category limits
    """

    model_config = SettingsConfigDict(
        env_prefix="RENTALFILES_",
        extra="ignore",
    )

    # Metadata service base URL - required, validated as URL
    api_url: HttpUrl

    # Bearer token - required, non-empty
    api_token: str = Field(min_length=1)

    timeout: float = Field(default=30.0, gt=0)

    # Direct PUTs of multi-megabyte files get a longer budget
    transfer_timeout: float = Field(default=300.0, gt=0)

    compress_images: bool = True
    image_max_width: int = Field(default=1920, ge=1)
    image_quality: float = Field(default=0.8, gt=0, le=1)

    limits_file: Path | None = None

    @property
    def base_url(self) -> str:
        """API URL without trailing slash."""
        return str(self.api_url).rstrip("/")
