"""Tests for client configuration."""

import os
from unittest import mock

import pytest
from pydantic import ValidationError

from rentalfiles import ClientConfig, FileValidator, UploadPipeline

# Environment variables to clear for isolated tests
RENTALFILES_ENV_VARS = [
    "RENTALFILES_API_URL",
    "RENTALFILES_API_TOKEN",
    "RENTALFILES_TIMEOUT",
    "RENTALFILES_TRANSFER_TIMEOUT",
    "RENTALFILES_COMPRESS_IMAGES",
    "RENTALFILES_IMAGE_MAX_WIDTH",
    "RENTALFILES_IMAGE_QUALITY",
    "RENTALFILES_LIMITS_FILE",
]


@pytest.fixture
def clean_env():
    """Clear all RENTALFILES_ environment variables for isolated tests."""
    original = {k: os.environ.get(k) for k in RENTALFILES_ENV_VARS}
    for k in RENTALFILES_ENV_VARS:
        os.environ.pop(k, None)
    yield
    # Restore original values
    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)


def make_config(**kwargs) -> ClientConfig:
    """Create a ClientConfig with test defaults."""
    defaults = {
        "api_url": "http://localhost:5268/api/v1",
        "api_token": "test-token",
    }
    defaults.update(kwargs)
    return ClientConfig(**defaults)


@pytest.mark.usefixtures("clean_env")
class TestClientConfigRequiredFields:
    """Test ClientConfig required fields."""

    def test_api_url_is_required(self):
        with pytest.raises(ValidationError):
            ClientConfig(api_token="token")

    def test_api_token_is_required(self):
        with pytest.raises(ValidationError):
            ClientConfig(api_url="http://localhost:5268/api/v1")

    def test_api_token_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            make_config(api_token="")

    def test_api_url_must_be_url(self):
        with pytest.raises(ValidationError):
            make_config(api_url="not a url")


@pytest.mark.usefixtures("clean_env")
class TestClientConfigDefaults:
    """Test ClientConfig defaults and bounds."""

    def test_defaults(self):
        config = make_config()
        assert config.timeout == 30.0
        assert config.transfer_timeout == 300.0
        assert config.compress_images is True
        assert config.image_max_width == 1920
        assert config.image_quality == 0.8
        assert config.limits_file is None

    def test_base_url_strips_trailing_slash(self):
        assert make_config(api_url="http://api.test/v1/").base_url == "http://api.test/v1"

    @pytest.mark.parametrize("quality", [0, 1.5, -0.1])
    def test_quality_bounds(self, quality):
        with pytest.raises(ValidationError):
            make_config(image_quality=quality)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_config(timeout=0)


@pytest.mark.usefixtures("clean_env")
class TestClientConfigFromEnv:
    """Test loading ClientConfig from the environment."""

    def test_loads_from_env(self):
        env = {
            "RENTALFILES_API_URL": "http://api.test/api/v1",
            "RENTALFILES_API_TOKEN": "env-token",
            "RENTALFILES_COMPRESS_IMAGES": "false",
            "RENTALFILES_IMAGE_MAX_WIDTH": "1280",
        }
        with mock.patch.dict(os.environ, env):
            config = ClientConfig()

        assert config.api_token == "env-token"
        assert config.compress_images is False
        assert config.image_max_width == 1280

    def test_ignores_unrelated_env(self):
        env = {
            "RENTALFILES_API_URL": "http://api.test/api/v1",
            "RENTALFILES_API_TOKEN": "env-token",
            "RENTALFILES_UNKNOWN": "x",
        }
        with mock.patch.dict(os.environ, env):
            assert ClientConfig().api_token == "env-token"


@pytest.mark.usefixtures("clean_env")
class TestPipelineFromConfig:
    """Test assembling a pipeline from configuration."""

    @pytest.mark.asyncio
    async def test_limits_file_is_applied(self, tmp_path):
        path = tmp_path / "limits.yaml"
        path.write_text(
            "TenantImage:\n"
            "  max_size_bytes: 10\n"
            "  allowed_content_types: [image/png]\n"
            "  allowed_extensions: [.png]\n"
        )

        async with UploadPipeline.from_config(
            make_config(limits_file=path, compress_images=False)
        ) as pipeline:
            validator: FileValidator = pipeline._validator
            assert validator.limits_for("TenantImage").max_size_bytes == 10
            assert pipeline._compressor is None
