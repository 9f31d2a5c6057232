"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

The AWS_* names match what the S3 SDKs already read, so the same
environment works for this service and for the aws CLI.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# S3 treats a missing location constraint as this region
DEFAULT_S3_REGION = "us-east-1"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Bucket Storage API"
    api_version: str = "1.0.0"
    service_name: str = Field(
        default="S3 Bucket Storage API",
        description="Service name reported by the health endpoint"
    )

    # AWS / S3 Configuration
    aws_region: Optional[str] = Field(
        default=None,
        description="Region for bucket creation. Required by ensure-bucket."
    )
    aws_access_key_id: str = Field(
        default="",
        description="Access key ID. Required unless in mock mode."
    )
    aws_secret_access_key: str = Field(
        default="",
        description="Secret access key. Required unless in mock mode."
    )
    aws_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint override for S3-compatible services (MinIO, R2, LocalStack)."
    )
    default_region: str = Field(
        default="us-west-2",
        description="Region the client talks to when AWS_REGION is not set."
    )
    storage_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts botocore makes for transient failures."
    )
    storage_retry_mode: str = Field(
        default="adaptive",
        description="botocore retry mode: standard, adaptive, or legacy"
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of S3. Enables local dev without object storage."
    )

    # Application Behavior
    max_upload_size_mb: int = Field(
        default=100,
        description="Maximum size of a single uploaded file in MB."
    )
    presigned_url_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of presigned download URLs."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Allowed CORS origin(s). Sent as Access-Control-Allow-Origin on every response."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def storage_region(self) -> str:
        """Region used to build the S3 client."""
        return self.aws_region or self.default_region

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        # Region is needed to create buckets, even against the mock store
        if not self.aws_region:
            missing.append("AWS_REGION")

        if not self.storage_mock_mode:
            if not self.aws_access_key_id:
                missing.append("AWS_ACCESS_KEY_ID")
            if not self.aws_secret_access_key:
                missing.append("AWS_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    This is safe because settings don't change during runtime.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
