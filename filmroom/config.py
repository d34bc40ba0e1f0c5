"""
FilmRoom Configuration
Centralized settings management using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "FilmRoom"
    debug: bool = False
    app_version: str = "0.4.0"

    # ==========================================================================
    # AWS S3
    # ==========================================================================
    aws_access_key_id: str = Field(default="", description="AWS Access Key ID")
    aws_secret_access_key: str = Field(default="", description="AWS Secret Key")
    aws_region: str = Field(default="ap-southeast-2", description="AWS Region")
    s3_bucket_name: str = Field(default="", description="S3 Bucket Name")
    signed_url_expiration_seconds: int = Field(default=3600, ge=60, le=7 * 24 * 3600)

    # ==========================================================================
    # AWS Elemental MediaConvert
    # ==========================================================================
    mediaconvert_endpoint: str = Field(default="", description="Account-specific MediaConvert endpoint")
    mediaconvert_role_arn: str = Field(default="", description="IAM role assumed by MediaConvert jobs")
    mediaconvert_job_template: str = Field(default="", description="Optional MediaConvert job template")

    # ==========================================================================
    # Upload Settings
    # ==========================================================================
    max_upload_size_mb: int = Field(default=4096, ge=50, le=20480, description="Max upload file size in MB")
    upload_max_attempts: int = Field(default=3, ge=1, le=10, description="Transfer attempts per upload")
    upload_retry_base_delay: float = Field(default=1.0, ge=0, le=30, description="Backoff base in seconds")
    video_key_prefix: str = Field(default="protected/game-videos")
    processed_key_prefix: str = Field(default="protected/processed-videos")

    # ==========================================================================
    # Processing Settings
    # ==========================================================================
    processing_poll_interval_seconds: float = Field(default=10.0, gt=0, le=300)
    processing_timeout_seconds: float = Field(default=30 * 60, gt=0, le=24 * 3600)

    # ==========================================================================
    # Security
    # ==========================================================================
    api_key: str = Field(default="", description="Optional API key for /api and /ws routes")
    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173"
        ],
        description="Allowed CORS origins"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================
    data_dir: str = Field(default="data", description="Persistent application data directory")
    local_blob_dir: str = Field(default="data/blobs", description="Blob directory used without S3")

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def s3_configured(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key and self.s3_bucket_name)

    @property
    def mediaconvert_configured(self) -> bool:
        return bool(self.s3_configured and self.mediaconvert_role_arn)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
