# app/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import json
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "LegalAI Connect"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # JWT Authentication (tokens are issued by the identity provider)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # AWS Configuration
    AWS_ACCESS_KEY_ID: str
    AWS_SECRET_ACCESS_KEY: str
    AWS_REGION: str = "ap-south-1"

    # S3 chat attachments
    S3_ATTACHMENTS_BUCKET: str = "legalai-chat-attachments"
    S3_PUBLIC_BASE_URL: str = ""  # leave blank to use the bucket's virtual-hosted URL
    ATTACHMENT_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    ATTACHMENT_MAX_PER_MESSAGE: int = 10
    ATTACHMENT_PRESIGN_EXPIRES_SECONDS: int = 900

    @field_validator("S3_PUBLIC_BASE_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    # Idempotency / realtime
    IDEMPOTENCY_TTL_HOURS: int = 24
    REALTIME_POLL_SECONDS: float = 5.0

    # CORS
    CORS_ORIGINS: str = '["http://localhost:5173"]'
    CORS_ORIGIN_REGEX: Optional[str] = None

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            if isinstance(self.CORS_ORIGINS, str):
                return json.loads(self.CORS_ORIGINS)
            return self.CORS_ORIGINS
        except json.JSONDecodeError:
            return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def attachments_base_url(self) -> str:
        """Public URL prefix for uploaded attachment objects"""
        if self.S3_PUBLIC_BASE_URL:
            return self.S3_PUBLIC_BASE_URL
        return f"https://{self.S3_ATTACHMENTS_BUCKET}.s3.{self.AWS_REGION}.amazonaws.com"


# Create settings instance
settings = Settings()
