"""Application configuration using Pydantic Settings (ENV ONLY)."""
from typing import List, Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings (read from environment variables / .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = Field("Event Gallery")
    ENVIRONMENT: str = Field("development")
    DEBUG: bool = Field(False)
    API_V1_PREFIX: str = Field("/api/v1")
    LOG_LEVEL: str = Field("INFO")

    # AWS / S3
    AWS_ACCESS_KEY_ID: Optional[str] = Field(None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(None)
    S3_BUCKET_NAME: str = Field("event-gallery")
    S3_REGION: str = Field("us-east-1")

    # Event images
    EVENT_IMAGE_PREFIXES: str = Field(
        "events/shared/{event_id}/images",
        description="Comma separated prefix templates listed for an event",
    )
    IMAGE_EXTENSIONS: str = Field("jpg,jpeg,png")
    UPLOAD_PART_SIZE: int = Field(5 * 1024 * 1024, ge=5 * 1024 * 1024)

    # Face recognition
    REKOGNITION_REGION: Optional[str] = Field(None)
    FACE_GROUPING_STRATEGY: Literal["per_face", "whole_image"] = Field("per_face")
    FACE_MATCH_THRESHOLD: float = Field(80.0, ge=0.0, le=100.0)
    FACE_SEARCH_MAX_RESULTS: int = Field(5, ge=1, le=4096)
    RECOGNITION_MAX_CONCURRENCY: int = Field(
        0, ge=0, description="Fan-out limit per batch, 0 means unbounded"
    )
    FACE_CONSOLIDATION_PASS: bool = Field(False)

    # Deletion
    ROLLBACK_FAILED_DELETES: bool = Field(False)

    def event_prefixes(self, event_id: str) -> List[str]:
        """Expand the prefix templates for one event."""
        return [
            template.strip().format(event_id=event_id)
            for template in self.EVENT_IMAGE_PREFIXES.split(",")
            if template.strip()
        ]

    def image_extensions(self) -> List[str]:
        return [
            ext.strip().lower().lstrip(".")
            for ext in self.IMAGE_EXTENSIONS.split(",")
            if ext.strip()
        ]


settings = Settings()
