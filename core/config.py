"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Document store
    MONGODB_URI: str = Field(default="mongodb://localhost:27017")
    MONGODB_DB: str = Field(default="talenttrack")
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    # Media host (Cloudinary). Uploads fall back to inline storage when unset.
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(default=None)
    CLOUDINARY_API_KEY: Optional[str] = Field(default=None)
    CLOUDINARY_API_SECRET: Optional[str] = Field(default=None)
    CLOUDINARY_UPLOAD_PREFIX: str = Field(default="https://api.cloudinary.com")
    MEDIA_UPLOAD_TIMEOUT_S: int = Field(default=60)
    MEDIA_ROOT_FOLDER: str = Field(default="talenttrack")

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=3001)
    API_RELOAD: bool = Field(default=False)
    API_PREFIX: str = Field(default="/api")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins; unset allows all
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Video processing
    UPLOADS_DIR: str = Field(default="uploads")
    OUTPUTS_DIR: str = Field(default="outputs")
    SCRIPTS_DIRS: str = Field(default="Talent Track py scripts,scripts")
    ANALYSIS_PYTHON: str = Field(default="python")
    ANALYSIS_TIMEOUT_S: Optional[int] = Field(default=None)
    MAX_VIDEO_BYTES: int = Field(default=100 * 1024 * 1024)
    FRAME_SAMPLE_FPS: int = Field(default=10, ge=1, le=60)
    LIVE_SIMULATION_DELAY_S: float = Field(default=3.0, ge=0)

    # Ingestion reconciliation
    INGESTION_STALE_AFTER_S: int = Field(default=3600)

    @property
    def scripts_dirs(self) -> List[str]:
        return [d.strip() for d in self.SCRIPTS_DIRS.split(",") if d.strip()]


# Global settings instance
settings = Settings()
