"""
Configuration management using environment variables.
Handles store, upload and logging settings with validation and defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogConfig(BaseSettings):
    """
    Configuration class for the book catalog.
    Uses pydantic BaseSettings for environment variable management.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from .env
    )

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="book_catalog")
    mongodb_collection: str = Field(default="books")
    mongodb_timeout_ms: int = Field(default=5000)

    # Upload Configuration
    upload_dir: str = Field(default="uploads")
    max_file_size: int = Field(default=5 * 1024 * 1024)
    max_field_size: int = Field(default=1024 * 1024)
    upload_url_prefix: str = Field(default="/uploads")

    # Single implicit owner until authentication exists
    default_owner_id: str = Field(default="default-user")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    debug: bool = Field(default=False)

    @field_validator('max_file_size', 'max_field_size')
    @classmethod
    def validate_sizes(cls, v):
        """Ensure size limits are positive."""
        if v <= 0:
            raise ValueError('size limits must be positive')
        return v

    @field_validator('mongodb_timeout_ms')
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 100 or v > 120000:
            raise ValueError('mongodb_timeout_ms must be between 100 and 120000')
        return v

    @field_validator('upload_url_prefix')
    @classmethod
    def validate_url_prefix(cls, v):
        """Ensure the prefix is an absolute path without trailing slash."""
        if not v.startswith('/'):
            raise ValueError('upload_url_prefix must start with "/"')
        return v.rstrip('/') or '/'

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_upload_dir_path(self) -> Path:
        """Get upload directory as Path object."""
        return Path(self.upload_dir)


# Global configuration instance
config = CatalogConfig()
