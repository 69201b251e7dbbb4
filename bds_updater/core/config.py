"""Configuration management for bds-updater."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from bds_updater.core.types import Channel, Platform

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "bds-updater" / "config.json"


class AppConfig(BaseModel):
    """Application configuration."""

    # Remote endpoints
    metadata_url: str = Field(
        default="https://raw.githubusercontent.com/Bedrock-OSS/BDS-Versions/main/versions.json",
        description="Version metadata endpoint"
    )
    archive_url_template: str = Field(
        default=(
            "https://www.minecraft.net/bedrockdedicatedserver/"
            "bin-{platform}{channel}/bedrock-server-{version}.zip"
        ),
        description="Archive URL with {platform}, {channel} and {version} placeholders"
    )

    # HTTP settings
    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    chunk_size: int = Field(default=64 * 1024, description="Streaming chunk size in bytes")

    # Cache layout, relative to the server directory
    cache_dir_name: str = Field(default=".launcher-cache", description="Hidden cache directory")
    cache_file_name: str = Field(default="cache.json", description="Persisted state file")
    staging_dir_name: str = Field(default="_bedrock_server", description="Staging subdirectory")
    version_stamp_name: str = Field(default="version.txt", description="Staged version stamp file")

    # Server binary
    windows_executable: str = Field(default="bedrock_server.exe", description="Windows binary name")
    linux_executable: str = Field(default="bedrock_server", description="Linux binary name")

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    def archive_url(self, platform: Platform, channel: Channel, version: str) -> str:
        """Build the archive URL for a platform, channel and version.

        Args:
            platform: Target platform family
            channel: Release channel
            version: Version string

        Returns:
            Complete archive URL
        """
        return self.archive_url_template.format(
            platform="win" if platform == Platform.WINDOWS else "linux",
            channel="-preview" if channel == Channel.PREVIEW else "",
            version=version,
        )

    def executable_name(self, platform: Platform) -> str:
        """Server binary file name for a platform."""
        if platform == Platform.WINDOWS:
            return self.windows_executable
        return self.linux_executable

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("metadata_url")
    @classmethod
    def validate_metadata_url(cls, v: str) -> str:
        """Validate metadata URL scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Metadata URL must be http(s): {v}")
        return v

    @field_validator("archive_url_template")
    @classmethod
    def validate_archive_url_template(cls, v: str) -> str:
        """Validate archive URL template placeholders."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Archive URL must be http(s): {v}")
        for placeholder in ("{platform}", "{channel}", "{version}"):
            if placeholder not in v:
                raise ValueError(f"Archive URL template is missing {placeholder}")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size value."""
        if v <= 0:
            raise ValueError("Chunk size must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
