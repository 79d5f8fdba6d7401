"""
Configuration management for AOI Relay.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings loaded from environment."""

    # Filesystem layout
    input_root: Path = Path("/var/lib/aoi/images")
    output_root: Path = Path("/var/lib/aoi/results")
    image_extension: str = "jpg"
    activity_log_name: str = "log.txt"

    # Classifier Configuration
    classifier_url: str = "http://192.168.1.253:8889/api_v1/vision_predictor/product_serial/component/classifier"
    classifier_timeout: Optional[float] = 100.0  # seconds, None disables

    # Request metadata sent with every image
    vendor_name: str = "Dinnar"
    aoi_hardware_version: str = "0.1.1"
    aoi_hardware_config: str = "ClarkeChan"
    aoi_software_version: str = "0.2.1"
    aoi_software_config: str = "ClarkeChan"

    # Stability Gate
    stability_poll_interval: float = 0.5  # seconds
    stability_max_wait: Optional[float] = None  # None waits forever

    # Live intake: schedule on close-after-write; None picks it on Linux
    wait_for_close: Optional[bool] = None

    # Worker Configuration
    max_workers: int = 8
    serialize_processing: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("image_extension")
    @classmethod
    def normalise_extension(cls, value: str) -> str:
        """Store the extension lower-cased and without a leading dot."""
        value = value.strip().lstrip('.').lower()
        if not value:
            raise ValueError("image_extension must not be empty")
        return value

    @property
    def activity_log_path(self) -> Path:
        """Location of the append-only activity log."""
        return self.output_root / self.activity_log_name

    def input_meta(self) -> Dict[str, str]:
        """Fixed metadata block for classification requests."""
        return {
            "vendor_name": self.vendor_name,
            "aoi_hardware_version": self.aoi_hardware_version,
            "aoi_hardware_config": self.aoi_hardware_config,
            "aoi_software_version": self.aoi_software_version,
            "aoi_software_config": self.aoi_software_config,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
