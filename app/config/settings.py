"""
==============================================================================
Application Settings Module
==============================================================================

Production-grade configuration management using Pydantic Settings.

This module implements the Singleton pattern to ensure a single global
configuration instance throughout the application lifecycle.

Features:
---------
- Environment variable loading with type validation
- .env file support for local development
- Computed properties for derived values (milliseconds -> seconds)
- Thread-safe singleton implementation

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

Scanner Tuning:
---------------
- DEDUP_WINDOW_MS: how long a barcode stays "live" after its last sighting
- FRAME_SKIP / MAX_FRAME_RATE_MS: continuous-mode decode throttling
- CAPTURE_TIMEOUT_MS: hard upper bound for a single-shot analysis

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


DEFAULT_BARCODE_FORMATS = [
    "CODE_128",
    "EAN_13",
    "EAN_8",
    "CODE_39",
    "CODABAR",
    "UPC_A",
    "UPC_E",
    "ITF",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This class uses Pydantic Settings to provide type-safe configuration
    with automatic environment variable loading and validation.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        dedup_window_ms: Duplicate suppression window per barcode
        frame_skip: Only every Nth display tick is eligible for analysis
        max_frame_rate_ms: Minimum spacing between two decode attempts
        tick_interval_ms: Continuous loop tick interval (display refresh)
        capture_timeout_ms: Single-shot analysis timeout
        scan_mode: "continuous" or "single-shot"
        scan_strategy: Region strategy name ("full_frame" or "quadrants")
        scan_backend: "local" (pyzbar) or "remote" (upload endpoint)
        barcode_formats: Symbologies to attempt (JSON array string)
        scan_api_url: Remote scanning endpoint for the upload backend
        scan_api_timeout_seconds: HTTP timeout for the upload backend
        camera_index: OpenCV capture device index
        camera_width: Ideal capture width
        camera_height: Ideal capture height
        camera_facing_mode: Preferred camera ("environment" or "user")
        camera_retry_delay_ms: Pause between release and re-acquire on retry

    Example:
        >>> settings = Settings()
        >>> print(settings.dedup_window_seconds)
        2.0
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        # Load from .env file if present
        env_file=".env",
        env_file_encoding="utf-8",
        # Environment variables are case-insensitive
        case_sensitive=False,
        # Ignore extra environment variables
        extra="ignore",
        # Validate default values
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="Barcode Scanner API",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # DEDUPLICATION SETTINGS
    # =========================================================================
    dedup_window_ms: int = Field(
        default=2000,
        ge=1,
        le=600000,  # Max 10 minutes
        description="Duplicate suppression window in milliseconds"
    )

    # =========================================================================
    # SAMPLER SETTINGS
    # =========================================================================
    frame_skip: int = Field(
        default=2,
        ge=1,
        le=60,
        description="Analyze only every Nth display tick"
    )

    max_frame_rate_ms: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Minimum milliseconds between two decode attempts"
    )

    tick_interval_ms: int = Field(
        default=16,
        ge=1,
        le=1000,
        description="Continuous loop tick interval in milliseconds"
    )

    capture_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=120000,
        description="Single-shot analysis timeout in milliseconds"
    )

    scan_mode: str = Field(
        default="continuous",
        description="Scan driver mode: continuous or single-shot"
    )

    scan_strategy: str = Field(
        default="quadrants",
        description="Region strategy: full_frame or quadrants"
    )

    # =========================================================================
    # DECODER SETTINGS
    # =========================================================================
    scan_backend: str = Field(
        default="local",
        description="Decoder backend: local (pyzbar) or remote (upload)"
    )

    barcode_formats: str = Field(
        default=json.dumps(DEFAULT_BARCODE_FORMATS),
        description="Symbologies to attempt as JSON array string"
    )

    scan_api_url: str = Field(
        default="http://localhost:8000/api/v1/scan",
        description="Remote scanning endpoint for the upload backend"
    )

    scan_api_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="HTTP timeout for the upload backend"
    )

    # =========================================================================
    # CAMERA SETTINGS
    # =========================================================================
    camera_index: int = Field(
        default=0,
        ge=0,
        description="OpenCV capture device index"
    )

    camera_width: int = Field(
        default=1280,
        ge=160,
        le=7680,
        description="Ideal capture width"
    )

    camera_height: int = Field(
        default=720,
        ge=120,
        le=4320,
        description="Ideal capture height"
    )

    camera_facing_mode: str = Field(
        default="environment",
        description="Preferred camera: environment (rear) or user (front)"
    )

    camera_retry_delay_ms: int = Field(
        default=500,
        ge=0,
        le=10000,
        description="Pause between release and re-acquire on permission retry"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Args:
            value: Raw environment value

        Returns:
            Lowercase normalized environment name
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("camera_facing_mode")
    @classmethod
    def validate_facing_mode(cls, value: str) -> str:
        """Validate camera facing mode."""
        normalized = value.lower().strip()
        if normalized not in {"environment", "user"}:
            raise ValueError(
                f"Unsupported facing mode: {value}. "
                "Supported: environment, user"
            )
        return normalized

    @field_validator("scan_mode")
    @classmethod
    def validate_scan_mode(cls, value: str) -> str:
        """Validate scan driver mode (accepts single_shot as an alias)."""
        normalized = value.lower().strip().replace("_", "-")
        if normalized not in {"continuous", "single-shot"}:
            raise ValueError(
                f"Unsupported scan mode: {value}. "
                "Supported: continuous, single-shot"
            )
        return normalized

    @field_validator("scan_backend")
    @classmethod
    def validate_scan_backend(cls, value: str) -> str:
        """Validate decoder backend name."""
        normalized = value.lower().strip()
        if normalized not in {"local", "remote"}:
            raise ValueError(
                f"Unsupported scan backend: {value}. "
                "Supported: local, remote"
            )
        return normalized

    @field_validator("scan_strategy")
    @classmethod
    def validate_scan_strategy(cls, value: str) -> str:
        """Validate region strategy name."""
        normalized = value.lower().strip()
        if normalized not in {"full_frame", "quadrants"}:
            raise ValueError(
                f"Unsupported scan strategy: {value}. "
                "Supported: full_frame, quadrants"
            )
        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    @property
    def barcode_formats_list(self) -> List[str]:
        """
        Parse barcode formats from JSON string to list.

        Accepts either a JSON array or a comma separated string.
        Names are upper-cased; an unparsable value falls back to defaults.

        Returns:
            List of normalized format names
        """
        raw = self.barcode_formats.strip()
        if not raw:
            return list(DEFAULT_BARCODE_FORMATS)

        try:
            formats = json.loads(raw)
        except json.JSONDecodeError:
            formats = raw.split(",")

        if not isinstance(formats, list):
            logger.warning(
                f"Invalid barcode formats: {self.barcode_formats}, "
                "using defaults"
            )
            return list(DEFAULT_BARCODE_FORMATS)

        return [str(f).strip().upper() for f in formats if str(f).strip()]

    @property
    def dedup_window_seconds(self) -> float:
        """Get duplicate window in seconds."""
        return self.dedup_window_ms / 1000.0

    @property
    def max_frame_rate_seconds(self) -> float:
        """Get minimum spacing between decode attempts in seconds."""
        return self.max_frame_rate_ms / 1000.0

    @property
    def tick_interval_seconds(self) -> float:
        """Get continuous loop tick interval in seconds."""
        return self.tick_interval_ms / 1000.0

    @property
    def capture_timeout_seconds(self) -> float:
        """Get single-shot timeout in seconds."""
        return self.capture_timeout_ms / 1000.0

    @property
    def camera_retry_delay_seconds(self) -> float:
        """Get permission retry delay in seconds."""
        return self.camera_retry_delay_ms / 1000.0

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"scan_mode={self.scan_mode!r}, "
            f"scan_backend={self.scan_backend!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Uses lru_cache to ensure only one Settings instance is created
    throughout the application lifecycle. This is thread-safe and
    provides consistent configuration access.

    Returns:
        Global Settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.app_name)
        'Barcode Scanner API'
    """
    settings = Settings()

    # Log configuration summary (only in debug mode)
    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
