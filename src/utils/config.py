"""Configuration management for the recipe generation service.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults

A single Config instance is built at process start (see src/api/server.py)
and handed to every pipeline run. Nothing below re-reads the environment
once the instance exists.
"""

import os
from typing import Optional

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Gemini credential. Empty is allowed at startup: requests then fail with MissingCredential.
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
        # Server Port
        self.PORT: int = int(os.getenv("PORT", "7777"))

        # Image normalization: longest edge in pixels and JPEG quality of the re-encoded image
        self.MAX_IMAGE_EDGE: int = int(os.getenv("MAX_IMAGE_EDGE", "800"))
        self.IMAGE_QUALITY: int = int(os.getenv("IMAGE_QUALITY", "82"))
        # Upper bound on a buffered request body (multipart upload or JSON with data URL).
        # Checked on the received body before base64 transport decoding, so base64-flagged
        # serverless events carry at most about 3/4 of this (7.5MB of payload at the default 10).
        self.MAX_BODY_SIZE_MB: int = int(os.getenv("MAX_BODY_SIZE_MB", "10"))

        # Wall-clock budget for the single generation call. Matches the hosting
        # platform's function duration ceiling (60s on the serverless deployments).
        self.REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))
        # LLM Model Parameters
        self.TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.4"))
        self.MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "4096"))
        # Structured output: attach the recipe schema to the call (true) or embed a
        # JSON skeleton in the prompt text (false)
        self.STRUCTURED_OUTPUT: bool = _env_flag("STRUCTURED_OUTPUT", "true")

        # Image transport: "inline" (base64 bytes in the request) or "reference"
        # (upload to blob storage, Gemini fetches the URL)
        self.IMAGE_TRANSPORT: str = os.getenv("IMAGE_TRANSPORT", "inline")
        self.BLOB_UPLOAD_URL: Optional[str] = os.getenv("BLOB_UPLOAD_URL")
        self.BLOB_READ_WRITE_TOKEN: Optional[str] = os.getenv("BLOB_READ_WRITE_TOKEN")

        self.DEFAULT_CUISINE: str = os.getenv("DEFAULT_CUISINE", "Middle Eastern")
        # Retry hint used when Gemini reports a quota failure without a retry delay
        self.DEFAULT_RETRY_AFTER_SECONDS: int = int(os.getenv("DEFAULT_RETRY_AFTER_SECONDS", "60"))

    @property
    def max_body_bytes(self) -> int:
        return self.MAX_BODY_SIZE_MB * 1024 * 1024

    @property
    def has_credential(self) -> bool:
        return bool(self.GEMINI_API_KEY.strip())

    def validate(self) -> None:
        """Validate configuration values.

        The API key is deliberately not required here so the server can start
        and answer every request with a classified MissingCredential error.

        Raises:
            ValueError: If a setting is out of range or has an unknown value.
        """
        if self.MAX_IMAGE_EDGE < 1:
            raise ValueError(f"MAX_IMAGE_EDGE must be at least 1, got: {self.MAX_IMAGE_EDGE}")
        if not (1 <= self.IMAGE_QUALITY <= 95):
            raise ValueError(f"IMAGE_QUALITY must be between 1 and 95, got: {self.IMAGE_QUALITY}")
        if self.MAX_BODY_SIZE_MB < 1:
            raise ValueError(f"MAX_BODY_SIZE_MB must be at least 1, got: {self.MAX_BODY_SIZE_MB}")
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"REQUEST_TIMEOUT_SECONDS must be positive, got: {self.REQUEST_TIMEOUT_SECONDS}"
            )
        if not (0.0 <= self.TEMPERATURE <= 2.0):
            raise ValueError(f"TEMPERATURE must be between 0.0 and 2.0, got: {self.TEMPERATURE}")
        if self.MAX_OUTPUT_TOKENS < 512:
            raise ValueError(f"MAX_OUTPUT_TOKENS must be at least 512, got: {self.MAX_OUTPUT_TOKENS}")
        if self.IMAGE_TRANSPORT not in ("inline", "reference"):
            raise ValueError(
                f"IMAGE_TRANSPORT must be 'inline' or 'reference', got: {self.IMAGE_TRANSPORT}"
            )
        if self.IMAGE_TRANSPORT == "reference" and not (self.BLOB_UPLOAD_URL and self.BLOB_READ_WRITE_TOKEN):
            raise ValueError(
                "BLOB_UPLOAD_URL and BLOB_READ_WRITE_TOKEN are required when IMAGE_TRANSPORT=reference"
            )
        if self.DEFAULT_RETRY_AFTER_SECONDS < 1:
            raise ValueError(
                f"DEFAULT_RETRY_AFTER_SECONDS must be at least 1, got: {self.DEFAULT_RETRY_AFTER_SECONDS}"
            )
        if not self.DEFAULT_CUISINE.strip():
            raise ValueError("DEFAULT_CUISINE must not be empty")


def load_config() -> Config:
    """Build and validate the process-wide configuration (call once at startup)."""
    config = Config()
    config.validate()
    return config
