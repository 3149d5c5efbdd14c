"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: In-memory backend and canned chat replies (no keys needed)
    - STAGING: Real hosted backend and Gemini with test projects
    - PRODUCTION: Real hosted backend and Gemini

The ENV_MODE variable controls which collaborators are instantiated
throughout the gateway, enabling switching between local testing and a
deployment against the hosted backend.

Usage:
    from pos_gateway.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # In-memory backend
    else:
        # Hosted backend over REST
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with the in-memory backend
        PRODUCTION: Live hosted backend and AI integrations
        STAGING: Pre-production with real services on test projects
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Gateway settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Keys (backend service key, Gemini key) must never be committed.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Restaurant POS Gateway",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )
    allowed_origins: str = Field(
        default="http://localhost:8080,http://localhost:5173",
        description="Comma-separated list of origins allowed by CORS"
    )

    # ==========================================================================
    # HOSTED BACKEND
    # ==========================================================================

    backend_url: Optional[str] = Field(
        default=None,
        description="Base URL of the hosted backend (https://<project>.example.co)"
    )
    backend_anon_key: Optional[str] = Field(
        default=None,
        description="Public API key sent as the apikey header"
    )
    backend_service_key: Optional[str] = Field(
        default=None,
        description="Service role key used as bearer token (server side only)"
    )
    backend_timeout: float = Field(
        default=10.0,
        description="Seconds before a backend request times out"
    )

    # ==========================================================================
    # REDIS / CELERY
    # ==========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    reports_enabled: bool = Field(
        default=True,
        description="Queue Excel shift reports after a shift is closed"
    )

    # ==========================================================================
    # MENU CHAT (GOOGLE GEMINI)
    # ==========================================================================

    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Google Generative Language API key"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used by the menu assistant"
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language API base URL"
    )
    chat_max_output_tokens: int = Field(
        default=500,
        description="Maximum tokens in an assistant reply"
    )
    chat_temperature: float = Field(
        default=0.7,
        description="Sampling temperature for assistant replies"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    restaurant_name: str = Field(
        default="Demo Kitchen",
        description="Restaurant display name"
    )
    vat_rate: float = Field(
        default=0.15,
        description="VAT rate as decimal (KSA = 15%)"
    )
    currency: str = Field(
        default="SAR",
        description="Currency code shown in messages"
    )
    timezone: str = Field(
        default="Asia/Riyadh",
        description="Local timezone used for 'today' and hourly buckets"
    )
    loyalty_min_phone_length: int = Field(
        default=8,
        description="Shortest phone number accepted for loyalty lookups"
    )
    query_cache_ttl: float = Field(
        default=30.0,
        description="Seconds a cached query result stays fresh"
    )

    # ==========================================================================
    # FILE STORAGE
    # ==========================================================================

    data_directory: str = Field(
        default="data",
        description="Directory for report files"
    )
    report_lock_timeout: int = Field(
        default=30,
        description="Seconds to wait for the report file lock"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def use_real_services(self) -> bool:
        """Check if the hosted backend and Gemini should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get allowed CORS origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.backend_url:
                missing.append("BACKEND_URL")
            if not self.backend_anon_key:
                missing.append("BACKEND_ANON_KEY")
            if not self.gemini_api_key:
                missing.append("GEMINI_API_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once per process; tests call
    ``get_settings.cache_clear()`` after changing the environment.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger("pos_gateway")
