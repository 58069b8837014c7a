"""
Configuration module for the Preauth Portal.

This module uses Pydantic Settings to load and validate environment variables
for tenant configuration, outbound verification, audit logging, the admin
API and CORS settings.

Environment variables are loaded from .env file or system environment.
Tenant definitions themselves live in the INI file named by CONFIG_PATH and
are re-read on every login (see preauth_portal.tenants.source).
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # Service Metadata
    # =========================================================================

    APP_NAME: str = Field(default="Preauth Portal")
    APP_VERSION: str = Field(default="1.0.0")

    # =========================================================================
    # Tenant Configuration Source
    # =========================================================================

    CONFIG_PATH: str = Field(
        default="config.ini",
        description="Path of the INI file holding [portal] and tenant sections",
    )

    CA_BASE_DIR: Optional[str] = Field(
        None,
        description="Directory relative ca_file paths resolve against (defaults to the config file's directory)",
    )

    TENANT_KEY_PREFIX: str = Field(
        default="tenant",
        description="Prefix of tenant keys; keys look like '<prefix>_<integer>'",
        min_length=1,
    )

    # =========================================================================
    # Outbound Credential Verification
    # =========================================================================

    VERIFY_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Total timeout of one verification call to a tenant",
        gt=0,
        le=120,
    )

    VERIFY_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Connect timeout of one verification call to a tenant",
        gt=0,
        le=60,
    )

    DIAGNOSTIC_MAX_CHARS: int = Field(
        default=200,
        description="Maximum length of transport error text kept in the audit log",
        ge=20,
        le=2000,
    )

    # =========================================================================
    # Audit Log
    # =========================================================================

    DATA_DIR: str = Field(default="data")

    AUDIT_LOG_FILE: Optional[str] = Field(
        None,
        description="JSONL login ledger (defaults to DATA_DIR/login_attempts.jsonl)",
    )

    STATS_WINDOW: int = Field(
        default=5000,
        description="Number of most recent audit records the stats reducer reads",
        ge=1,
    )

    LOGS_DEFAULT_LIMIT: int = Field(default=200, ge=1)

    LOGS_MAX_LIMIT: int = Field(default=2000, ge=1)

    # =========================================================================
    # Admin API
    # =========================================================================

    ADMIN_API_TOKEN: Optional[str] = Field(
        None,
        description="Shared secret expected in X-Admin-Token (admin API disabled when unset)",
        min_length=16,
    )

    PUBLIC_TENANT_LISTING: bool = Field(
        default=False,
        description="Expose tenant keys, names and domains on GET /api/servers",
    )

    # =========================================================================
    # Server / CORS / Logging
    # =========================================================================

    HOST: str = Field(default="0.0.0.0")

    PORT: int = Field(default=8080, ge=1, le=65535)

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO")

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def audit_log_path(self) -> Path:
        if self.AUDIT_LOG_FILE:
            return Path(self.AUDIT_LOG_FILE)
        return Path(self.DATA_DIR) / "login_attempts.jsonl"

    @property
    def ca_base_dir(self) -> Path:
        """Directory used to resolve relative tenant CA file paths."""
        if self.CA_BASE_DIR:
            return Path(self.CA_BASE_DIR)
        return Path(self.CONFIG_PATH).resolve().parent

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL is a standard logging level name.

        Raises:
            ValueError: If the level is not recognised
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()

        if level not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")

        return level

    @field_validator("TENANT_KEY_PREFIX")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        if not re.match(r"^[A-Za-z][A-Za-z0-9]*$", v):
            raise ValueError(
                f"Invalid TENANT_KEY_PREFIX: '{v}'. "
                "Expected letters and digits, starting with a letter"
            )
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle. Tests pass their own Settings to
    create_app() instead of clearing this cache.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors are logged, not raised, so
    a missing tenant file can be fixed without restarting the process.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if not Path(settings.CONFIG_PATH).is_file():
        errors.append(f"Tenant config file not found: {settings.CONFIG_PATH}")

    if not settings.ADMIN_API_TOKEN:
        warnings.append("ADMIN_API_TOKEN is not set (admin API disabled)")

    if settings.PUBLIC_TENANT_LISTING:
        warnings.append("PUBLIC_TENANT_LISTING exposes tenant domains to anonymous callers")

    if settings.VERIFY_CONNECT_TIMEOUT_SECONDS > settings.VERIFY_TIMEOUT_SECONDS:
        warnings.append("VERIFY_CONNECT_TIMEOUT_SECONDS exceeds VERIFY_TIMEOUT_SECONDS")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "config_path": settings.CONFIG_PATH,
        "audit_log": str(settings.audit_log_path),
    }
