"""Base configuration settings."""

import os
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REGISTRY_URL = "https://packages.fhir.org"


class Settings(BaseSettings):
    """fhirfish settings.

    Values are read from ``FHIRFISH_*`` environment variables or a ``.env``
    file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="FHIRFISH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # FHIR packages
    fhir_version: str = "4.0.1"
    fhir_cache_dir: str = Field(
        default_factory=lambda: os.path.join(
            os.path.expanduser("~"), ".fhir", "packages"
        ),
        description="Local FHIR package cache (same layout as the IG Publisher's)",
    )
    registry_url: str = DEFAULT_REGISTRY_URL
    download_timeout: int = 60
    download_retries: int = 3

    # Supplemental FHIR versions to load for implied extensions,
    # in the form {packageId}#{version}
    supplemental_packages: List[str] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level against the standard logging levels."""
        level = v.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers are available."""
        if v not in {"console", "json"}:
            raise ValueError(f"Invalid log format: {v}. Use 'console' or 'json'")
        return v

    @field_validator("supplemental_packages")
    @classmethod
    def validate_supplemental_packages(cls, v: List[str]) -> List[str]:
        """Each supplemental package must be given as id#version."""
        for package in v:
            package_id, _, version = package.partition("#")
            if not package_id or not version:
                raise ValueError(
                    f"Supplemental package '{package}' must use the form id#version"
                )
        return v

    @field_validator("registry_url")
    @classmethod
    def strip_registry_url(cls, v: str) -> str:
        """Normalize the registry URL."""
        return v.rstrip("/")
