"""Core Exceptions Module.

This module defines custom exceptions used throughout fhirfish. Lookups
never raise: a definition that cannot be found is reported as ``None``.
"""

from typing import Optional


class FHIRFishError(Exception):
    """Base exception for all fhirfish errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.code = code


class ConfigurationError(FHIRFishError):
    """Raised when configuration is invalid or missing."""


class NetworkError(FHIRFishError):
    """Raised when network operations fail."""


class PackageLoadError(FHIRFishError):
    """Raised when a FHIR package cannot be fetched, unpacked or read."""

    def __init__(self, package: str, message: str):
        """Initialize PackageLoadError."""
        super().__init__(f"{package}: {message}", "PACKAGE_LOAD_ERROR")
        self.package = package
