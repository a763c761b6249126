"""Configuration module for fhirfish."""

from fhirfish.config.base import Settings
from fhirfish.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
