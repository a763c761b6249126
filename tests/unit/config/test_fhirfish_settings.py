"""Test fhirfish settings loading from environment variables."""

import os

import pytest
from pydantic import ValidationError

from fhirfish.config import Settings, get_settings


class TestSettings:
    """Test settings configuration."""

    def setup_method(self):
        """Set up test method."""
        # Clear environment variables
        self.env_vars_to_clear = [
            "FHIRFISH_LOG_LEVEL",
            "FHIRFISH_LOG_FORMAT",
            "FHIRFISH_FHIR_VERSION",
            "FHIRFISH_FHIR_CACHE_DIR",
            "FHIRFISH_REGISTRY_URL",
            "FHIRFISH_DOWNLOAD_TIMEOUT",
            "FHIRFISH_DOWNLOAD_RETRIES",
            "FHIRFISH_SUPPLEMENTAL_PACKAGES",
        ]
        self.saved = {
            var: os.environ.pop(var)
            for var in self.env_vars_to_clear
            if var in os.environ
        }

    def teardown_method(self):
        """Clean up after test method."""
        for var in self.env_vars_to_clear:
            os.environ.pop(var, None)
        os.environ.update(self.saved)

    def test_default_initialization(self):
        """Test settings with default values."""
        settings = Settings(_env_file=None)

        assert settings.log_level == "INFO"
        assert settings.log_format == "console"
        assert settings.fhir_version == "4.0.1"
        assert settings.fhir_cache_dir == os.path.join(
            os.path.expanduser("~"), ".fhir", "packages"
        )
        assert settings.registry_url == "https://packages.fhir.org"
        assert settings.download_timeout == 60
        assert settings.download_retries == 3
        assert settings.supplemental_packages == []

    def test_environment_overrides(self):
        """Test FHIRFISH_ environment variables."""
        os.environ["FHIRFISH_LOG_LEVEL"] = "debug"
        os.environ["FHIRFISH_LOG_FORMAT"] = "json"
        os.environ["FHIRFISH_FHIR_CACHE_DIR"] = "/tmp/fhir-cache"
        os.environ["FHIRFISH_REGISTRY_URL"] = "https://packages2.fhir.org/packages/"
        os.environ["FHIRFISH_DOWNLOAD_RETRIES"] = "0"
        os.environ["FHIRFISH_SUPPLEMENTAL_PACKAGES"] = (
            '["hl7.fhir.r5.core#5.0.0", "hl7.fhir.r4b.core#4.3.0"]'
        )

        settings = Settings(_env_file=None)

        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"
        assert settings.fhir_cache_dir == "/tmp/fhir-cache"
        assert settings.registry_url == "https://packages2.fhir.org/packages"
        assert settings.download_retries == 0
        assert settings.supplemental_packages == [
            "hl7.fhir.r5.core#5.0.0",
            "hl7.fhir.r4b.core#4.3.0",
        ]

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected."""
        os.environ["FHIRFISH_LOG_LEVEL"] = "LOUD"

        with pytest.raises(ValidationError, match="Invalid log level"):
            Settings(_env_file=None)

    def test_invalid_log_format(self):
        """Test that only console and json are accepted."""
        with pytest.raises(ValidationError, match="Invalid log format"):
            Settings(_env_file=None, log_format="xml")

    def test_supplemental_package_needs_version(self):
        """Test that supplemental packages must be id#version."""
        with pytest.raises(ValidationError, match="id#version"):
            Settings(_env_file=None, supplemental_packages=["hl7.fhir.r5.core"])

    def test_get_settings_is_cached(self):
        """Test that get_settings returns one instance until the cache is cleared."""
        first = get_settings()

        assert get_settings() is first

        get_settings.cache_clear()
        assert get_settings() is not first
