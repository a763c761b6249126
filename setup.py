#!/usr/bin/env python
"""Setup configuration for fhirfish."""

from setuptools import find_packages, setup

setup(
    name="fhirfish",
    version="0.1.0",
    description="Resolve FHIR definitions across core, dependency, local and supplemental packages",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11.4",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
        "httpx>=0.25.0",
        "fhirclient>=4.1.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fhirfish=fhirfish.cli:main",
        ],
    },
)
