"""fhirfish: resolve FHIR definitions across core, dependency, local and supplemental packages."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fhirfish")
except PackageNotFoundError:
    __version__ = "dev"
