"""FHIR definitions: storage, fishing and loading."""

from fhirfish.fhirdefs.definitions import FHIRDefinitions
from fhirfish.fhirdefs.implied_extensions import (
    ImpliedExtensionRequest,
    materialize_implied_extension,
    parse_implied_extension,
)
from fhirfish.fhirdefs.load import (
    PackageLoadResult,
    get_local_resource_paths,
    load_dependencies,
    load_dependency,
    load_predefined_resources,
    load_supplemental_fhir_package,
    load_supplemental_fhir_packages,
)
from fhirfish.fhirdefs.metadata import Metadata, PackageInfo, ResourceInfo
from fhirfish.fhirdefs.package_loader import FHIRPackageLoader, PackageLoader
from fhirfish.fhirdefs.types import LOCAL_SCOPE, Fishable, Type

__all__ = [
    "FHIRDefinitions",
    "FHIRPackageLoader",
    "Fishable",
    "ImpliedExtensionRequest",
    "LOCAL_SCOPE",
    "Metadata",
    "PackageInfo",
    "PackageLoadResult",
    "PackageLoader",
    "ResourceInfo",
    "Type",
    "get_local_resource_paths",
    "load_dependencies",
    "load_dependency",
    "load_predefined_resources",
    "load_supplemental_fhir_package",
    "load_supplemental_fhir_packages",
    "materialize_implied_extension",
    "parse_implied_extension",
]
