"""Loading FHIR definitions into a FHIRDefinitions store.

Dependencies are merged into the primary store in order, so a package loaded
later supersedes same-named definitions from earlier ones. Supplemental FHIR
versions are loaded concurrently into stores of their own; a package that
fails to load is logged and reported in the result rather than raised.
"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fhirfish.core.exceptions import ConfigurationError
from fhirfish.fhirdefs.definitions import FHIRDefinitions
from fhirfish.fhirdefs.package_loader import PackageLoader
from fhirfish.fhirdefs.types import LOCAL_SCOPE
from fhirfish.utils.logging import get_logger

logger = get_logger(__name__)

PREDEFINED_RESOURCE_FOLDERS = [
    "capabilities",
    "extensions",
    "models",
    "operations",
    "profiles",
    "resources",
    "vocabulary",
    "examples",
]

PATH_RESOURCE_PARAMETER = "path-resource"


@dataclass
class PackageLoadResult:
    """Outcome of loading one FHIR package."""

    fhir_package: str
    definitions: Optional[FHIRDefinitions] = None
    error: Optional[str] = None

    @property
    def loaded(self) -> bool:
        """True if the package was merged successfully."""
        return self.definitions is not None


def get_local_resource_paths(
    resource_dir: str,
    project_dir: Optional[str] = None,
    config_parameters: Optional[Iterable[Dict[str, Any]]] = None,
) -> List[str]:
    """List the folders to search for predefined resources.

    Args:
        resource_dir: Folder containing the standard resource subfolders
        project_dir: The user's project folder
        config_parameters: ImplementationGuide definition parameters; every
            ``path-resource`` parameter names an extra folder relative to
            project_dir, used only if it exists

    Returns:
        Paths to search for predefined resources
    """
    paths = [str(Path(resource_dir) / folder) for folder in PREDEFINED_RESOURCE_FOLDERS]
    if config_parameters and project_dir:
        for parameter in config_parameters:
            if parameter.get("code") != PATH_RESOURCE_PARAMETER or not parameter.get(
                "value"
            ):
                continue
            path = Path(project_dir) / parameter["value"]
            if path.is_dir():
                paths.append(str(path))
    return paths


def load_predefined_resources(defs: FHIRDefinitions, paths: Sequence[str]) -> int:
    """Admit every FHIR JSON file found directly in paths into the LOCAL scope.

    Missing folders are skipped. Files that are not readable FHIR JSON are
    logged and skipped.

    Returns:
        Number of resources admitted
    """
    count = 0
    for folder in paths:
        directory = Path(folder)
        if not directory.is_dir():
            continue
        for path in sorted(directory.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    resource = json.load(f)
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning("predefined_resource_unreadable", path=str(path), error=str(e))
                continue
            if not isinstance(resource, dict) or not resource.get("resourceType"):
                logger.debug("predefined_resource_skipped", path=str(path))
                continue
            defs.add(resource, scope=LOCAL_SCOPE, resource_path=str(path))
            count += 1
    logger.info("predefined_resources_loaded", count=count)
    return count


def _split_package_key(fhir_package: str) -> Optional[Tuple[str, str]]:
    package_id, _, version = fhir_package.partition("#")
    if not package_id or not version:
        return None
    return package_id, version


def _require_loader(
    defs: FHIRDefinitions, loader: Optional[PackageLoader]
) -> PackageLoader:
    loader = loader or defs.package_loader
    if loader is None:
        raise ConfigurationError("No package loader is configured for these definitions")
    return loader


async def load_dependency(
    fhir_package: str,
    defs: FHIRDefinitions,
    loader: Optional[PackageLoader] = None,
) -> PackageLoadResult:
    """Merge a dependency package into the primary store.

    Args:
        fhir_package: Package in the form {packageId}#{version}
        defs: The store to load into
        loader: Package loader; defaults to defs.package_loader

    Raises:
        ConfigurationError: If no package loader is available
    """
    loader = _require_loader(defs, loader)
    parts = _split_package_key(fhir_package)
    if parts is None:
        return _failed(fhir_package, "package must be given as id#version")
    try:
        await loader.merge_dependency(parts[0], parts[1], defs)
    except Exception as e:
        logger.error("package_load_failed", fhir_package=fhir_package, error=str(e))
        logger.debug("package_load_failed_detail", fhir_package=fhir_package, exc_info=True)
        return PackageLoadResult(fhir_package, error=str(e))
    return PackageLoadResult(fhir_package, definitions=defs)


async def load_dependencies(
    fhir_packages: Sequence[str],
    defs: FHIRDefinitions,
    loader: Optional[PackageLoader] = None,
) -> List[PackageLoadResult]:
    """Merge dependencies one after another, so load order decides precedence."""
    results = []
    for fhir_package in fhir_packages:
        results.append(await load_dependency(fhir_package, defs, loader))
    return results


async def load_supplemental_fhir_package(
    fhir_package: str,
    defs: FHIRDefinitions,
    loader: Optional[PackageLoader] = None,
) -> PackageLoadResult:
    """Load a FHIR version other than the primary one into its own store.

    The supplemental store is registered on defs under fhir_package and holds
    only resources and data types. This coroutine never raises for a package
    that cannot be loaded; the failure is logged and returned.

    Args:
        fhir_package: Package in the form {packageId}#{version}
        defs: The primary store to register the supplemental store on
        loader: Package loader; defaults to defs.package_loader

    Raises:
        ConfigurationError: If no package loader is available
    """
    loader = _require_loader(defs, loader)
    parts = _split_package_key(fhir_package)
    if parts is None:
        return _failed(fhir_package, "package must be given as id#version")

    supplemental = FHIRDefinitions(is_supplemental_fhir_definitions=True)
    try:
        await loader.merge_dependency(parts[0], parts[1], supplemental)
    except Exception as e:
        logger.error(
            "supplemental_package_load_failed", fhir_package=fhir_package, error=str(e)
        )
        logger.debug(
            "supplemental_package_load_failed_detail",
            fhir_package=fhir_package,
            exc_info=True,
        )
        return PackageLoadResult(fhir_package, error=str(e))

    defs.add_supplemental_fhir_definitions(fhir_package, supplemental)
    return PackageLoadResult(fhir_package, definitions=supplemental)


async def load_supplemental_fhir_packages(
    fhir_packages: Sequence[str],
    defs: FHIRDefinitions,
    loader: Optional[PackageLoader] = None,
) -> List[PackageLoadResult]:
    """Load several supplemental packages concurrently."""
    loader = _require_loader(defs, loader)
    results = await asyncio.gather(
        *[load_supplemental_fhir_package(p, defs, loader) for p in fhir_packages]
    )
    loaded = sum(1 for r in results if r.loaded)
    logger.info(
        "supplemental_packages_loaded", loaded=loaded, requested=len(fhir_packages)
    )
    return list(results)


def _failed(fhir_package: str, error: str) -> PackageLoadResult:
    logger.error("package_load_failed", fhir_package=fhir_package, error=error)
    return PackageLoadResult(fhir_package, error=error)
