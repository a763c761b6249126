"""FHIR definitions store and the fishing facade.

``FHIRDefinitions`` answers every lookup made while compiling a FHIR
implementation guide: core definitions of the primary FHIR version,
dependency packages and the project's own predefined resources all live in
its definition index. Definitions from other FHIR versions, needed only to
build implied extensions, are kept in separate supplemental stores keyed by
``{packageId}#{version}``.
"""

import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from fhirfish.fhirdefs.implied_extensions import (
    is_implied_extension_url,
    materialize_implied_extension,
)
from fhirfish.fhirdefs.index import DefinitionIndex, build_resource_info
from fhirfish.fhirdefs.metadata import Metadata, PackageInfo, project_metadata
from fhirfish.fhirdefs.r5_defs_for_r4 import R5_DEFINITIONS_NEEDED_IN_R4
from fhirfish.fhirdefs.supplemental import is_supplemental_definition
from fhirfish.fhirdefs.types import LOCAL_SCOPE, FHIRJson, Type

if TYPE_CHECKING:
    from fhirfish.fhirdefs.package_loader import PackageLoader


class FHIRDefinitions:
    """Layered FHIR definitions with fishing lookups."""

    def __init__(
        self,
        is_supplemental_fhir_definitions: bool = False,
        package_loader: Optional["PackageLoader"] = None,
    ):
        """Initialize definitions.

        Args:
            is_supplemental_fhir_definitions: True for a store holding another
                FHIR version; only resources and data types are admitted
            package_loader: Loader used to merge dependency packages
        """
        self.is_supplemental_fhir_definitions = is_supplemental_fhir_definitions
        self.package_loader = package_loader
        self._index = DefinitionIndex()
        self._supplemental_fhir_definitions: Dict[str, "FHIRDefinitions"] = {}
        self._supplemental_lock = threading.Lock()

        # Seeded first so that a later load of the same definitions overwrites them
        if not is_supplemental_fhir_definitions:
            for definition in R5_DEFINITIONS_NEEDED_IN_R4:
                self.add(definition)

    def __len__(self) -> int:
        """Return the number of admitted definitions."""
        return len(self._index)

    @property
    def supplemental_fhir_packages(self) -> List[str]:
        """Keys of the registered supplemental stores."""
        with self._supplemental_lock:
            return list(self._supplemental_fhir_definitions)

    def add(
        self,
        definition: FHIRJson,
        scope: Optional[str] = None,
        package: Optional[PackageInfo] = None,
        resource_path: Optional[str] = None,
    ) -> None:
        """Admit a definition.

        Supplemental stores silently drop anything other than resources and
        data types. A definition with the same identity as an earlier one in
        the same scope replaces it.

        Args:
            definition: FHIR resource JSON
            scope: LOCAL for predefined resources; defaults to the package key
            package: Package the definition was loaded from
            resource_path: File the definition was read from
        """
        if self.is_supplemental_fhir_definitions and not is_supplemental_definition(
            definition
        ):
            return
        if scope is None and package is not None:
            scope = package.key
        self._index.add(
            definition,
            scope=scope,
            package_name=package.name if package else None,
            package_version=package.version if package else None,
            resource_path=resource_path,
        )

    def add_package(self, package: PackageInfo) -> None:
        """Record an installed package."""
        self._index.add_package(package)

    def add_supplemental_fhir_definitions(
        self, fhir_package: str, definitions: "FHIRDefinitions"
    ) -> None:
        """Register the supplemental store for fhir_package, replacing any earlier one."""
        with self._supplemental_lock:
            self._supplemental_fhir_definitions[fhir_package] = definitions

    def get_supplemental_fhir_definitions(
        self, fhir_package: str
    ) -> Optional["FHIRDefinitions"]:
        """Return the supplemental store for fhir_package, if loaded."""
        with self._supplemental_lock:
            return self._supplemental_fhir_definitions.get(fhir_package)

    def all_implementation_guides(
        self, fhir_package: Optional[str] = None
    ) -> List[FHIRJson]:
        """Return every ImplementationGuide, optionally from one package only."""
        return self._index.find_resource_jsons(
            "*", [Type.IMPLEMENTATION_GUIDE], scope=fhir_package
        )

    def all_predefined_resources(self) -> List[FHIRJson]:
        """Return every resource from the project's local resource folders."""
        return self._index.find_resource_jsons("*", scope=LOCAL_SCOPE)

    def all_predefined_resource_metadatas(self) -> List[Metadata]:
        """Return metadata for every local predefined resource."""
        return [
            project_metadata(info)
            for info in self._index.find_resource_infos("*", scope=LOCAL_SCOPE)
        ]

    def fish_for_package_infos(self, name: str) -> List[PackageInfo]:
        """Return every installed version of the named package."""
        return self._index.find_package_infos(name)

    def fish_for_predefined_resource(
        self, item: str, *types: Type
    ) -> Optional[FHIRJson]:
        """Look up item among the local predefined resources only."""
        return self._index.find_resource_json(item, types, scope=LOCAL_SCOPE)

    def fish_for_predefined_resource_metadata(
        self, item: str, *types: Type
    ) -> Optional[Metadata]:
        """Look up metadata for item among the local predefined resources only."""
        info = self._index.find_resource_info(item, types, scope=LOCAL_SCOPE)
        return project_metadata(info) if info else None

    def fish_for_fhir(self, item: str, *types: Type) -> Optional[FHIRJson]:
        """Look up item by id, name or canonical URL across everything loaded.

        Implied extensions that exist in no package are synthesized on a miss.
        """
        definition = self._index.find_resource_json(item, types)
        if definition is not None:
            return definition
        if self._may_materialize(item, types):
            return materialize_implied_extension(item, self)
        return None

    def fish_for_metadata(self, item: str, *types: Type) -> Optional[Metadata]:
        """Look up metadata for item across everything loaded."""
        info = self._index.find_resource_info(item, types)
        if info is not None:
            return project_metadata(info)
        if self._may_materialize(item, types):
            definition = materialize_implied_extension(item, self)
            if definition is not None:
                return project_metadata(build_resource_info(definition))
        return None

    def _may_materialize(self, item: str, types: Sequence[Type]) -> bool:
        if self.is_supplemental_fhir_definitions:
            return False
        return is_implied_extension_url(item) and (
            not types or Type.EXTENSION in types
        )
