"""In-memory index of FHIR definitions.

Definitions are admitted with a scope tag (``LOCAL`` for the user's own
predefined resources, ``{packageId}#{version}`` for package content, or no
scope at all for built-in seeds) and can be looked up by id, name or
canonical URL. Results are ordered by the position of the matched type in the
requested filter and then by admission, most recent first, so later loads
supersede earlier ones.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from fhirfish.fhirdefs.metadata import PackageInfo, ResourceInfo
from fhirfish.fhirdefs.types import FHIRJson, Type

TYPE_CHARACTERISTICS_EXTENSION = (
    "http://hl7.org/fhir/StructureDefinition/structuredefinition-type-characteristics"
)
IMPOSE_PROFILE_EXTENSION = (
    "http://hl7.org/fhir/StructureDefinition/structuredefinition-imposeProfile"
)

TYPE_KINDS = {"primitive-type", "complex-type", "datatype"}
CONFORMANCE_RESOURCE_TYPES = {"StructureDefinition", "ValueSet", "CodeSystem"}

WILDCARD = "*"


@dataclass
class _Entry:
    seq: int
    info: ResourceInfo
    definition: FHIRJson


def sd_flavor(definition: FHIRJson) -> Optional[str]:
    """Classify a StructureDefinition as Extension, Profile, Type, Resource or Logical."""
    if definition.get("resourceType") != "StructureDefinition":
        return None
    kind = _string(definition.get("kind"))
    derivation = definition.get("derivation")
    if definition.get("type") == "Extension" and derivation != "specialization":
        return Type.EXTENSION.value
    if derivation == "constraint":
        return Type.PROFILE.value
    if kind in TYPE_KINDS:
        return Type.TYPE.value
    if kind == "resource":
        return Type.RESOURCE.value
    if kind == "logical":
        return Type.LOGICAL.value
    return None


def _string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str) and v]


def _extension_values(definition: FHIRJson, url: str, value_key: str) -> List[str]:
    extensions = definition.get("extension")
    if not isinstance(extensions, list):
        return []
    return [
        ext[value_key]
        for ext in extensions
        if isinstance(ext, dict)
        and ext.get("url") == url
        and isinstance(ext.get(value_key), str)
    ]


def build_resource_info(
    definition: FHIRJson,
    scope: Optional[str] = None,
    package_name: Optional[str] = None,
    package_version: Optional[str] = None,
    resource_path: Optional[str] = None,
) -> ResourceInfo:
    """Summarize a definition for indexing.

    Only well-formed values are indexed, so instances whose ``name`` is a
    HumanName list (Patient, Practitioner) are admitted without one.
    """
    info: Dict[str, Any] = {
        "resource_type": _string(definition.get("resourceType")),
        "id": _string(definition.get("id")),
        "name": _string(definition.get("name")),
        "url": _string(definition.get("url")),
        "version": _string(definition.get("version")),
        "package_name": package_name,
        "package_version": package_version,
        "scope": scope,
        "resource_path": resource_path,
    }
    if definition.get("resourceType") == "StructureDefinition":
        abstract = definition.get("abstract")
        characteristics = _extension_values(
            definition, TYPE_CHARACTERISTICS_EXTENSION, "valueCode"
        )
        characteristics.extend(
            c
            for c in _strings(definition.get("characteristics"))
            if c not in characteristics
        )
        impose_profiles = _extension_values(
            definition, IMPOSE_PROFILE_EXTENSION, "valueCanonical"
        )
        info.update(
            sd_kind=_string(definition.get("kind")),
            sd_derivation=_string(definition.get("derivation")),
            sd_type=_string(definition.get("type")),
            sd_base_definition=_string(definition.get("baseDefinition")),
            sd_abstract=abstract if isinstance(abstract, bool) else None,
            sd_impose_profiles=impose_profiles or None,
            sd_characteristics=characteristics or None,
            sd_flavor=sd_flavor(definition),
        )
    return ResourceInfo(**info)


def type_rank(info: ResourceInfo, types: Sequence[str]) -> Optional[int]:
    """Position of the first requested type the resource satisfies.

    Returns 0 when no filter is given and None when nothing matches.
    """
    if not types:
        return 0
    for rank, wanted in enumerate(types):
        if info.resource_type == "StructureDefinition":
            if info.sd_flavor == wanted:
                return rank
        elif wanted == Type.INSTANCE:
            if info.resource_type not in CONFORMANCE_RESOURCE_TYPES:
                return rank
        elif info.resource_type == wanted:
            return rank
    return None


class DefinitionIndex:
    """Scoped, in-memory store of FHIR definitions and installed packages."""

    def __init__(self) -> None:
        """Initialize an empty index."""
        self._seq = itertools.count()
        self._entries: Dict[int, _Entry] = {}
        self._keys: Dict[str, Set[int]] = {}
        self._identities: Dict[Tuple[Optional[str], str, str], int] = {}
        self._packages: List[PackageInfo] = []

    def __len__(self) -> int:
        """Return the number of admitted definitions."""
        return len(self._entries)

    def add(
        self,
        definition: FHIRJson,
        scope: Optional[str] = None,
        package_name: Optional[str] = None,
        package_version: Optional[str] = None,
        resource_path: Optional[str] = None,
    ) -> ResourceInfo:
        """Admit a definition, replacing any prior one with the same identity."""
        info = build_resource_info(
            definition, scope, package_name, package_version, resource_path
        )
        identity = self._identity(info)
        if identity is not None and identity in self._identities:
            self._remove(self._identities.pop(identity))

        entry = _Entry(next(self._seq), info, definition)
        self._entries[entry.seq] = entry
        for key in {info.id, info.name, info.url}:
            if key:
                self._keys.setdefault(key, set()).add(entry.seq)
        if identity is not None:
            self._identities[identity] = entry.seq
        return info

    def add_package(self, package: PackageInfo) -> None:
        """Record an installed package, replacing an earlier copy of the same version."""
        self._packages = [p for p in self._packages if p.key != package.key]
        self._packages.append(package)

    def find_resource_json(
        self, item: str, types: Sequence[str] = (), scope: Optional[str] = None
    ) -> Optional[FHIRJson]:
        """Return the best matching definition, or None."""
        entries = self._find(item, types, scope)
        return entries[0].definition if entries else None

    def find_resource_jsons(
        self, item: str, types: Sequence[str] = (), scope: Optional[str] = None
    ) -> List[FHIRJson]:
        """Return every matching definition, best match first."""
        return [entry.definition for entry in self._find(item, types, scope)]

    def find_resource_info(
        self, item: str, types: Sequence[str] = (), scope: Optional[str] = None
    ) -> Optional[ResourceInfo]:
        """Return the index record of the best matching definition, or None."""
        entries = self._find(item, types, scope)
        return entries[0].info if entries else None

    def find_resource_infos(
        self, item: str, types: Sequence[str] = (), scope: Optional[str] = None
    ) -> List[ResourceInfo]:
        """Return the index records of every matching definition."""
        return [entry.info for entry in self._find(item, types, scope)]

    def find_package_infos(self, name: str) -> List[PackageInfo]:
        """Return installed packages with the given name, in installation order."""
        return [p for p in self._packages if name == WILDCARD or p.name == name]

    def _find(
        self, item: str, types: Sequence[str], scope: Optional[str]
    ) -> List[_Entry]:
        ranked = []
        for entry in self._candidates(item):
            if scope is not None and scope not in (
                entry.info.scope,
                entry.info.package_name,
            ):
                continue
            rank = type_rank(entry.info, types)
            if rank is not None:
                ranked.append((rank, -entry.seq, entry))
        ranked.sort(key=lambda r: (r[0], r[1]))
        return [entry for _, _, entry in ranked]

    def _candidates(self, item: str) -> Iterable[_Entry]:
        if item == WILDCARD:
            return list(self._entries.values())
        seqs = self._keys.get(item)
        if seqs:
            return [self._entries[seq] for seq in seqs]
        # canonical|version
        url, sep, version = item.partition("|")
        if sep and url in self._keys:
            return [
                self._entries[seq]
                for seq in self._keys[url]
                if self._entries[seq].info.url == url
                and self._entries[seq].info.version == version
            ]
        return []

    def _remove(self, seq: int) -> None:
        entry = self._entries.pop(seq)
        for key in {entry.info.id, entry.info.name, entry.info.url}:
            if key and key in self._keys:
                self._keys[key].discard(seq)
                if not self._keys[key]:
                    del self._keys[key]

    @staticmethod
    def _identity(info: ResourceInfo) -> Optional[Tuple[Optional[str], str, str]]:
        key = info.url or info.id
        if not key or not info.resource_type:
            return None
        return (info.scope, info.resource_type, key)
