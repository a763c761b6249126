"""Implied extensions for cross-version FHIR elements.

FHIR defines an extension for every element of every published version,
identified by a canonical of the form::

    http://hl7.org/fhir/5.0/StructureDefinition/extension-MedicationRequest.statusReason

These extensions are not distributed in any package. When one is requested
it is synthesized from the element's definition in a supplemental package of
the target version (see http://hl7.org/fhir/versions.html#extensions).
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from fhirclient.models.fhirabstractbase import FHIRValidationError
from fhirclient.models.structuredefinition import StructureDefinition

from fhirfish.fhirdefs.types import FHIRJson, Type
from fhirfish.utils.logging import get_logger

if TYPE_CHECKING:
    from fhirfish.fhirdefs.definitions import FHIRDefinitions

logger = get_logger(__name__)

IMPLIED_EXTENSION_REGEX = re.compile(
    r"^http://hl7\.org/fhir/(\d+\.\d+)/StructureDefinition/extension-(([^./]+)\.[^/]+)$"
)

# FHIR version in the canonical -> (release label, core package)
SUPPORTED_VERSIONS: Dict[str, Tuple[str, str]] = {
    "1.0": ("R2", "hl7.fhir.r2.core#1.0.2"),
    "3.0": ("R3", "hl7.fhir.r3.core#3.0.2"),
    "4.0": ("R4", "hl7.fhir.r4.core#4.0.1"),
    "4.3": ("R4B", "hl7.fhir.r4b.core#4.3.0"),
    "5.0": ("R5", "hl7.fhir.r5.core#5.0.0"),
}

EXTENSION_BASE_URL = "http://hl7.org/fhir/StructureDefinition/Extension"
RESOURCE_BASE_URL = "http://hl7.org/fhir/StructureDefinition/Resource"
BACKBONE_TYPES = {"BackboneElement", "Element"}
SKIPPED_CHILDREN = {"id", "extension", "modifierExtension"}


@dataclass(frozen=True)
class ImpliedExtensionRequest:
    """A parsed implied extension canonical."""

    url: str
    version: str
    release: str
    fhir_package: str
    element_id: str
    type_name: str

    @property
    def package_version(self) -> str:
        """Version of the supplemental core package, e.g. 5.0.0."""
        return self.fhir_package.partition("#")[2]


def is_implied_extension_url(item: str) -> bool:
    """Return True if item has the shape of an implied extension canonical."""
    return IMPLIED_EXTENSION_REGEX.match(item) is not None


def parse_implied_extension(url: str) -> Optional[ImpliedExtensionRequest]:
    """Parse an implied extension canonical.

    Returns None if the URL does not follow the convention or names a FHIR
    version with no published core package.
    """
    match = IMPLIED_EXTENSION_REGEX.match(url)
    if match is None:
        return None
    version, element_id, type_name = match.groups()
    if version not in SUPPORTED_VERSIONS:
        return None
    release, fhir_package = SUPPORTED_VERSIONS[version]
    return ImpliedExtensionRequest(
        url=url,
        version=version,
        release=release,
        fhir_package=fhir_package,
        element_id=element_id,
        type_name=type_name,
    )


def materialize_implied_extension(
    url: str, defs: "FHIRDefinitions"
) -> Optional[FHIRJson]:
    """Synthesize the Extension StructureDefinition an implied extension URL names.

    Args:
        url: The implied extension canonical
        defs: Primary definitions, used to look up the supplemental package
            and to check which types survive in the primary FHIR version

    Returns:
        The StructureDefinition JSON, or None if it cannot be built
    """
    request = parse_implied_extension(url)
    if request is None:
        return None

    supplemental = defs.get_supplemental_fhir_definitions(request.fhir_package)
    if supplemental is None:
        logger.error(
            "implied_extension_package_missing",
            url=url,
            fhir_package=request.fhir_package,
        )
        return None

    sd = supplemental.fish_for_fhir(request.type_name, Type.RESOURCE, Type.TYPE)
    if sd is None:
        logger.error(
            "implied_extension_unknown_type",
            url=url,
            type_name=request.type_name,
            fhir_package=request.fhir_package,
        )
        return None

    elements = _element_list(sd)
    ed = _find_element(elements, request.element_id)
    if ed is None:
        logger.error(
            "implied_extension_unknown_element",
            url=url,
            element_id=request.element_id,
            fhir_package=request.fhir_package,
        )
        return None

    builder = _ExtensionBuilder(request, elements, defs)
    extension_elements = builder.build(ed)
    if extension_elements is None:
        return None

    extension = _extension_definition(request, ed, extension_elements, defs)
    try:
        return StructureDefinition(extension).as_json()
    except FHIRValidationError as e:
        logger.error("implied_extension_invalid", url=url, error=str(e))
        return None


def _element_list(sd: FHIRJson) -> List[Dict[str, Any]]:
    for view in ("snapshot", "differential"):
        elements = (sd.get(view) or {}).get("element")
        if elements:
            return elements
    return []


def _find_element(
    elements: List[Dict[str, Any]], element_id: str
) -> Optional[Dict[str, Any]]:
    return next((e for e in elements if e.get("id") == element_id), None)


def _content_reference_id(ed: Dict[str, Any]) -> Optional[str]:
    # R4 uses "#Questionnaire.item", R5 uses "<canonical>#Questionnaire.item"
    reference = ed.get("contentReference")
    if not reference or "#" not in reference:
        return None
    return reference.split("#", 1)[1]


class _ExtensionBuilder:
    """Turns a target-version element into extension element definitions."""

    def __init__(
        self,
        request: ImpliedExtensionRequest,
        elements: List[Dict[str, Any]],
        defs: "FHIRDefinitions",
    ):
        self.request = request
        self.elements = elements
        self.defs = defs

    def build(self, ed: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        """Build the full element list rooted at ``Extension``."""
        referenced = _content_reference_id(ed)
        if referenced is not None:
            target = _find_element(self.elements, referenced)
            if target is None:
                logger.error(
                    "implied_extension_unknown_element",
                    url=self.request.url,
                    element_id=referenced,
                    fhir_package=self.request.fhir_package,
                )
                return None
            # Keep the referencing element's cardinality, take the rest from the target
            ed = {**target, **{k: ed[k] for k in ("min", "max") if k in ed}}

        root = {
            "id": "Extension",
            "path": "Extension",
            "short": ed.get("short") or f"{self.request.release}: {ed['id']}",
            "definition": ed.get("definition") or ed.get("short") or ed["id"],
            "min": 0,
            "max": ed.get("max") or "*",
        }
        if ed.get("comment"):
            root["comment"] = ed["comment"]
        if ed.get("requirements"):
            root["requirements"] = ed["requirements"]
        if ed.get("isModifier"):
            root["isModifier"] = True
            if ed.get("isModifierReason"):
                root["isModifierReason"] = ed["isModifierReason"]

        body = self._body(ed, "Extension", "Extension", self.request.url)
        if body is None:
            return None
        return [root] + body

    def _body(
        self,
        ed: Dict[str, Any],
        element_id: str,
        path: str,
        url_value: str,
    ) -> Optional[List[Dict[str, Any]]]:
        """Elements below an extension (or sub-extension) element."""
        children = self._children(ed)
        elements: List[Dict[str, Any]] = []

        if children:
            elements.append(
                {
                    "id": f"{element_id}.extension",
                    "path": f"{path}.extension",
                    "slicing": {
                        "discriminator": [{"type": "value", "path": "url"}],
                        "rules": "open",
                    },
                }
            )
            for child in children:
                slice_elements = self._slice(child, element_id, path)
                if slice_elements is None:
                    return None
                elements.extend(slice_elements)
            elements.append(self._url(element_id, path, url_value))
            elements.append(
                {"id": f"{element_id}.value[x]", "path": f"{path}.value[x]", "max": "0"}
            )
            return elements

        types = self._value_types(ed)
        if not types:
            logger.error(
                "implied_extension_no_types",
                url=self.request.url,
                element_id=ed.get("id"),
            )
            return None
        elements.append(
            {"id": f"{element_id}.extension", "path": f"{path}.extension", "max": "0"}
        )
        elements.append(self._url(element_id, path, url_value))
        value = {
            "id": f"{element_id}.value[x]",
            "path": f"{path}.value[x]",
            "min": 1,
            "type": types,
        }
        binding = self._binding(ed)
        if binding:
            value["binding"] = binding
        elements.append(value)
        return elements

    def _slice(
        self, child: Dict[str, Any], parent_id: str, parent_path: str
    ) -> Optional[List[Dict[str, Any]]]:
        slice_name = child["id"].rsplit(".", 1)[-1].replace("[x]", "")
        element_id = f"{parent_id}.extension:{slice_name}"
        path = f"{parent_path}.extension"
        head = {
            "id": element_id,
            "path": path,
            "sliceName": slice_name,
            "short": child.get("short") or slice_name,
            "definition": child.get("definition") or child.get("short") or slice_name,
            "min": child.get("min", 0),
            "max": child.get("max") or "*",
        }

        referenced = _content_reference_id(child)
        if referenced is not None:
            # Recursive structures point at the implied extension of the referenced element
            head["type"] = [
                {
                    "code": "Extension",
                    "profile": [
                        f"http://hl7.org/fhir/{self.request.version}"
                        f"/StructureDefinition/extension-{referenced}"
                    ],
                }
            ]
            return [head]

        head["type"] = [{"code": "Extension"}]
        body = self._body(child, element_id, path, slice_name)
        if body is None:
            return None
        return [head] + body

    @staticmethod
    def _url(element_id: str, path: str, url_value: str) -> Dict[str, Any]:
        return {"id": f"{element_id}.url", "path": f"{path}.url", "fixedUri": url_value}

    def _children(self, ed: Dict[str, Any]) -> List[Dict[str, Any]]:
        codes = {t.get("code") for t in ed.get("type") or []}
        if not codes & BACKBONE_TYPES:
            return []
        prefix = f"{ed['id']}."
        return [
            e
            for e in self.elements
            if e.get("id", "").startswith(prefix)
            and "." not in e["id"][len(prefix):]
            and ":" not in e["id"][len(prefix):]
            and e["id"][len(prefix):] not in SKIPPED_CHILDREN
            and e.get("max") != "0"
        ]

    def _value_types(self, ed: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Element types that exist in the primary FHIR version."""
        types = []
        for element_type in ed.get("type") or []:
            code = element_type.get("code")
            if not code or self.defs.fish_for_fhir(code, Type.TYPE, Type.RESOURCE) is None:
                continue
            converted: Dict[str, Any] = {"code": code}
            profiles = self._known(element_type.get("profile"))
            if profiles:
                converted["profile"] = profiles
            if element_type.get("targetProfile"):
                # Targets unknown in this version widen to any resource
                converted["targetProfile"] = self._known(
                    element_type["targetProfile"]
                ) or [RESOURCE_BASE_URL]
            types.append(converted)
        return types

    def _known(self, canonicals: Optional[List[str]]) -> List[str]:
        return [
            canonical
            for canonical in canonicals or []
            if self.defs.fish_for_metadata(canonical) is not None
        ]

    def _binding(self, ed: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        binding = ed.get("binding") or {}
        value_set = binding.get("valueSet")
        if not binding.get("strength") or not value_set:
            return None
        if self.defs.fish_for_metadata(value_set, Type.VALUE_SET) is None:
            return None
        converted = {"strength": binding["strength"], "valueSet": value_set}
        if binding.get("description"):
            converted["description"] = binding["description"]
        return converted


def _extension_definition(
    request: ImpliedExtensionRequest,
    ed: Dict[str, Any],
    elements: List[Dict[str, Any]],
    defs: "FHIRDefinitions",
) -> FHIRJson:
    name_suffix = re.sub(r"[^A-Za-z0-9]+", "_", request.element_id).strip("_")
    extension: FHIRJson = {
        "resourceType": "StructureDefinition",
        "id": f"extension-{request.element_id}",
        "url": request.url,
        "version": request.package_version,
        "name": f"Extension_{request.release}_{name_suffix}",
        "title": f"Implied extension for {request.release} {request.element_id}",
        "status": "active",
        "description": (
            f"Implied extension for {request.element_id} from FHIR {request.release}. "
            f"{ed.get('definition') or ''}"
        ).strip(),
        "kind": "complex-type",
        "abstract": False,
        "context": [{"type": "element", "expression": "Element"}],
        "type": "Extension",
        "baseDefinition": EXTENSION_BASE_URL,
        "derivation": "constraint",
        "snapshot": {"element": elements},
        "differential": {"element": [dict(e) for e in elements]},
    }
    base = defs.fish_for_fhir("Extension", Type.TYPE)
    if base and base.get("fhirVersion"):
        extension["fhirVersion"] = base["fhirVersion"]
    return extension
