"""R5 definitions that may be used when compiling against R4 or R4B.

A handful of R5 resources and data types are explicitly allowed in R4 and
R4B implementation guides. They are seeded into every primary definitions
store before any package is loaded; loading a package that carries the same
definitions supersedes these.
"""

from typing import Any, Dict, List, Optional

from fhirfish.fhirdefs.index import TYPE_CHARACTERISTICS_EXTENSION
from fhirfish.fhirdefs.types import FHIRJson

R5_VERSION = "5.0.0"
BASE_URL = "http://hl7.org/fhir/StructureDefinition"


def _definition(
    name: str,
    kind: str,
    base: str,
    description: str,
    elements: List[Dict[str, Any]],
    characteristics: Optional[List[str]] = None,
) -> FHIRJson:
    root = {
        "id": name,
        "path": name,
        "short": description,
        "definition": description,
        "min": 0,
        "max": "*",
    }
    snapshot = [root] + [
        {"id": f"{name}.{e['name']}", "path": f"{name}.{e['name']}", **e["element"]}
        for e in elements
    ]
    definition: FHIRJson = {
        "resourceType": "StructureDefinition",
        "id": name,
        "url": f"{BASE_URL}/{name}",
        "version": R5_VERSION,
        "name": name,
        "status": "active",
        "fhirVersion": R5_VERSION,
        "description": description,
        "kind": kind,
        "abstract": False,
        "type": name,
        "baseDefinition": f"{BASE_URL}/{base}",
        "derivation": "specialization",
        "snapshot": {"element": snapshot},
    }
    if characteristics:
        definition["extension"] = [
            {"url": TYPE_CHARACTERISTICS_EXTENSION, "valueCode": c}
            for c in characteristics
        ]
    return definition


def _element(code: str, min_: int = 0, max_: str = "1", **extra: Any) -> Dict[str, Any]:
    return {"min": min_, "max": max_, "type": [{"code": code, **extra}]}


def _canonical_resource(name: str, description: str) -> FHIRJson:
    return _definition(
        name,
        "resource",
        "DomainResource",
        description,
        [
            {"name": "url", "element": _element("uri")},
            {"name": "identifier", "element": _element("Identifier", max_="*")},
            {"name": "version", "element": _element("string")},
            {"name": "name", "element": _element("string")},
            {"name": "title", "element": _element("string")},
            {"name": "status", "element": _element("code", min_=1)},
            {"name": "description", "element": _element("markdown")},
        ],
    )


R5_DEFINITIONS_NEEDED_IN_R4: List[FHIRJson] = [
    _canonical_resource(
        "ActorDefinition",
        "Describes an actor - a human or an application that plays a role in data exchange",
    ),
    _canonical_resource(
        "Requirements",
        "A set of requirements - a list of features or behaviors of designed systems",
    ),
    _canonical_resource(
        "SubscriptionTopic",
        "Describes a stream of resource state changes or events and annotated with labels",
    ),
    _canonical_resource(
        "TestPlan",
        "A plan for executing testing on an artifact or specifications",
    ),
    _definition(
        "CodeableReference",
        "complex-type",
        "DataType",
        "Reference to a resource or a concept",
        [
            {"name": "concept", "element": _element("CodeableConcept")},
            {"name": "reference", "element": _element("Reference")},
        ],
        characteristics=["can-bind"],
    ),
    _definition(
        "RatioRange",
        "complex-type",
        "DataType",
        "Range of ratio values",
        [
            {"name": "lowNumerator", "element": _element("Quantity")},
            {"name": "highNumerator", "element": _element("Quantity")},
            {"name": "denominator", "element": _element("Quantity")},
        ],
    ),
]
