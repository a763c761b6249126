"""Admission policy for supplemental FHIR definitions.

A supplemental store holds definitions from a FHIR version other than the
one being compiled against. Only the resources and data types are needed to
adapt elements across versions, so profiles, extensions, logical models and
every non-StructureDefinition resource are left out.
"""

from fhirfish.fhirdefs.types import FHIRJson

SUPPLEMENTAL_TYPE_KINDS = frozenset({"primitive-type", "complex-type", "datatype"})


def is_supplemental_definition(definition: FHIRJson) -> bool:
    """Return True if the definition may be admitted into a supplemental store."""
    if definition.get("resourceType") != "StructureDefinition":
        return False
    kind = definition.get("kind")
    if not isinstance(kind, str):
        return False
    if kind in SUPPLEMENTAL_TYPE_KINDS:
        return True
    return kind == "resource" and definition.get("derivation") != "constraint"
