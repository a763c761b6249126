"""FHIR definition type filters and the fishing interface."""

from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from fhirfish.fhirdefs.metadata import Metadata

# Scope tag for predefined resources found in the user's project
LOCAL_SCOPE = "LOCAL"

FHIRJson = Dict[str, Any]


class Type(str, Enum):
    """Kinds of artifact a lookup may be narrowed to."""

    PROFILE = "Profile"
    EXTENSION = "Extension"
    VALUE_SET = "ValueSet"
    CODE_SYSTEM = "CodeSystem"
    INSTANCE = "Instance"
    RESOURCE = "Resource"
    TYPE = "Type"
    LOGICAL = "Logical"
    IMPLEMENTATION_GUIDE = "ImplementationGuide"


@runtime_checkable
class Fishable(Protocol):
    """Anything that can resolve an identifier to a FHIR definition."""

    def fish_for_fhir(self, item: str, *types: Type) -> Optional[FHIRJson]:
        """Return the definition matching item, or None."""

    def fish_for_metadata(self, item: str, *types: Type) -> Optional[Metadata]:
        """Return the metadata of the definition matching item, or None."""
