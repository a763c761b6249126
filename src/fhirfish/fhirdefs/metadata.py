"""Metadata projection of indexed FHIR definitions.

``ResourceInfo`` is the record the definition index keeps for every admitted
resource. ``Metadata`` is the compact view handed to callers that only need
to filter or display definitions.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

CAN_BE_TARGET = "can-be-target"
CAN_BIND = "can-bind"


class ResourceInfo(BaseModel):
    """Indexed summary of a single admitted resource."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    resource_type: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    version: Optional[str] = None
    sd_kind: Optional[str] = None
    sd_derivation: Optional[str] = None
    sd_type: Optional[str] = None
    sd_base_definition: Optional[str] = None
    sd_abstract: Optional[bool] = None
    sd_impose_profiles: Optional[List[str]] = None
    sd_characteristics: Optional[List[str]] = None
    sd_flavor: Optional[str] = None
    package_name: Optional[str] = None
    package_version: Optional[str] = None
    scope: Optional[str] = None
    resource_path: Optional[str] = None


class Metadata(BaseModel):
    """Fixed-shape summary of a definition."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    id: Optional[str] = None
    name: Optional[str] = None
    sd_type: Optional[str] = None
    url: Optional[str] = None
    parent: Optional[str] = None
    impose_profiles: Optional[List[str]] = None
    abstract: Optional[bool] = None
    version: Optional[str] = None
    resource_type: Optional[str] = None
    can_be_target: bool = False
    can_bind: bool = False
    resource_path: Optional[str] = None


def project_metadata(info: ResourceInfo) -> Metadata:
    """Project an indexed resource record onto the Metadata shape."""
    characteristics = info.sd_characteristics or []
    return Metadata(
        id=info.id,
        name=info.name,
        sd_type=info.sd_type,
        url=info.url,
        parent=info.sd_base_definition,
        impose_profiles=info.sd_impose_profiles,
        abstract=info.sd_abstract,
        version=info.version,
        resource_type=info.resource_type,
        can_be_target=CAN_BE_TARGET in characteristics,
        can_bind=CAN_BIND in characteristics,
        resource_path=info.resource_path,
    )


class PackageInfo(BaseModel):
    """An installed FHIR package."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    package_json: Optional[Dict[str, Any]] = None
    package_path: Optional[str] = None

    @property
    def key(self) -> str:
        """Package key in the form id#version."""
        return f"{self.name}#{self.version}"
