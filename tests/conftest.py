"""Test configuration for fhirfish.

Provides StructureDefinition builders, a small primary FHIR core, an R5
supplemental store and an in-memory package loader, so no test touches the
network or the real FHIR package cache.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

import pytest

from fhirfish.config import get_settings
from fhirfish.fhirdefs import FHIRDefinitions, PackageInfo

BASE = "http://hl7.org/fhir/StructureDefinition"
R5_CORE = "hl7.fhir.r5.core#5.0.0"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "implied_extensions: mark test as exercising implied extensions"
    )


def build_sd(
    sd_id: str,
    kind: str = "resource",
    derivation: str = "specialization",
    sd_type: Optional[str] = None,
    elements: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a StructureDefinition JSON document."""
    definition = {
        "resourceType": "StructureDefinition",
        "id": sd_id,
        "url": f"{BASE}/{sd_id}",
        "name": sd_id,
        "status": "active",
        "kind": kind,
        "abstract": False,
        "type": sd_type or sd_id,
        "derivation": derivation,
    }
    if elements is not None:
        definition["snapshot"] = {"element": elements}
    definition.update(extra)
    return definition


def element(element_id: str, *codes: str, min_: int = 0, max_: str = "1", **extra: Any):
    """Build an ElementDefinition with one type per code."""
    ed: Dict[str, Any] = {"id": element_id, "path": element_id, "min": min_, "max": max_}
    if codes:
        ed["type"] = [{"code": code} for code in codes]
    ed.update(extra)
    return ed


class FakePackageLoader:
    """Package loader serving packages from memory.

    Each package maps to a list of definitions, or to an exception raised
    when it is requested. An optional delay lets loads finish out of order.
    """

    def __init__(
        self,
        packages: Dict[str, Union[List[Dict[str, Any]], Exception]],
        delays: Optional[Dict[str, float]] = None,
    ):
        self.packages = packages
        self.delays = delays or {}
        self.requested: List[str] = []

    async def merge_dependency(self, package_id, version, target):
        key = f"{package_id}#{version}"
        self.requested.append(key)
        await asyncio.sleep(self.delays.get(key, 0))
        content = self.packages.get(key)
        if content is None:
            raise ConnectionError(f"Unable to reach the package registry for {key}")
        if isinstance(content, Exception):
            raise content
        package = PackageInfo(name=package_id, version=version)
        target.add_package(package)
        for definition in content:
            target.add(definition, package=package)
        return target


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached; give every test a fresh read of the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_sd():
    """StructureDefinition factory."""
    return build_sd


@pytest.fixture
def make_element():
    """ElementDefinition factory."""
    return element


@pytest.fixture
def primary_core():
    """A handful of R4 core definitions."""
    return [
        build_sd("Extension", kind="complex-type", fhirVersion="4.0.1"),
        build_sd("CodeableConcept", kind="complex-type"),
        build_sd("Reference", kind="complex-type"),
        build_sd("boolean", kind="primitive-type"),
        build_sd("markdown", kind="primitive-type"),
        build_sd("Patient"),
    ]


@pytest.fixture
def example_patient():
    """A Patient example as IGs ship it, with HumanName and numeric content."""
    return {
        "resourceType": "Patient",
        "id": "example-patient",
        "meta": {"profile": ["http://example.org/StructureDefinition/my-patient"]},
        "identifier": [{"system": "http://example.org/mrn", "value": "12345"}],
        "active": True,
        "name": [{"use": "official", "family": "Chalmers", "given": ["Peter", "James"]}],
        "gender": "male",
        "birthDate": "1974-12-25",
        "multipleBirthInteger": 2,
        "address": [{"line": ["534 Erewhon St"], "city": "PleasantVille"}],
    }


@pytest.fixture
def r5_medication_request():
    """The R5 MedicationRequest elements used to build implied extensions."""
    return build_sd(
        "MedicationRequest",
        fhirVersion="5.0.0",
        elements=[
            element("MedicationRequest", min_=0, max_="*"),
            element("MedicationRequest.id", "http://hl7.org/fhirpath/System.String"),
            element(
                "MedicationRequest.statusReason",
                "CodeableConcept",
                short="Reason for current status",
                definition="Captures the reason for the current state of the MedicationRequest.",
                binding={
                    "strength": "example",
                    "valueSet": "http://hl7.org/fhir/ValueSet/medicationrequest-status-reason",
                },
            ),
            element(
                "MedicationRequest.renderedDosageInstruction",
                "markdown",
                short="Full representation of the dosage instructions",
            ),
            {
                "id": "MedicationRequest.informationSource",
                "path": "MedicationRequest.informationSource",
                "min": 0,
                "max": "*",
                "short": "The person or organization who provided the information",
                "type": [
                    {
                        "code": "Reference",
                        "targetProfile": [f"{BASE}/Patient", f"{BASE}/Practitioner"],
                    }
                ],
            },
            element(
                "MedicationRequest.substitution",
                "BackboneElement",
                short="Any restrictions on medication substitution",
            ),
            element("MedicationRequest.substitution.id", "http://hl7.org/fhirpath/System.String"),
            element("MedicationRequest.substitution.extension", "Extension", max_="*"),
            element(
                "MedicationRequest.substitution.allowed[x]",
                "boolean",
                "CodeableConcept",
                min_=1,
                short="Whether substitution is allowed or not",
            ),
            element(
                "MedicationRequest.substitution.reason",
                "CodeableConcept",
                short="Why should (not) substitution be made",
            ),
            element("MedicationRequest.dosageCount", "integer64"),
        ],
    )


@pytest.fixture
def r5_store(r5_medication_request):
    """Supplemental R5 definitions."""
    store = FHIRDefinitions(is_supplemental_fhir_definitions=True)
    store.add(r5_medication_request)
    store.add(build_sd("CodeableConcept", kind="complex-type"))
    return store


@pytest.fixture
def defs(primary_core):
    """Primary definitions loaded with the R4 core fixtures."""
    definitions = FHIRDefinitions()
    package = PackageInfo(name="hl7.fhir.r4.core", version="4.0.1")
    definitions.add_package(package)
    for definition in primary_core:
        definitions.add(definition, package=package)
    return definitions


@pytest.fixture
def defs_with_r5(defs, r5_store):
    """Primary definitions with the R5 supplemental store registered."""
    defs.add_supplemental_fhir_definitions(R5_CORE, r5_store)
    return defs


@pytest.fixture
def fake_loader():
    """Factory for in-memory package loaders."""
    return FakePackageLoader

