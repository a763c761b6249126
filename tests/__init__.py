"""fhirfish test suite.

Unit tests run without network access or a real FHIR package cache.
"""
