"""Core building blocks shared across fhirfish."""
