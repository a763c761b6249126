"""Utility helpers for fhirfish."""
