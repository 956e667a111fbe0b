"""Manifest validation."""

from .schema import validate_resource_schema
from .validator import ensure_valid, validate_document

__all__ = ["ensure_valid", "validate_document", "validate_resource_schema"]
