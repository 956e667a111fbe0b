"""Manifest loading: YAML files to typed ApplyDocument."""

from .models import (
    API_VERSIONS,
    ApplyDocument,
    Resource,
    ResourceKind,
    ResourceMetadata,
    KIND_RANK,
)
from .loader import load_manifests, load_manifest_text

__all__ = [
    "API_VERSIONS",
    "ApplyDocument",
    "Resource",
    "ResourceKind",
    "ResourceMetadata",
    "KIND_RANK",
    "load_manifests",
    "load_manifest_text",
]
