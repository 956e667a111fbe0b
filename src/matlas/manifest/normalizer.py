"""Turn raw YAML documents into typed resources."""

import re
from typing import Dict, Any, List, Optional, Tuple
from pydantic import ValidationError
from .models import (
    API_VERSIONS,
    DOCUMENT_KIND,
    ApplyDocument,
    Resource,
    ResourceKind,
    ResourceMetadata,
    sort_key,
)
from ..utils.errors import LoadError
from ..utils.logging import get_logger

logger = get_logger("manifest.normalizer")

_KINDS = {kind.value for kind in ResourceKind}

# Project short form: spec list field -> child kind
_PROJECT_CHILDREN = (
    ("clusters", ResourceKind.CLUSTER.value),
    ("databaseUsers", ResourceKind.DATABASE_USER.value),
    ("networkAccess", ResourceKind.NETWORK_ACCESS.value),
)

_NAME_SANITIZER = re.compile(r"[^a-zA-Z0-9._-]+")


def normalize_document(raw: Any, source: str) -> Tuple[ResourceMetadata, List[Resource]]:
    """
    Normalize one parsed YAML document.

    Args:
        raw: Parsed YAML document
        source: Origin used in error messages (file path and document index)

    Returns:
        (document metadata, resources in document order)

    Raises:
        LoadError: If the document is structurally invalid
    """
    if not isinstance(raw, dict):
        raise LoadError(f"{source}: document must be a mapping, got {type(raw).__name__}")

    api_version = _require_api_version(raw.get("apiVersion"), source)
    kind = raw.get("kind")
    if not kind:
        raise LoadError(f"{source}: missing required field 'kind'")

    metadata = _parse_metadata(raw.get("metadata"), source)

    if kind == DOCUMENT_KIND:
        children = raw.get("resources")
        if children is None:
            children = []
        if not isinstance(children, list):
            raise LoadError(f"{source}: 'resources' must be a list")
        resources = [
            _parse_resource(child, f"{source} resources[{i}]", api_version)
            for i, child in enumerate(children)
        ]
    elif kind == ResourceKind.PROJECT.value and _is_project_short_form(raw.get("spec")):
        resources = _expand_project(raw, metadata, api_version, source)
    else:
        resources = [_parse_resource(raw, source, api_version)]

    for resource in resources:
        if not resource.metadata.labels and metadata.labels:
            resource.metadata.labels = dict(metadata.labels)

    logger.debug(f"{source}: normalized {len(resources)} resource(s) from {kind} document")
    return metadata, resources


def merge_documents(parts: List[Tuple[ResourceMetadata, List[Resource]]], api_version: Optional[str] = None) -> ApplyDocument:
    """
    Merge normalized documents into a single ApplyDocument.

    The first document's metadata names the result; annotations and labels of
    later documents are added where the first does not set them.
    """
    if not parts:
        return ApplyDocument(metadata=ResourceMetadata(name="empty"), resources=[])

    metadata = parts[0][0].model_copy(deep=True)
    resources: List[Resource] = []
    for part_metadata, part_resources in parts:
        for key, value in part_metadata.annotations.items():
            metadata.annotations.setdefault(key, value)
        for key, value in part_metadata.labels.items():
            metadata.labels.setdefault(key, value)
        resources.extend(part_resources)

    resources.sort(key=sort_key)
    document = ApplyDocument(metadata=metadata, resources=resources)
    if api_version:
        document.api_version = api_version
    return document


def _require_api_version(value: Any, source: str) -> str:
    if not value:
        raise LoadError(f"{source}: missing required field 'apiVersion'")
    if value not in API_VERSIONS:
        raise LoadError(
            f"{source}: unrecognized apiVersion '{value}'",
            suggestion=f"Use one of: {', '.join(API_VERSIONS)}",
        )
    return value


def _parse_metadata(raw: Any, source: str) -> ResourceMetadata:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise LoadError(f"{source}: missing required field 'metadata.name'")
    try:
        return ResourceMetadata(**_stringify_maps(raw))
    except ValidationError as e:
        raise LoadError(f"{source}: invalid metadata: {e}")


def _stringify_maps(raw: Dict[str, Any]) -> Dict[str, Any]:
    """YAML turns `true`/`1` into non-strings; labels and annotations are strings."""
    data = dict(raw)
    data["name"] = str(data["name"])
    for field in ("labels", "annotations"):
        value = data.get(field)
        if value is None:
            data.pop(field, None)
        elif isinstance(value, dict):
            data[field] = {str(k): _scalar_str(v) for k, v in value.items()}
    return data


def _scalar_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def _parse_resource(raw: Any, source: str, default_api_version: str) -> Resource:
    if not isinstance(raw, dict):
        raise LoadError(f"{source}: resource must be a mapping")

    api_version = raw.get("apiVersion")
    api_version = _require_api_version(api_version, source) if api_version else default_api_version

    kind = raw.get("kind")
    if not kind:
        raise LoadError(f"{source}: missing required field 'kind'")
    if kind not in _KINDS:
        raise LoadError(
            f"{source}: unrecognized kind '{kind}'",
            suggestion=f"Supported kinds: {', '.join(k.value for k in ResourceKind)}",
        )

    metadata = _parse_metadata(raw.get("metadata"), source)
    spec = raw.get("spec")
    if spec is None:
        spec = {}
    if not isinstance(spec, dict):
        raise LoadError(f"{source}: 'spec' of {kind} '{metadata.name}' must be a mapping")

    return Resource(api_version=api_version, kind=kind, metadata=metadata, spec=spec)


def _is_project_short_form(spec: Any) -> bool:
    return isinstance(spec, dict) and any(field in spec for field, _ in _PROJECT_CHILDREN)


def _expand_project(raw: Dict[str, Any], metadata: ResourceMetadata, api_version: str, source: str) -> List[Resource]:
    """Expand a Project that lists its clusters, users and access entries inline."""
    spec = dict(raw["spec"])
    children: List[Resource] = []

    for field, kind in _PROJECT_CHILDREN:
        entries = spec.pop(field, None) or []
        if not isinstance(entries, list):
            raise LoadError(f"{source}: Project spec '{field}' must be a list")
        for i, entry in enumerate(entries):
            children.append(_project_child(entry, kind, f"{source} spec.{field}[{i}]", api_version))

    project = Resource(
        api_version=api_version,
        kind=ResourceKind.PROJECT.value,
        metadata=metadata.model_copy(deep=True),
        spec=spec,
    )
    logger.info(f"{source}: expanded Project '{metadata.name}' into {len(children)} child resource(s)")
    return [project] + children


def _project_child(entry: Any, kind: str, source: str, api_version: str) -> Resource:
    if not isinstance(entry, dict):
        raise LoadError(f"{source}: entry must be a mapping")
    entry = dict(entry)
    raw_metadata = entry.pop("metadata", None) or {}
    if not raw_metadata.get("name"):
        name = entry.pop("name", None) if kind == ResourceKind.CLUSTER.value else entry.get("name")
        if not name:
            name = _derive_name(kind, entry)
        if not name:
            raise LoadError(f"{source}: missing required field 'metadata.name'")
        raw_metadata = dict(raw_metadata, name=name)
    entry.pop("name", None)
    metadata = _parse_metadata(raw_metadata, source)
    return Resource(api_version=api_version, kind=kind, metadata=metadata, spec=entry)


def _derive_name(kind: str, entry: Dict[str, Any]) -> Optional[str]:
    if kind == ResourceKind.DATABASE_USER.value:
        value = entry.get("username")
    elif kind == ResourceKind.NETWORK_ACCESS.value:
        value = entry.get("ipAddress") or entry.get("cidr") or entry.get("awsSecurityGroup")
    else:
        value = None
    if not value:
        return None
    return _NAME_SANITIZER.sub("-", str(value)).strip("-")[:64] or None
