"""Schema layer: per-kind property schemas and naming rules."""

import re
from typing import Any, Dict, List, Optional
from ..contracts.issues import IssueSet
from ..kinds.base import KindHandler
from ..kinds.registry import get_handler
from ..kinds.schema import PropertySchema
from ..manifest.models import Resource, ResourceKind
from ..utils.logging import get_logger

logger = get_logger("validation.schema")

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]{0,63}$")
CLUSTER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,63}$")

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
    "any": lambda v: True,
}


def validate_name(resource: Resource, issues: IssueSet) -> None:
    """Check metadata.name against the kind's naming rule."""
    name = resource.metadata.name
    if not NAME_PATTERN.match(name):
        issues.error(
            "invalid-name",
            f"Name '{name}' must start with a letter or digit and contain only letters, digits, '.', '_' or '-' (max 64)",
            resource=resource.ref,
            field="metadata.name",
        )
        return
    if resource.kind == ResourceKind.CLUSTER.value and not CLUSTER_NAME_PATTERN.match(name):
        issues.error(
            "invalid-name",
            f"Cluster name '{name}' may only contain letters, digits and '-'",
            resource=resource.ref,
            field="metadata.name",
            suggestion="Replace '.' and '_' with '-'",
        )


def validate_resource_schema(resource: Resource, issues: IssueSet) -> Optional[Dict[str, Any]]:
    """
    Validate one resource's spec against its kind schema.

    Args:
        resource: Resource to validate
        issues: Issue set receiving findings

    Returns:
        The normalized spec, or None when the spec could not be normalized
    """
    handler: KindHandler = get_handler(resource.kind)
    validate_name(resource, issues)
    try:
        spec = handler.normalize(resource.spec)
    except (TypeError, ValueError, AttributeError, KeyError) as e:
        issues.error("invalid-spec", f"Spec cannot be interpreted: {e}", resource=resource.ref)
        return None

    schema = handler.schema
    known = set(schema.properties) | set(handler.ignored_fields) | set(handler.field_aliases)
    for field in sorted(spec):
        if field not in known:
            issues.warning(
                "unknown-field",
                f"Unknown property '{field}' is ignored",
                resource=resource.ref,
                field=field,
            )
    _validate_object(schema, spec, "", resource.ref, issues, top_level=True)
    return spec


def validate_value(schema: PropertySchema, value: Any, path: str, ref: str, issues: IssueSet) -> None:
    """Recursively validate `value` against `schema`."""
    check = _TYPE_CHECKS.get(schema.type, _TYPE_CHECKS["any"])
    if not check(value):
        issues.error(
            "schema-type",
            f"Expected {schema.type}, got {type(value).__name__}",
            resource=ref,
            field=path,
        )
        return

    if schema.enum is not None:
        allowed = schema.enum
        candidate = value
        if schema.case_insensitive and isinstance(value, str):
            allowed = [str(a).upper() for a in allowed]
            candidate = value.upper()
        if candidate not in allowed:
            issues.error(
                "enum",
                f"Value '{value}' is not one of: {', '.join(str(a) for a in schema.enum)}",
                resource=ref,
                field=path,
            )

    if isinstance(value, (str, list)):
        if schema.min_length is not None and len(value) < schema.min_length:
            issues.error("length", f"Length {len(value)} is below minimum {schema.min_length}", resource=ref, field=path)
        if schema.max_length is not None and len(value) > schema.max_length:
            issues.error("length", f"Length {len(value)} exceeds maximum {schema.max_length}", resource=ref, field=path)

    if schema.type in ("integer", "number"):
        if schema.minimum is not None and value < schema.minimum:
            issues.error("range", f"Value {value} is below minimum {schema.minimum:g}", resource=ref, field=path)
        if schema.maximum is not None and value > schema.maximum:
            issues.error("range", f"Value {value} exceeds maximum {schema.maximum:g}", resource=ref, field=path)

    if schema.pattern and isinstance(value, str) and not re.search(schema.pattern, value):
        issues.error("pattern", f"Value '{value}' does not match {schema.pattern}", resource=ref, field=path)

    if schema.type == "array" and schema.items is not None:
        for index, item in enumerate(value):
            validate_value(schema.items, item, f"{path}[{index}]", ref, issues)

    if schema.type == "object":
        _validate_object(schema, value, path, ref, issues)


def _validate_object(schema: PropertySchema, value: Dict[str, Any], path: str, ref: str, issues: IssueSet,
                     top_level: bool = False) -> None:
    for field in schema.required:
        if value.get(field) in (None, "", [], {}):
            issues.error("required", f"Missing required property '{field}'", resource=ref, field=_join(path, field))

    for group in schema.one_of_required:
        present = [f for f in group if value.get(f) not in (None, "")]
        if len(present) != 1:
            issues.error(
                "one-of",
                f"Exactly one of {', '.join(group)} must be set (found {len(present)})",
                resource=ref,
                field=path or None,
            )

    for field, child in value.items():
        child_schema = schema.properties.get(field)
        if child_schema is None:
            if not top_level and not schema.additional_properties and schema.properties:
                issues.warning("unknown-field", f"Unknown property '{field}'", resource=ref, field=_join(path, field))
            continue
        validate_value(child_schema, child, _join(path, field), ref, issues)


def _join(path: str, field: str) -> str:
    return f"{path}.{field}" if path else field


def validate_schemas(resources: List[Resource], issues: IssueSet) -> Dict[str, Dict[str, Any]]:
    """Validate every resource; returns normalized specs by 'Kind:name'."""
    specs: Dict[str, Dict[str, Any]] = {}
    for resource in resources:
        spec = validate_resource_schema(resource, issues)
        if spec is not None:
            specs.setdefault(resource.ref, spec)
    logger.debug(f"Schema validation checked {len(resources)} resource(s)")
    return specs
