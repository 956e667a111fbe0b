"""Validate an apply document: schema layer then dependency layer."""

from datetime import datetime
from typing import Dict, List, Optional
from .dependencies import (
    STRICT_CODES,
    check_cidr_overlap,
    check_cycles,
    check_duplicates,
    check_expiry,
    check_references,
    check_regions,
    check_role_scopes,
)
from .schema import validate_schemas
from ..contracts.issues import IssueSet
from ..contracts.state import ProjectState
from ..graph.dependency_graph import DependencyGraph
from ..manifest.models import ApplyDocument
from ..utils.errors import ValidationFailedError
from ..utils.logging import get_logger

logger = get_logger("validation.validator")


def validate_document(
    document: ApplyDocument,
    strict: bool = False,
    allow_cycles: bool = False,
    observed: Optional[ProjectState] = None,
    known_databases: Optional[Dict[str, List[str]]] = None,
    now: Optional[datetime] = None,
) -> IssueSet:
    """
    Validate a document without side effects.

    Args:
        document: Document to validate
        strict: Promote unknown-database and loose-role-scope warnings to errors
        allow_cycles: Skip cycle detection
        observed: Current state; references to existing resources are accepted
        known_databases: Databases per cluster name, enabling unknown-database checks
        now: Reference time for deleteAfter checks

    Returns:
        IssueSet with errors, warnings and infos
    """
    issues = IssueSet()
    specs = validate_schemas(document.resources, issues)

    graph = DependencyGraph()
    graph.build_from_document(document)

    check_duplicates(document, issues)
    check_references(graph, issues, observed)
    check_regions(document, specs, issues)
    check_cidr_overlap(document, specs, issues)
    check_expiry(document, specs, issues, now)
    check_role_scopes(document, specs, issues, known_databases)
    if not allow_cycles:
        check_cycles(graph, issues)

    if strict:
        issues.promote(STRICT_CODES)

    logger.info(
        f"Validated {len(document.resources)} resource(s): "
        f"{len(issues.errors)} error(s), {len(issues.warnings)} warning(s)"
    )
    return issues


def ensure_valid(issues: IssueSet) -> None:
    """
    Raises:
        ValidationFailedError: If the issue set has errors
    """
    if issues.has_errors:
        first = issues.errors[0]
        raise ValidationFailedError(
            f"Validation failed with {len(issues.errors)} error(s); first: {first}",
            issues=issues,
        )
