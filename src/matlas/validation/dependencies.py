"""Dependency layer: cross-resource checks over the dependency graph."""

import ipaddress
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional, Tuple
from ..contracts.issues import IssueSet
from ..contracts.state import ProjectState
from ..graph.dependency_graph import DependencyGraph
from ..kinds.base import parse_time
from ..kinds.catalog import ANY_DATABASE_ROLES, BUILTIN_ROLES, region_supported, size_available
from ..kinds.network_access import canonical_network
from ..kinds.registry import get_handler
from ..manifest.models import ANNOTATION_ALLOW_OVERLAP, ApplyDocument, ResourceKind

# Warnings `strict` mode turns into errors.
STRICT_CODES = ("unknown-database", "loose-role-scope")

EXPIRY_WARNING_WINDOW = timedelta(hours=24)

_SYSTEM_DATABASES = {"admin", "local", "config", "$external"}


def check_duplicates(document: ApplyDocument, issues: IssueSet) -> None:
    """Duplicate names per kind, and duplicate natural keys (e.g. username + authDatabase)."""
    by_name: Dict[Tuple[str, str], int] = defaultdict(int)
    by_key: Dict[Tuple[str, str], List[str]] = defaultdict(list)
    for resource in document.resources:
        by_name[(resource.kind, resource.metadata.name)] += 1
        try:
            key = get_handler(resource.kind).resource_key(resource)
        except (TypeError, ValueError, AttributeError, KeyError):
            continue
        by_key[(resource.kind, key)].append(resource.metadata.name)

    for (kind, name), count in sorted(by_name.items()):
        if count > 1:
            issues.error(
                "duplicate",
                f"{kind} '{name}' is declared {count} times",
                resource=f"{kind}:{name}",
                suggestion="Give each resource of a kind a unique metadata.name",
            )
    for (kind, key), names in sorted(by_key.items()):
        distinct = sorted(set(names))
        if len(distinct) > 1:
            issues.error(
                "duplicate",
                f"{kind} resources {', '.join(distinct)} all describe '{key}'",
                resource=f"{kind}:{distinct[0]}",
            )


def check_references(graph: DependencyGraph, issues: IssueSet, observed: Optional[ProjectState] = None) -> None:
    """Every required reference names a declared or already existing resource."""
    for node_id, ref in graph.missing:
        if observed is not None and observed.find(ref.kind, ref.key) is not None:
            continue
        if ref.required:
            issues.error(
                "reference-missing",
                f"{ref.field} references {ref.kind} '{ref.key}', which is not declared",
                resource=node_id,
                field=ref.field,
                suggestion=f"Add the {ref.kind} to the document or fix the reference",
            )
        else:
            issues.info(
                "reference-external",
                f"{ref.field} references {ref.kind} '{ref.key}', expected to exist already",
                resource=node_id,
                field=ref.field,
            )
    for node_id, entry in graph.unresolved:
        issues.error(
            "reference-missing",
            f"dependsOn entry '{entry}' does not match any resource in the document",
            resource=node_id,
            field="metadata.dependsOn",
        )


def check_regions(document: ApplyDocument, specs: Dict[str, Dict[str, Any]], issues: IssueSet) -> None:
    """Provider/region compatibility (error) and instance-size availability (warning)."""
    for resource in document.resources:
        spec = specs.get(resource.ref)
        if not spec:
            continue
        provider, region = spec.get("provider"), spec.get("region")
        if not provider or not region:
            continue
        if not region_supported(provider, region):
            issues.error(
                "provider-region",
                f"Region '{region}' is not available on {provider}",
                resource=resource.ref,
                field="region",
            )
            continue
        size = spec.get("instanceSize")
        if resource.kind == ResourceKind.CLUSTER.value and size and not size_available(provider, region, size):
            issues.warning(
                "instance-size",
                f"Instance size {size} may not be available in {provider}/{region}",
                resource=resource.ref,
                field="instanceSize",
            )


def check_cidr_overlap(document: ApplyDocument, specs: Dict[str, Dict[str, Any]], issues: IssueSet) -> None:
    """Overlapping networks among NetworkContainers or among NetworkAccess entries."""
    allow = str(document.metadata.annotations.get(ANNOTATION_ALLOW_OVERLAP, "")).strip().lower() == "true"
    groups = {
        ResourceKind.NETWORK_CONTAINER.value: ("cidrBlock",),
        ResourceKind.NETWORK_ACCESS.value: ("cidr", "ipAddress"),
    }
    for kind, fields in groups.items():
        networks = []
        for resource in document.resources_of(kind):
            spec = specs.get(resource.ref) or {}
            for field in fields:
                if spec.get(field):
                    canonical = canonical_network(spec[field])
                    if canonical:
                        networks.append((resource.ref, ipaddress.ip_network(canonical)))
                    break
        for i, (ref_a, net_a) in enumerate(networks):
            for ref_b, net_b in networks[i + 1:]:
                if net_a.version != net_b.version or not net_a.overlaps(net_b):
                    continue
                message = f"{net_a} overlaps {net_b} ({ref_b})"
                if allow:
                    issues.info("cidr-overlap", message, resource=ref_a)
                else:
                    issues.warning(
                        "cidr-overlap",
                        message,
                        resource=ref_a,
                        suggestion=f"Set the {ANNOTATION_ALLOW_OVERLAP} annotation to \"true\" if intended",
                    )


def check_expiry(document: ApplyDocument, specs: Dict[str, Dict[str, Any]], issues: IssueSet,
                 now: Optional[datetime] = None) -> None:
    """deleteAfter in the past is an error; within 24 hours a warning."""
    now = now or datetime.now(timezone.utc)
    for resource in document.resources:
        spec = specs.get(resource.ref) or {}
        if not spec.get("deleteAfter"):
            continue
        when = parse_time(spec["deleteAfter"])
        if when is None:
            issues.error("schema-type", f"deleteAfter '{spec['deleteAfter']}' is not a timestamp",
                         resource=resource.ref, field="deleteAfter")
            continue
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        if when <= now:
            issues.error("delete-after-past", f"deleteAfter {spec['deleteAfter']} is in the past",
                         resource=resource.ref, field="deleteAfter")
        elif when - now < EXPIRY_WARNING_WINDOW:
            issues.warning("delete-after-soon", f"deleteAfter {spec['deleteAfter']} is less than 24 hours away",
                           resource=resource.ref, field="deleteAfter")


def check_cycles(graph: DependencyGraph, issues: IssueSet) -> None:
    cycle = graph.find_cycle()
    if cycle:
        issues.error(
            "circular",
            f"Circular dependency: {' -> '.join(cycle)}",
            resource=cycle[0],
            path=cycle,
            suggestion="Remove one of the references to break the cycle",
        )


def check_role_scopes(document: ApplyDocument, specs: Dict[str, Dict[str, Any]], issues: IssueSet,
                      known_databases: Optional[Dict[str, List[str]]] = None) -> None:
    """
    Loose role scopes (any-database roles or unscoped users) and, when the
    databases of each cluster are known, roles naming unknown databases.
    """
    for resource in document.resources_of(ResourceKind.DATABASE_USER.value):
        spec = specs.get(resource.ref) or {}
        roles = [r for r in spec.get("roles") or [] if isinstance(r, dict)]
        broad = sorted({r.get("roleName") for r in roles if r.get("roleName") in ANY_DATABASE_ROLES})
        if broad:
            issues.warning("loose-role-scope", f"Role(s) {', '.join(broad)} grant access to every database",
                           resource=resource.ref, field="roles")
        if not spec.get("scopes"):
            issues.warning("loose-role-scope", "User is not scoped to any cluster and can access all of them",
                           resource=resource.ref, field="scopes")
        if known_databases is None:
            continue
        clusters = [s.get("name") for s in spec.get("scopes") or [] if s.get("type") == "CLUSTER"]
        databases = _databases_for(known_databases, clusters)
        for role in roles:
            if role.get("roleName") not in BUILTIN_ROLES:
                continue
            database = role.get("databaseName")
            if database and database not in _SYSTEM_DATABASES and database not in databases:
                issues.warning("unknown-database", f"Database '{database}' does not exist on the scoped cluster(s)",
                               resource=resource.ref, field="roles")

    if known_databases is None:
        return
    for resource in document.resources_of(ResourceKind.DATABASE_ROLE.value):
        spec = specs.get(resource.ref) or {}
        clusters = [spec["clusterName"]] if spec.get("clusterName") else []
        databases = _databases_for(known_databases, clusters)
        for privilege in spec.get("privileges") or []:
            database = ((privilege or {}).get("resource") or {}).get("database")
            if database and database not in _SYSTEM_DATABASES and database not in databases:
                issues.warning("unknown-database", f"Database '{database}' does not exist on the target cluster(s)",
                               resource=resource.ref, field="privileges")


def _databases_for(known_databases: Dict[str, List[str]], clusters: List[str]) -> set:
    names = clusters or list(known_databases)
    found = set()
    for cluster in names:
        found.update(known_databases.get(cluster, []))
    return found
