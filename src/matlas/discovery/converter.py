"""Convert a discovered snapshot into an apply document."""

from typing import Dict, Optional
from ..contracts.state import ProjectState
from ..manifest.models import (
    ApplyDocument,
    LABEL_MANAGED_BY,
    Resource,
    ResourceKind,
    ResourceMetadata,
    sort_key,
)
from ..utils.logging import get_logger

logger = get_logger("discovery.converter")


def state_to_document(state: ProjectState, name: Optional[str] = None) -> ApplyDocument:
    """
    Build an ApplyDocument describing exactly what was observed.

    Planning the result against the same snapshot yields only NoOps. Names
    are made unique per kind by suffixing '-2', '-3', ...
    """
    projects = state.of(ResourceKind.PROJECT.value)
    if name is None:
        if projects:
            name = projects[0].name
        elif state.project_id:
            name = f"project-{state.project_id}"
        else:
            name = "discovered"

    used: Dict[str, set] = {}
    resources = []
    for observed in state.all():
        taken = used.setdefault(observed.kind, set())
        resource_name = observed.name
        suffix = 2
        while resource_name in taken:
            resource_name = f"{observed.name}-{suffix}"
            suffix += 1
        taken.add(resource_name)
        resources.append(
            Resource(
                kind=observed.kind,
                metadata=ResourceMetadata(name=resource_name),
                spec=dict(observed.spec),
            )
        )

    if state.errors:
        logger.warning(f"Converted a partial snapshot; missing kinds: {', '.join(sorted(state.errors))}")

    return ApplyDocument(
        metadata=ResourceMetadata(name=name, labels={LABEL_MANAGED_BY: "matlas"}),
        resources=sorted(resources, key=sort_key),
    )
