"""Registry of resource kind handlers."""

from typing import Dict, List
from .alert_config import AlertConfigKind
from .base import KindHandler
from .cluster import ClusterKind
from .database_role import DatabaseRoleKind
from .database_user import DatabaseUserKind
from .network_access import NetworkAccessKind
from .network_container import NetworkContainerKind
from .network_peering import NetworkPeeringKind
from .project import ProjectKind
from .search_index import SearchIndexKind
from .vpc_endpoint import VPCEndpointKind
from ..utils.errors import LoadError

SUPPORTED_KINDS: Dict[str, KindHandler] = {
    handler.kind: handler
    for handler in (
        ProjectKind(),
        ClusterKind(),
        NetworkContainerKind(),
        NetworkAccessKind(),
        NetworkPeeringKind(),
        VPCEndpointKind(),
        DatabaseRoleKind(),
        DatabaseUserKind(),
        SearchIndexKind(),
        AlertConfigKind(),
    )
}


def get_handler(kind: str) -> KindHandler:
    """
    Handler for a kind name.

    Raises:
        LoadError: If the kind is not supported
    """
    handler = SUPPORTED_KINDS.get(kind)
    if handler is None:
        raise LoadError(
            f"Unsupported kind: {kind}",
            suggestion=f"Supported kinds: {', '.join(SUPPORTED_KINDS)}",
        )
    return handler


def all_handlers() -> List[KindHandler]:
    """Handlers in dependency rank order."""
    return sorted(SUPPORTED_KINDS.values(), key=lambda h: h.rank)
