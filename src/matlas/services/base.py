"""Narrow service contracts consumed by discovery, dry-run and execution."""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from ..utils.context import Context


class ResourceService(ABC):
    """
    Project-scoped CRUD over one Atlas resource type.

    Payloads are Atlas API documents (dicts). Implementations must be safe
    for concurrent calls and raise the ExecutionError subclasses from
    matlas.utils.errors so callers can classify failures.
    """

    # When False, discovery pages through list_page() instead of list().
    supports_list_all: bool = True

    @abstractmethod
    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        """Return every resource of this type in the project."""
        pass

    def list_page(self, ctx: Context, project_id: str, page_num: int, items_per_page: int) -> List[Dict[str, Any]]:
        """Return one 1-based page of results."""
        items = self.list(ctx, project_id)
        start = (page_num - 1) * items_per_page
        return items[start:start + items_per_page]

    @abstractmethod
    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        """Raises NotFoundError when absent."""
        pass

    @abstractmethod
    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        pass


class AsyncResourceService(ResourceService):
    """Resource whose create completes asynchronously on the Atlas side."""

    @abstractmethod
    def get_status(self, ctx: Context, project_id: str, resource_id: str) -> str:
        """Provisioning state as reported by Atlas (e.g. IDLE, CREATING, AVAILABLE, FAILED)."""
        pass


class ProjectSvc(ResourceService):
    @abstractmethod
    def get_by_name(self, ctx: Context, name: str) -> Optional[Dict[str, Any]]:
        """Look up a project by name; None when it does not exist."""
        pass


class ClusterSvc(AsyncResourceService):
    pass


class DatabaseUserSvc(ResourceService):
    pass


class NetworkAccessSvc(ResourceService):
    pass


class NetworkContainerSvc(ResourceService):
    pass


class NetworkPeeringSvc(AsyncResourceService):
    pass


class VPCEndpointSvc(ResourceService):
    pass


class SearchSvc(ResourceService):
    pass


class AlertConfigSvc(ResourceService):
    pass


class AlertsSvc(ABC):
    """Read-only access to open alerts."""

    @abstractmethod
    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        pass


class MongoAdminSvc(ABC):
    """MongoDB-level administration reached through a connection string."""

    @abstractmethod
    def list_roles(self, ctx: Context, connection_string: str, database: Optional[str] = None) -> List[Dict[str, Any]]:
        """Custom (non built-in) roles as rolesInfo documents."""
        pass

    @abstractmethod
    def create_role(self, ctx: Context, connection_string: str, database: str, role: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def update_role(self, ctx: Context, connection_string: str, database: str, role: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def drop_role(self, ctx: Context, connection_string: str, database: str, role_name: str) -> None:
        pass

    @abstractmethod
    def list_databases(self, ctx: Context, connection_string: str) -> List[str]:
        pass

    @abstractmethod
    def list_collections(self, ctx: Context, connection_string: str, database: str) -> List[str]:
        pass
