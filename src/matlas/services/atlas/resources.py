"""Atlas Admin API implementations of the resource service contracts."""

from typing import Dict, Any, List, Optional
from .client import AtlasClient, segment
from ..base import (
    AlertConfigSvc,
    AlertsSvc,
    ClusterSvc,
    DatabaseUserSvc,
    NetworkAccessSvc,
    NetworkContainerSvc,
    NetworkPeeringSvc,
    ProjectSvc,
    SearchSvc,
    VPCEndpointSvc,
)
from ...utils.context import Context
from ...utils.errors import AtlasValidationError, NotFoundError
from ...utils.logging import get_logger

logger = get_logger("services.atlas.resources")

SEARCH_ACCEPT = "application/vnd.atlas.2024-05-30+json"
PRIVATE_ENDPOINT_PROVIDERS = ("AWS", "AZURE", "GCP")


def _group(project_id: str) -> str:
    return f"/groups/{segment(project_id)}"


class _PagedService:
    """Shared list/list_page plumbing for paginated collections."""

    supports_list_all = False

    def __init__(self, client: AtlasClient):
        self.client = client

    def _collection(self, project_id: str) -> str:
        raise NotImplementedError

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(ctx, self._collection(project_id))

    def list_page(self, ctx: Context, project_id: str, page_num: int, items_per_page: int) -> List[Dict[str, Any]]:
        return self.client.get_page(ctx, self._collection(project_id), page_num, items_per_page)


class AtlasProjects(ProjectSvc):
    def __init__(self, client: AtlasClient):
        self.client = client

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        if not project_id:
            return self.client.get_all(ctx, "/groups")
        try:
            return [self.get(ctx, project_id, project_id)]
        except NotFoundError:
            return []

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, _group(resource_id))

    def get_by_name(self, ctx: Context, name: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.get(ctx, f"/groups/byName/{segment(name)}")
        except NotFoundError:
            return None

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, "/groups", payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = {k: v for k, v in payload.items() if k in ("name", "tags")}
        return self.client.patch(ctx, _group(resource_id), body)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, _group(resource_id))


class AtlasClusters(_PagedService, ClusterSvc):
    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/clusters"

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, self._collection(project_id), payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = {k: v for k, v in payload.items() if k != "name"}
        return self.client.patch(ctx, f"{self._collection(project_id)}/{segment(resource_id)}", body)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def get_status(self, ctx: Context, project_id: str, resource_id: str) -> str:
        return (self.get(ctx, project_id, resource_id) or {}).get("stateName", "UNKNOWN")


class AtlasDatabaseUsers(_PagedService, DatabaseUserSvc):
    """Users are addressed as '<authDatabase>/<username>'."""

    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/databaseUsers"

    def _path(self, project_id: str, resource_id: str) -> str:
        database, _, username = resource_id.partition("/")
        return f"{self._collection(project_id)}/{segment(database)}/{segment(username)}"

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, self._path(project_id, resource_id))

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, self._collection(project_id), payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.patch(ctx, self._path(project_id, resource_id), payload)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, self._path(project_id, resource_id))


class AtlasNetworkAccess(_PagedService, NetworkAccessSvc):
    """IP access list; entries are addressed by their IP, CIDR or security group."""

    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/accessList"

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.client.post(ctx, self._collection(project_id), [payload])
        entry = payload.get("awsSecurityGroup") or payload.get("cidrBlock") or payload.get("ipAddress")
        return self.get(ctx, project_id, entry)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        # Atlas upserts access list entries on POST
        return self.create(ctx, project_id, payload)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")


class AtlasNetworkContainers(_PagedService, NetworkContainerSvc):
    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/containers"

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(ctx, f"{self._collection(project_id)}/all")

    def list_page(self, ctx: Context, project_id: str, page_num: int, items_per_page: int) -> List[Dict[str, Any]]:
        return self.client.get_page(ctx, f"{self._collection(project_id)}/all", page_num, items_per_page)

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, self._collection(project_id), payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.patch(ctx, f"{self._collection(project_id)}/{segment(resource_id)}", payload)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")


class AtlasNetworkPeering(_PagedService, NetworkPeeringSvc):
    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/peers"

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, self._collection(project_id), payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.patch(ctx, f"{self._collection(project_id)}/{segment(resource_id)}", payload)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def get_status(self, ctx: Context, project_id: str, resource_id: str) -> str:
        peer = self.get(ctx, project_id, resource_id) or {}
        # AWS reports statusName; GCP and Azure report status
        return peer.get("statusName") or peer.get("status") or "UNKNOWN"


class AtlasVPCEndpoints(VPCEndpointSvc):
    """Private endpoint services; addressed as '<provider>/<id>'."""

    def __init__(self, client: AtlasClient):
        self.client = client

    def _base(self, project_id: str) -> str:
        return f"{_group(project_id)}/privateEndpoint"

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        services: List[Dict[str, Any]] = []
        for provider in PRIVATE_ENDPOINT_PROVIDERS:
            found = self.client.get(ctx, f"{self._base(project_id)}/{provider}/endpointService") or []
            for item in found:
                item.setdefault("cloudProvider", provider)
                services.append(item)
        return services

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        provider, _, service_id = resource_id.partition("/")
        item = self.client.get(ctx, f"{self._base(project_id)}/{segment(provider)}/endpointService/{segment(service_id)}")
        item.setdefault("cloudProvider", provider)
        return item

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        item = self.client.post(ctx, f"{self._base(project_id)}/endpointService", payload)
        item.setdefault("cloudProvider", payload.get("providerName"))
        return item

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        raise AtlasValidationError("Private endpoint services cannot be modified in place")

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        provider, _, service_id = resource_id.partition("/")
        self.client.delete(ctx, f"{self._base(project_id)}/{segment(provider)}/endpointService/{segment(service_id)}")


class AtlasSearchIndexes(SearchSvc):
    """Atlas Search indexes across every cluster; addressed as '<cluster>/<indexID>'."""

    def __init__(self, client: AtlasClient, clusters: AtlasClusters):
        self.client = client
        self.clusters = clusters

    def _base(self, project_id: str, cluster: str) -> str:
        return f"{_group(project_id)}/clusters/{segment(cluster)}/search/indexes"

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        indexes: List[Dict[str, Any]] = []
        for cluster in self.clusters.list(ctx, project_id):
            name = cluster.get("name")
            found = self.client.get(ctx, self._base(project_id, name), accept=SEARCH_ACCEPT) or []
            for index in found:
                index.setdefault("clusterName", name)
                indexes.append(index)
        return indexes

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        cluster, _, index_id = resource_id.partition("/")
        index = self.client.get(ctx, f"{self._base(project_id, cluster)}/{segment(index_id)}", accept=SEARCH_ACCEPT)
        index.setdefault("clusterName", cluster)
        return index

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(payload)
        cluster = body.pop("clusterName")
        index = self.client.post(ctx, self._base(project_id, cluster), body, accept=SEARCH_ACCEPT)
        index.setdefault("clusterName", cluster)
        return index

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        cluster, _, index_id = resource_id.partition("/")
        body = {"definition": payload.get("definition", {})}
        return self.client.patch(ctx, f"{self._base(project_id, cluster)}/{segment(index_id)}", body, accept=SEARCH_ACCEPT)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        cluster, _, index_id = resource_id.partition("/")
        self.client.delete(ctx, f"{self._base(project_id, cluster)}/{segment(index_id)}", accept=SEARCH_ACCEPT)


class AtlasAlertConfigs(_PagedService, AlertConfigSvc):
    def _collection(self, project_id: str) -> str:
        return f"{_group(project_id)}/alertConfigs"

    def get(self, ctx: Context, project_id: str, resource_id: str) -> Dict[str, Any]:
        return self.client.get(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")

    def create(self, ctx: Context, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.post(ctx, self._collection(project_id), payload)

    def update(self, ctx: Context, project_id: str, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.put(ctx, f"{self._collection(project_id)}/{segment(resource_id)}", payload)

    def delete(self, ctx: Context, project_id: str, resource_id: str) -> None:
        self.client.delete(ctx, f"{self._collection(project_id)}/{segment(resource_id)}")


class AtlasAlerts(AlertsSvc):
    def __init__(self, client: AtlasClient):
        self.client = client

    def list(self, ctx: Context, project_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(ctx, f"{_group(project_id)}/alerts", params={"status": "OPEN"})
