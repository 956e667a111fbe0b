"""Atlas Admin API adapters."""

from typing import Optional
from .client import AtlasClient, classify_response
from .resources import (
    AtlasAlertConfigs,
    AtlasAlerts,
    AtlasClusters,
    AtlasDatabaseUsers,
    AtlasNetworkAccess,
    AtlasNetworkContainers,
    AtlasNetworkPeering,
    AtlasProjects,
    AtlasSearchIndexes,
    AtlasVPCEndpoints,
)
from ..container import Services
from ..mongo import MongoClientCache
from ...config.settings import Credentials, EngineSettings


def build_atlas_services(credentials: Credentials, settings: Optional[EngineSettings] = None) -> Services:
    """Wire a Services bundle that talks to the Atlas Admin API and MongoDB."""
    settings = settings or EngineSettings()
    client = AtlasClient(
        credentials.public_key,
        credentials.private_key,
        base_url=credentials.base_url,
        call_timeout=settings.service_call_timeout,
        pool_size=max(settings.discovery_concurrency, settings.max_concurrent_operations) * 2,
    )
    clusters = AtlasClusters(client)
    return Services(
        projects=AtlasProjects(client),
        clusters=clusters,
        database_users=AtlasDatabaseUsers(client),
        network_access=AtlasNetworkAccess(client),
        network_containers=AtlasNetworkContainers(client),
        network_peering=AtlasNetworkPeering(client),
        vpc_endpoints=AtlasVPCEndpoints(client),
        search=AtlasSearchIndexes(client, clusters),
        alert_configs=AtlasAlertConfigs(client),
        alerts=AtlasAlerts(client),
        mongo_clients=MongoClientCache(settings.mongo_client_cache_size),
        http_client=client,
    )


__all__ = ["AtlasClient", "classify_response", "build_atlas_services"]
