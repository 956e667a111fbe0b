"""Explicit per-run service bundle."""

from typing import Optional
from .base import (
    AlertConfigSvc,
    AlertsSvc,
    ClusterSvc,
    DatabaseUserSvc,
    MongoAdminSvc,
    NetworkAccessSvc,
    NetworkContainerSvc,
    NetworkPeeringSvc,
    ProjectSvc,
    SearchSvc,
    VPCEndpointSvc,
)
from .mongo import MongoClientCache, PyMongoAdmin
from ..utils.logging import get_logger

logger = get_logger("services.container")


class Services:
    """
    Every collaborator the engine talks to, passed explicitly into each stage.

    Lifetime is one run; call close() (or use as a context manager) when done.
    """

    def __init__(
        self,
        projects: Optional[ProjectSvc] = None,
        clusters: Optional[ClusterSvc] = None,
        database_users: Optional[DatabaseUserSvc] = None,
        network_access: Optional[NetworkAccessSvc] = None,
        network_containers: Optional[NetworkContainerSvc] = None,
        network_peering: Optional[NetworkPeeringSvc] = None,
        vpc_endpoints: Optional[VPCEndpointSvc] = None,
        search: Optional[SearchSvc] = None,
        alert_configs: Optional[AlertConfigSvc] = None,
        alerts: Optional[AlertsSvc] = None,
        mongo_admin: Optional[MongoAdminSvc] = None,
        mongo_clients: Optional[MongoClientCache] = None,
        http_client=None,
    ):
        self.projects = projects
        self.clusters = clusters
        self.database_users = database_users
        self.network_access = network_access
        self.network_containers = network_containers
        self.network_peering = network_peering
        self.vpc_endpoints = vpc_endpoints
        self.search = search
        self.alert_configs = alert_configs
        self.alerts = alerts
        self.mongo_clients = mongo_clients
        if mongo_admin is None and mongo_clients is not None:
            mongo_admin = PyMongoAdmin(mongo_clients)
        self.mongo_admin = mongo_admin
        self.http_client = http_client

    def close(self) -> None:
        """Release pooled connections."""
        if self.mongo_clients is not None:
            self.mongo_clients.close()
        if self.http_client is not None:
            self.http_client.close()
        logger.debug("Closed service connections")

    def __enter__(self) -> "Services":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
