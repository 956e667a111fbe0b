"""Service contracts and the per-run Services bundle."""

from .base import (
    AlertConfigSvc,
    AlertsSvc,
    AsyncResourceService,
    ClusterSvc,
    DatabaseUserSvc,
    MongoAdminSvc,
    NetworkAccessSvc,
    NetworkContainerSvc,
    NetworkPeeringSvc,
    ProjectSvc,
    ResourceService,
    SearchSvc,
    VPCEndpointSvc,
)
from .container import Services
from .mongo import MongoClientCache

__all__ = [
    "AlertConfigSvc",
    "AlertsSvc",
    "AsyncResourceService",
    "ClusterSvc",
    "DatabaseUserSvc",
    "MongoAdminSvc",
    "NetworkAccessSvc",
    "NetworkContainerSvc",
    "NetworkPeeringSvc",
    "ProjectSvc",
    "ResourceService",
    "SearchSvc",
    "VPCEndpointSvc",
    "Services",
    "MongoClientCache",
]
