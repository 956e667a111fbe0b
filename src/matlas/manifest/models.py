"""Pydantic models for apply documents and their resources."""

from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field


API_VERSIONS = (
    "matlas.mongodb.com/v1alpha1",
    "matlas.mongodb.com/v1beta1",
    "matlas.mongodb.com/v1",
)
DEFAULT_API_VERSION = "matlas.mongodb.com/v1"

ANNOTATION_AUTHORITATIVE = "matlas.mongodb.com/authoritative"
ANNOTATION_ALLOW_OVERLAP = "matlas.mongodb.com/allow-overlap"
ANNOTATION_CONNECTION_STRING = "matlas.mongodb.com/connection-string"

LABEL_MANAGED_BY = "managed-by"


class ResourceKind(str, Enum):
    """Resource kinds an apply document may contain."""
    PROJECT = "Project"
    CLUSTER = "Cluster"
    NETWORK_CONTAINER = "NetworkContainer"
    NETWORK_ACCESS = "NetworkAccess"
    NETWORK_PEERING = "NetworkPeering"
    VPC_ENDPOINT = "VPCEndpoint"
    DATABASE_ROLE = "DatabaseRole"
    DATABASE_USER = "DatabaseUser"
    SEARCH_INDEX = "SearchIndex"
    ALERT_CONFIG = "AlertConfig"


# Fixed plan order; lower runs first within a stage and sorts first in output.
KIND_RANK: Dict[str, int] = {kind.value: rank for rank, kind in enumerate(ResourceKind)}

DOCUMENT_KIND = "ApplyDocument"


class DeletionPolicy(str, Enum):
    DELETE = "Delete"
    RETAIN = "Retain"


class ResourceMetadata(BaseModel):
    """Common metadata for every resource."""
    name: str = Field(..., description="Resource name, unique per kind within a document")
    labels: Dict[str, str] = Field(default_factory=dict, description="Free-form labels")
    annotations: Dict[str, str] = Field(default_factory=dict, description="Behavioural annotations")
    deletion_policy: Optional[DeletionPolicy] = Field(
        default=None, alias="deletionPolicy", description="Retain keeps the resource when it would be deleted"
    )
    depends_on: List[str] = Field(
        default_factory=list, alias="dependsOn", description="Explicit dependencies: 'Kind:name' or 'name'"
    )

    class Config:
        """Pydantic config."""
        use_enum_values = True
        populate_by_name = True


class Resource(BaseModel):
    """A single desired resource."""
    api_version: str = Field(default=DEFAULT_API_VERSION, alias="apiVersion")
    kind: str = Field(..., description="Resource kind")
    metadata: ResourceMetadata
    spec: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific spec")

    class Config:
        """Pydantic config."""
        populate_by_name = True

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def ref(self) -> str:
        """Stable graph node id: 'Kind:name'."""
        return f"{self.kind}:{self.metadata.name}"

    @property
    def retained(self) -> bool:
        return self.metadata.deletion_policy == DeletionPolicy.RETAIN.value

    def to_manifest(self) -> Dict[str, Any]:
        """Serialize back to manifest (camelCase) form."""
        metadata: Dict[str, Any] = {"name": self.metadata.name}
        if self.metadata.labels:
            metadata["labels"] = dict(self.metadata.labels)
        if self.metadata.annotations:
            metadata["annotations"] = dict(self.metadata.annotations)
        if self.metadata.deletion_policy:
            metadata["deletionPolicy"] = self.metadata.deletion_policy
        if self.metadata.depends_on:
            metadata["dependsOn"] = list(self.metadata.depends_on)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec,
        }


class ApplyDocument(BaseModel):
    """Desired state: a typed, ordered collection of resources."""
    api_version: str = Field(default=DEFAULT_API_VERSION, alias="apiVersion")
    kind: str = Field(default=DOCUMENT_KIND)
    metadata: ResourceMetadata
    resources: List[Resource] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        populate_by_name = True

    @property
    def authoritative(self) -> bool:
        value = self.metadata.annotations.get(ANNOTATION_AUTHORITATIVE, "")
        return str(value).strip().lower() == "true"

    def resources_of(self, kind: str) -> List[Resource]:
        return [r for r in self.resources if r.kind == kind]

    def kinds(self) -> List[str]:
        """Distinct kinds present, in plan order."""
        present = {r.kind for r in self.resources}
        return sorted(present, key=lambda k: KIND_RANK.get(k, len(KIND_RANK)))

    def find(self, kind: str, name: str) -> Optional[Resource]:
        for resource in self.resources:
            if resource.kind == kind and resource.metadata.name == name:
                return resource
        return None

    def to_manifest(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": self.metadata.name}
        if self.metadata.labels:
            metadata["labels"] = dict(self.metadata.labels)
        if self.metadata.annotations:
            metadata["annotations"] = dict(self.metadata.annotations)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "resources": [r.to_manifest() for r in self.resources],
        }


def sort_key(resource: Resource):
    """Deterministic resource order: (kind rank, name)."""
    return (KIND_RANK.get(resource.kind, len(KIND_RANK)), resource.metadata.name)
