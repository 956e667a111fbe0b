"""Observed Atlas state snapshot."""

from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable
from pydantic import BaseModel, Field
from ..manifest.models import KIND_RANK
from ..utils.errors import DiscoveryError


class ObservedResource(BaseModel):
    """One resource as it currently exists in Atlas, normalized to manifest form."""
    kind: str = Field(..., description="Resource kind")
    name: str = Field(..., description="Display name derived from the Atlas object")
    key: str = Field(..., description="Natural key used to match desired resources")
    atlas_id: str = Field(..., description="Atlas-assigned identifier used for get/update/delete")
    spec: Dict[str, Any] = Field(default_factory=dict, description="Normalized spec in manifest form")
    status: Optional[str] = Field(default=None, description="Atlas provisioning state, where reported")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True, description="Atlas payload")


class ProjectState(BaseModel):
    """Read-only snapshot of one project, built fresh each run."""
    project_id: Optional[str] = Field(default=None, description="Atlas project id; None when the project does not exist yet")
    snapshot_time: datetime
    resources: Dict[str, List[ObservedResource]] = Field(default_factory=dict, description="Observed resources per kind")
    alerts: List[Dict[str, Any]] = Field(default_factory=list, description="Open alerts (read-only)")
    errors: Dict[str, str] = Field(default_factory=dict, description="Per-kind discovery failures")
    partial: bool = Field(default=False, description="True when at least one kind failed")

    def of(self, kind: str) -> List[ObservedResource]:
        return self.resources.get(kind, [])

    def find(self, kind: str, key: str) -> Optional[ObservedResource]:
        for observed in self.of(kind):
            if observed.key == key:
                return observed
        return None

    def all(self) -> List[ObservedResource]:
        """Every observed resource in (kind rank, name) order."""
        items = [r for resources in self.resources.values() for r in resources]
        return sorted(items, key=lambda r: (KIND_RANK.get(r.kind, len(KIND_RANK)), r.name, r.key))

    def kinds(self) -> List[str]:
        return sorted(self.resources, key=lambda k: KIND_RANK.get(k, len(KIND_RANK)))

    def count(self) -> int:
        return sum(len(v) for v in self.resources.values())

    def require(self, kinds: Iterable[str]) -> None:
        """
        Fail when a needed kind could not be discovered.

        Raises:
            DiscoveryError: Listing each needed kind that failed
        """
        failed = {kind: self.errors[kind] for kind in kinds if kind in self.errors}
        if failed:
            details = "; ".join(f"{kind}: {error}" for kind, error in sorted(failed.items()))
            raise DiscoveryError(f"Discovery failed for required kind(s): {details}", errors=failed)

    @classmethod
    def empty(cls, project_id: Optional[str] = None) -> "ProjectState":
        return cls(project_id=project_id, snapshot_time=datetime.now().astimezone())
