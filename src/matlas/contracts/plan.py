"""Plan contract: staged, typed operations (versioned, stable, explicit)."""

import json
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from .state import ObservedResource
from ..manifest.models import Resource


class OperationType(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    NO_OP = "NoOp"


class OperationStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    SKIPPED = "Skipped"


TERMINAL_STATUSES = frozenset({
    OperationStatus.COMPLETED.value,
    OperationStatus.FAILED.value,
    OperationStatus.CANCELLED.value,
    OperationStatus.SKIPPED.value,
})


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class PlanMode(str, Enum):
    APPLY = "apply"
    DESTROY = "destroy"


class FieldChange(BaseModel):
    """One field-level difference between observed and desired."""
    path: str = Field(..., description="Dotted spec path")
    before: Any = Field(default=None, description="Observed value")
    after: Any = Field(default=None, description="Desired value")
    change_type: ChangeType
    immutable: bool = Field(default=False, description="Field cannot change in place")

    class Config:
        """Pydantic config."""
        use_enum_values = True


class PlannedOperation(BaseModel):
    """A single typed operation in a plan."""
    id: str = Field(..., description="Deterministic operation id (op-NNN)")
    kind: str
    name: str
    key: str = Field(..., description="Natural key matched against observed state")
    type: OperationType
    desired: Optional[Resource] = None
    observed: Optional[ObservedResource] = None
    diff: List[FieldChange] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list, description="Operation ids this one waits for")
    stage: int = Field(default=0, ge=0)
    priority: int = Field(default=0, ge=0, description="Fixed kind rank; lower first")
    status: OperationStatus = OperationStatus.PENDING
    warnings: List[str] = Field(default_factory=list)
    destructive: bool = False
    replacement: bool = Field(default=False, description="Part of a Delete+Create replacement")

    class Config:
        """Pydantic config."""
        use_enum_values = True

    @property
    def ref(self) -> str:
        return f"{self.kind}:{self.name}"

    @property
    def actionable(self) -> bool:
        return self.type != OperationType.NO_OP.value


class PlanSummary(BaseModel):
    total: int = 0
    create: int = 0
    update: int = 0
    delete: int = 0
    no_op: int = 0
    stages: int = 0
    destructive: int = 0
    by_kind: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class Plan(BaseModel):
    """Ordered, staged operations that converge observed state to desired state."""
    version: str = Field(default="1.0.0", description="Plan contract version")
    id: str = Field(..., description="Content hash of the plan")
    project_id: Optional[str] = None
    mode: PlanMode = PlanMode.APPLY
    authoritative: bool = False
    operations: List[PlannedOperation] = Field(default_factory=list)
    summary: PlanSummary = Field(default_factory=PlanSummary)
    warnings: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        use_enum_values = True

    def get(self, op_id: str) -> Optional[PlannedOperation]:
        for op in self.operations:
            if op.id == op_id:
                return op
        return None

    def stages(self) -> Dict[int, List[PlannedOperation]]:
        """Operations grouped by stage, each group in priority order."""
        grouped: Dict[int, List[PlannedOperation]] = {}
        for op in self.operations:
            grouped.setdefault(op.stage, []).append(op)
        return {stage: grouped[stage] for stage in sorted(grouped)}

    def actionable(self) -> List[PlannedOperation]:
        return [op for op in self.operations if op.actionable]

    @property
    def has_changes(self) -> bool:
        return any(op.actionable for op in self.operations)

    def to_json(self) -> str:
        """Canonical serialization: identical plans produce identical bytes."""
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2, sort_keys=True)
