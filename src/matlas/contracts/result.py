"""Execution result contract."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict
from pydantic import BaseModel, Field
from .plan import OperationStatus, OperationType


class RunStatus(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class ErrorInfo(BaseModel):
    code: str
    message: str
    suggestion: Optional[str] = None


class OperationResult(BaseModel):
    """Outcome of one planned operation."""
    operation_id: str
    kind: str
    name: str
    type: OperationType
    stage: int = 0
    status: OperationStatus = OperationStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[ErrorInfo] = None
    retry_count: int = 0
    atlas_id: Optional[str] = Field(default=None, description="Server-assigned id")
    skip_reason: Optional[str] = Field(default=None, description="e.g. 'dep-failed'")
    warnings: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        use_enum_values = True

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class ExecutionResult(BaseModel):
    """Typed result of one apply/destroy run."""
    run_id: str
    plan_id: str
    project_id: Optional[str] = None
    status: RunStatus
    results: List[OperationResult] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict, description="Counts per status plus 'total'")
    started_at: datetime
    completed_at: datetime
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        use_enum_values = True
