"""Dry-run simulation report contract."""

from enum import Enum
from typing import List, Optional, Dict
from pydantic import BaseModel, Field
from .plan import OperationType


class DryRunMode(str, Enum):
    QUICK = "quick"
    THOROUGH = "thorough"


class Prediction(str, Enum):
    LIKELY_SUCCEED = "likely-succeed"
    LIKELY_FAIL = "likely-fail"
    UNCERTAIN = "uncertain"


class SimulatedOperation(BaseModel):
    operation_id: str
    kind: str
    name: str
    type: OperationType
    stage: int
    destructive: bool = False
    estimated_seconds: int = 0
    unsatisfied_dependencies: List[str] = Field(default_factory=list)
    prediction: Optional[Prediction] = None
    reason: Optional[str] = None

    class Config:
        """Pydantic config."""
        use_enum_values = True


class SimulationReport(BaseModel):
    """What a plan would do, computed without mutation."""
    plan_id: str
    mode: DryRunMode
    counts_by_type: Dict[str, int] = Field(default_factory=dict)
    counts_by_kind: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    destructive_operations: List[str] = Field(default_factory=list)
    unsatisfiable_operations: List[str] = Field(default_factory=list)
    operations: List[SimulatedOperation] = Field(default_factory=list)
    estimated_duration_seconds: int = 0
    warnings: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        use_enum_values = True

    @property
    def likely_failures(self) -> List[SimulatedOperation]:
        return [op for op in self.operations if op.prediction == Prediction.LIKELY_FAIL.value]

    @property
    def ok(self) -> bool:
        return not self.unsatisfiable_operations and not self.likely_failures
