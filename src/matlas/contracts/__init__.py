"""Stable data contracts shared by planner, executor and presentation."""

from .state import ObservedResource, ProjectState
from .issues import Issue, IssueSet, Severity
from .plan import (
    ChangeType,
    FieldChange,
    OperationStatus,
    OperationType,
    Plan,
    PlanMode,
    PlannedOperation,
    PlanSummary,
)
from .result import ErrorInfo, ExecutionResult, OperationResult, RunStatus
from .simulation import DryRunMode, Prediction, SimulatedOperation, SimulationReport

__all__ = [
    "ObservedResource",
    "ProjectState",
    "Issue",
    "IssueSet",
    "Severity",
    "ChangeType",
    "FieldChange",
    "OperationStatus",
    "OperationType",
    "Plan",
    "PlanMode",
    "PlannedOperation",
    "PlanSummary",
    "ErrorInfo",
    "ExecutionResult",
    "OperationResult",
    "RunStatus",
    "DryRunMode",
    "Prediction",
    "SimulatedOperation",
    "SimulationReport",
]
