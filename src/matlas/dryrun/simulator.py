"""Dry-run simulation: what a plan would do, without mutation."""

from typing import Dict, List, Optional, Set, Tuple
from ..config.settings import EngineSettings
from ..contracts.plan import OperationType, Plan, PlannedOperation
from ..contracts.simulation import DryRunMode, Prediction, SimulatedOperation, SimulationReport
from ..kinds.base import RunEnv
from ..kinds.registry import get_handler
from ..utils.context import Context
from ..utils.errors import MatlasError
from ..utils.logging import get_logger

logger = get_logger("dryrun.simulator")


def simulate(
    plan: Plan,
    mode: str = DryRunMode.QUICK.value,
    services=None,
    ctx: Optional[Context] = None,
    settings: Optional[EngineSettings] = None,
    annotations: Optional[Dict[str, str]] = None,
) -> SimulationReport:
    """
    Produce a SimulationReport for a plan.

    Quick mode analyses the plan structure only. Thorough mode also runs
    each kind's read-only probes against `services`. Neither mode calls a
    mutating service method, and no temporary users are created.

    Raises:
        ValueError: If thorough mode is requested without services
    """
    mode = DryRunMode(mode).value
    if mode == DryRunMode.THOROUGH.value and services is None:
        raise ValueError("Thorough dry-run needs services for read-only probes")

    report = SimulationReport(plan_id=plan.id, mode=mode, warnings=list(plan.warnings))
    unsatisfiable = _unsatisfiable(plan)

    stage_estimates: Dict[int, int] = {}
    for op in plan.operations:
        report.counts_by_type[op.type] = report.counts_by_type.get(op.type, 0) + 1
        per_kind = report.counts_by_kind.setdefault(op.kind, {})
        per_kind[op.type] = per_kind.get(op.type, 0) + 1
        if not op.actionable:
            continue

        estimate = get_handler(op.kind).estimate(op.type)
        stage_estimates[op.stage] = max(stage_estimates.get(op.stage, 0), estimate)
        simulated = SimulatedOperation(
            operation_id=op.id,
            kind=op.kind,
            name=op.name,
            type=op.type,
            stage=op.stage,
            destructive=op.destructive,
            estimated_seconds=estimate,
            unsatisfied_dependencies=unsatisfiable.get(op.id, []),
        )
        if op.destructive:
            report.destructive_operations.append(op.id)
        if simulated.unsatisfied_dependencies:
            report.unsatisfiable_operations.append(op.id)
        report.operations.append(simulated)

    report.estimated_duration_seconds = sum(stage_estimates.values())

    if mode == DryRunMode.THOROUGH.value:
        env = RunEnv(services, ctx or Context.background(), plan.project_id, temp_users=None,
                     settings=settings, annotations=annotations)
        by_id = {op.id: op for op in plan.operations}
        for simulated in report.operations:
            if simulated.unsatisfied_dependencies:
                simulated.prediction = Prediction.LIKELY_FAIL.value
                simulated.reason = "depends on: " + "; ".join(simulated.unsatisfied_dependencies)
                continue
            prediction, reason = _probe(env, by_id[simulated.operation_id])
            simulated.prediction = Prediction(prediction).value
            simulated.reason = reason

    logger.info(
        f"Dry run ({mode}) of {plan.id}: {len(report.operations)} operation(s), "
        f"{len(report.unsatisfiable_operations)} unsatisfiable, ~{report.estimated_duration_seconds}s"
    )
    return report


def _probe(env: RunEnv, op: PlannedOperation) -> Tuple[str, str]:
    handler = get_handler(op.kind)
    if handler.requires_project and not env.project_id:
        return Prediction.UNCERTAIN.value, "project does not exist yet"
    try:
        prediction, reason = handler.probe(env, op)
    except MatlasError as e:
        return Prediction.UNCERTAIN.value, f"probe failed: {e.message}"
    return prediction, reason


def _unsatisfiable(plan: Plan) -> Dict[str, List[str]]:
    """
    Operations whose dependencies cannot be met: a dependency missing from
    the plan, a reference to a resource the plan deletes without recreating,
    or a dependency that is itself unsatisfiable.
    """
    by_id = {op.id: op for op in plan.operations}
    deleted: Set[Tuple[str, str]] = set()
    recreated: Set[Tuple[str, str]] = set()
    for op in plan.operations:
        if op.type == OperationType.DELETE.value:
            deleted.add((op.kind, op.key))
        elif op.type == OperationType.CREATE.value:
            recreated.add((op.kind, op.key))
    gone = deleted - recreated

    problems: Dict[str, List[str]] = {}
    for op in sorted(plan.operations, key=lambda o: (o.stage, o.priority, o.id)):
        if not op.actionable:
            continue
        reasons = []
        for dep in op.dependencies:
            if dep not in by_id:
                reasons.append(f"{dep} is not in the plan")
            elif dep in problems:
                reasons.append(f"{dep} ({by_id[dep].ref}) cannot run")
            elif by_id[dep].stage >= op.stage:
                reasons.append(f"{dep} is not scheduled before stage {op.stage}")
        if op.desired is not None and op.type != OperationType.DELETE.value:
            for ref in get_handler(op.kind).references(op.desired):
                if ref.required and (ref.kind, ref.key) in gone:
                    reasons.append(f"{ref.kind} '{ref.key}' is deleted by this plan")
        if reasons:
            problems[op.id] = reasons
    return problems
