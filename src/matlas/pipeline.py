"""Loader -> Validator -> Discovery -> Planner -> Dry-run | Executor."""

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from .config.settings import EngineSettings
from .contracts.issues import IssueSet
from .contracts.plan import Plan, PlanMode
from .contracts.result import ExecutionResult
from .contracts.simulation import DryRunMode, SimulationReport
from .contracts.state import ProjectState
from .discovery.engine import discover_project
from .dryrun.simulator import simulate
from .execution.executor import Executor, ProgressCallback
from .kinds.project import ProjectKind
from .kinds.registry import all_handlers
from .manifest.loader import load_manifests
from .manifest.models import ApplyDocument, ResourceKind
from .planning.planner import build_plan
from .tempuser.manager import TempUserManager
from .utils.context import Context
from .utils.errors import ConfigError, ValidationFailedError
from .utils.logging import get_logger
from .validation.validator import ensure_valid, validate_document

logger = get_logger("pipeline")

# Errors that discovery may resolve (the referenced resource already exists).
_DEFERRED_CODES = {"reference-missing"}


def load_and_validate(sources: Sequence[str], strict: bool = False, allow_cycles: bool = False,
                      strict_env: bool = False) -> Tuple[ApplyDocument, IssueSet]:
    """
    Load manifests and run the validator, deferring reference errors that
    observed state may satisfy.

    Raises:
        LoadError: If the manifests cannot be loaded
        ValidationFailedError: On any other validation error
    """
    document = load_manifests(list(sources), strict_env=strict_env)
    issues = validate_document(document, strict=strict, allow_cycles=allow_cycles)
    blocking = [issue for issue in issues.errors if issue.code not in _DEFERRED_CODES]
    if blocking:
        raise ValidationFailedError(
            f"Validation failed with {len(blocking)} error(s); first: {blocking[0]}",
            issues=issues,
        )
    return document, issues


def resolve_project(services, document: ApplyDocument, project_id: Optional[str],
                    ctx: Optional[Context] = None) -> Optional[str]:
    """
    Project id from the explicit value, else by looking up the document's
    Project by name. None means the project does not exist yet.

    Raises:
        ConfigError: If neither a project id nor a Project resource is given
    """
    if project_id:
        return project_id
    projects = document.resources_of(ResourceKind.PROJECT.value)
    if not projects:
        raise ConfigError(
            "No project id given and the document declares no Project",
            suggestion="Pass --project-id, set MATLAS_PROJECT_ID, or add a Project resource",
        )
    name = ProjectKind().normalized(projects[0])["name"]
    found = services.projects.get_by_name(ctx or Context.background(), name)
    if found is None:
        logger.info(f"Project '{name}' does not exist yet")
        return None
    logger.info(f"Resolved project '{name}' to {found.get('id')}")
    return found.get("id")


def kinds_to_discover(document: ApplyDocument, mode: str = PlanMode.APPLY.value, preserve_existing: bool = True,
                      destroy_discovered: bool = False) -> List[str]:
    """Kinds whose observed state the plan needs."""
    if destroy_discovered or (mode == PlanMode.APPLY.value and document.authoritative and not preserve_existing):
        return [h.kind for h in all_handlers()]
    kinds = set(document.kinds())
    kinds.add(ResourceKind.PROJECT.value)
    return [h.kind for h in all_handlers() if h.kind in kinds]


@contextmanager
def temp_user_session(services, project_id: Optional[str],
                      settings: Optional[EngineSettings] = None) -> Iterator[Optional[TempUserManager]]:
    """TempUserManager for the run; every user it minted is released on exit."""
    if not project_id or services.database_users is None:
        yield None
        return
    settings = settings or EngineSettings()
    manager = TempUserManager(services, project_id, settings.temp_user)
    try:
        yield manager
    finally:
        failures = manager.release_all()
        for failure in failures:
            logger.error(f"Temporary user cleanup failed: {failure}")


def plan_document(
    services,
    document: ApplyDocument,
    project_id: Optional[str],
    settings: Optional[EngineSettings] = None,
    mode: str = PlanMode.APPLY.value,
    preserve_existing: bool = True,
    destroy_discovered: bool = False,
    strict: bool = False,
    allow_cycles: bool = False,
    tolerate_partial: bool = False,
    temp_users: Optional[TempUserManager] = None,
    ctx: Optional[Context] = None,
) -> Tuple[Plan, ProjectState, IssueSet]:
    """
    Discover observed state, validate against it and build the plan.

    Args:
        tolerate_partial: Plan even when needed kinds failed discovery,
            treating them as empty (dry runs)

    Raises:
        DiscoveryError: If a needed kind failed and tolerate_partial is False
        ValidationFailedError: If validation against observed state fails
        PlanError: If the operation graph has a cycle
    """
    settings = settings or EngineSettings()
    ctx = ctx or Context.background()
    kinds = kinds_to_discover(document, mode, preserve_existing, destroy_discovered)
    state = discover_project(
        services, project_id, kinds=kinds, ctx=ctx, settings=settings,
        document=document, temp_users=temp_users,
    )
    if not tolerate_partial:
        state.require(document.kinds())

    issues = validate_document(document, strict=strict, allow_cycles=allow_cycles, observed=state)
    if mode != PlanMode.DESTROY.value:
        ensure_valid(issues)

    plan = build_plan(document, state, mode=mode, preserve_existing=preserve_existing,
                      destroy_discovered=destroy_discovered)
    return plan, state, issues


def dry_run(services, plan: Plan, mode: str = DryRunMode.QUICK.value, settings: Optional[EngineSettings] = None,
            annotations: Optional[Dict[str, str]] = None, ctx: Optional[Context] = None) -> SimulationReport:
    """Simulate a plan; never calls a mutating service method."""
    return simulate(plan, mode, services=services if mode == DryRunMode.THOROUGH.value else None,
                    ctx=ctx, settings=settings, annotations=annotations)


def execute_plan(services, plan: Plan, settings: Optional[EngineSettings] = None,
                 temp_users: Optional[TempUserManager] = None, progress: Optional[ProgressCallback] = None,
                 annotations: Optional[Dict[str, str]] = None, max_concurrent: Optional[int] = None,
                 run_timeout: Optional[float] = None, ctx: Optional[Context] = None,
                 executor: Optional[Executor] = None) -> ExecutionResult:
    """Run a plan to completion, failure or cancellation."""
    executor = executor or Executor(services, settings=settings, temp_users=temp_users, progress=progress,
                                    annotations=annotations, max_concurrent=max_concurrent)
    return executor.execute(plan, ctx=ctx, run_timeout=run_timeout)
