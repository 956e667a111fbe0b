"""Concurrent discovery of a project's observed state."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from ..config.settings import EngineSettings
from ..contracts.state import ObservedResource, ProjectState
from ..kinds.base import RunEnv
from ..kinds.registry import all_handlers, get_handler
from ..utils.context import Context
from ..utils.errors import FatalServiceError, MatlasError
from ..utils.logging import get_logger

logger = get_logger("discovery.engine")

ALERTS_KEY = "alerts"


def discover_project(
    services,
    project_id: Optional[str],
    kinds: Optional[Iterable[str]] = None,
    max_workers: Optional[int] = None,
    ctx: Optional[Context] = None,
    settings: Optional[EngineSettings] = None,
    document=None,
    temp_users=None,
    include_alerts: bool = False,
) -> ProjectState:
    """
    Fetch observed state for the listed kinds, one task per kind.

    A failing kind does not stop the others: its error is recorded in
    `errors` and the snapshot is marked partial. Callers decide whether to
    proceed, usually via ProjectState.require().

    Args:
        services: Services bundle
        project_id: Atlas project id; None yields an empty snapshot
        kinds: Kinds to discover (default: all)
        max_workers: Concurrency bound (default: settings.discovery_concurrency)
        ctx: Cancellation context for the whole discovery
        settings: Engine settings
        document: Desired document, used by kinds that need hints (DatabaseRole)
        temp_users: TempUserManager for kinds that need MongoDB access
        include_alerts: Also fetch open alerts (read-only)

    Returns:
        ProjectState snapshot

    Raises:
        OperationCancelledError: If ctx is cancelled during discovery
    """
    settings = settings or EngineSettings()
    ctx = ctx or Context.background()
    state = ProjectState.empty(project_id)
    if not project_id:
        logger.info("No project id; starting from an empty snapshot")
        return state

    handlers = [get_handler(k) for k in kinds] if kinds is not None else all_handlers()
    handlers = sorted({h.kind: h for h in handlers}.values(), key=lambda h: h.rank)
    if not handlers:
        return state

    workers = max(1, min(max_workers or settings.discovery_concurrency, len(handlers)))
    env = RunEnv(services, ctx, project_id, temp_users=temp_users, settings=settings,
                 annotations=document.metadata.annotations if document is not None else None)

    logger.info(f"Discovering {len(handlers)} kind(s) for project {project_id} with {workers} worker(s)")
    resources: Dict[str, List[ObservedResource]] = {}
    errors: Dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="matlas-discovery") as pool:
        futures = {
            handler.kind: pool.submit(_discover_kind, handler, env, settings.page_size, document)
            for handler in handlers
        }
        for kind, future in futures.items():
            try:
                observed = future.result()
            except MatlasError as e:
                logger.warning(f"Discovery of {kind} failed: {e.message}")
                errors[kind] = e.message
                continue
            resources[kind] = sorted(observed, key=lambda r: (r.name, r.key))
            logger.debug(f"Discovered {len(observed)} {kind} resource(s)")

    ctx.check()

    alerts = []
    if include_alerts and services.alerts is not None:
        try:
            alerts = services.alerts.list(ctx, project_id)
        except MatlasError as e:
            errors[ALERTS_KEY] = e.message

    state = ProjectState(
        project_id=project_id,
        snapshot_time=datetime.now().astimezone(),
        resources=resources,
        alerts=alerts,
        errors=errors,
        partial=bool(errors),
    )
    logger.info(
        f"Discovery complete: {state.count()} resource(s)"
        + (f", {len(errors)} kind(s) failed" if errors else "")
    )
    return state


def _discover_kind(handler, env: RunEnv, page_size: int, document) -> List[ObservedResource]:
    env.ctx.check()
    try:
        return handler.discover(env, page_size=page_size, document=document)
    except MatlasError:
        raise
    except Exception as e:
        logger.debug(f"Unexpected error discovering {handler.kind}", exc_info=True)
        raise FatalServiceError(f"Unexpected error discovering {handler.kind}: {e}")
