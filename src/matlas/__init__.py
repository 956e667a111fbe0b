"""matlas - Declarative apply engine for MongoDB Atlas."""

from typing import Optional, Sequence
from .config.settings import EngineSettings
from .contracts.plan import Plan, PlanMode
from .pipeline import load_and_validate, plan_document, resolve_project
from .utils.context import Context
from .utils.logging import setup_logging, get_logger

__version__ = "0.1.0"

__all__ = ["plan"]

setup_logging()
logger = get_logger("matlas")


def plan(sources: Sequence[str], services, project_id: Optional[str] = None,
         settings: Optional[EngineSettings] = None, preserve_existing: bool = True,
         destroy: bool = False) -> Plan:
    """Load, validate, discover and plan; returns the Plan without executing it."""
    ctx = Context.background()
    document, _ = load_and_validate(sources)
    project_id = resolve_project(services, document, project_id, ctx=ctx)
    mode = PlanMode.DESTROY.value if destroy else PlanMode.APPLY.value
    result, _, _ = plan_document(
        services, document, project_id, settings=settings, mode=mode,
        preserve_existing=preserve_existing, ctx=ctx,
    )
    logger.info(f"Planned {result.id}: {len(result.actionable())} actionable operation(s)")
    return result
