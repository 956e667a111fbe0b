"""Discover command - snapshot a project, optionally as an apply document."""

import json
from typing import Optional, Sequence
import click
from ...contracts.state import ProjectState
from ...discovery.converter import state_to_document
from ...discovery.engine import discover_project
from ...kinds.registry import SUPPORTED_KINDS
from ...report.artifact import dump_yaml, state_to_dict
from ...utils.errors import ConfigError, MatlasError
from ...utils.logging import get_logger
from ..utils import emit, fail, fail_unexpected, run_interruptibly
from ..utils.options import project_options
from ..utils.session import CommandSession

logger = get_logger("cli.discover")

KIND_CHOICE = click.Choice(sorted(SUPPORTED_KINDS), case_sensitive=False)


def canonical_kinds(kinds: Sequence[str]) -> Optional[list]:
    """Distinct --include kinds; None means all."""
    return sorted(set(kinds)) if kinds else None


def discover_state(session: CommandSession, kinds: Optional[list], include_alerts: bool = False) -> ProjectState:
    """
    Raises:
        ConfigError: If no project id is known
    """
    if not session.project_id:
        raise ConfigError("A project id is required for discovery",
                          suggestion="Pass --project-id or set MATLAS_PROJECT_ID")
    session.enable_temp_users()
    state = run_interruptibly(
        lambda ctx: discover_project(session.services, session.project_id, kinds=kinds, ctx=ctx,
                                     settings=session.settings, temp_users=session.temp_users,
                                     include_alerts=include_alerts),
        session.ctx,
    )
    for kind, error in sorted(state.errors.items()):
        click.echo(f"Warning: could not discover {kind}: {error}", err=True)
    return state


@click.command()
@project_options
@click.option('--include', 'include', multiple=True, type=KIND_CHOICE,
              help='Only discover these kinds (repeatable; default all)')
@click.option('--include-alerts', is_flag=True, help='Also fetch open alerts')
@click.option('--convert-to-apply', is_flag=True, help='Emit an ApplyDocument instead of a raw snapshot')
@click.option('--format', 'fmt', type=click.Choice(["yaml", "json"]), default="yaml", show_default=True)
@click.option('--output', '-o', 'output_path', type=click.Path(), help='Write to this file instead of stdout')
@click.pass_context
def discover(click_ctx, project_id, config_path, include, include_alerts, convert_to_apply, fmt, output_path):
    """
    Snapshot the resources that exist in an Atlas project.

    With --convert-to-apply the snapshot becomes a manifest that 'matlas
    plan' reports as fully unchanged against the same project.
    """
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            state = discover_state(session, canonical_kinds(include), include_alerts)

        if convert_to_apply:
            data = state_to_document(state).to_manifest()
        else:
            data = state_to_dict(state)
        text = json.dumps(data, indent=2, sort_keys=True) if fmt == "json" else dump_yaml(data)
        emit(text, output_path)
        logger.info(f"Discovered {state.count()} resource(s) in {state.project_id}")
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Discovery")
