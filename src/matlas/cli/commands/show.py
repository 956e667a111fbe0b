"""Show command - display the live state of a project."""

from typing import Optional
import click
from ...contracts.state import ProjectState
from ...presentation.human_formatter import format_state, summarize_state
from ...utils.errors import MatlasError
from ..utils import emit, fail, fail_unexpected, render
from ..utils.options import output_option, project_options
from ..utils.session import CommandSession
from .discover import KIND_CHOICE, discover_state


def filter_state(state: ProjectState, kind: Optional[str], name: Optional[str]) -> ProjectState:
    """Narrow a snapshot to one kind and/or one resource name."""
    resources = {}
    for current, items in state.resources.items():
        if kind and current != kind:
            continue
        kept = [r for r in items if not name or r.name == name]
        if kept or not name:
            resources[current] = kept
    return state.model_copy(update={"resources": resources})


@click.command()
@project_options
@click.option('--resource-type', 'kind', type=KIND_CHOICE, default=None, help='Only this kind')
@click.option('--resource-name', 'name', default=None, help='Only resources with this name')
@output_option
@click.pass_context
def show(click_ctx, project_id, config_path, kind, name, output_format):
    """Display the resources currently in an Atlas project."""
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            state = discover_state(session, [kind] if kind else None)
        state = filter_state(state, kind, name)
        emit(render(state, output_format, lambda: format_state(state), lambda: summarize_state(state)))
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Show")
