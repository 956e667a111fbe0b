"""Plan command - show what apply would change."""

import click
from ...contracts.plan import PlanMode
from ...presentation.human_formatter import format_plan, summarize_plan
from ...report.artifact import write_plan
from ...utils.errors import MatlasError
from ...utils.logging import get_logger
from ..utils import emit, fail, fail_unexpected, render, run_interruptibly
from ..utils.options import file_options, output_option, project_options, validation_options
from ..utils.session import CommandSession

logger = get_logger("cli.plan")


def echo_warnings(issues=None, plan=None) -> None:
    """Validation and planner warnings go to stderr, ahead of the output."""
    if issues is not None:
        for issue in issues.warnings:
            click.echo(f"Warning: {issue}", err=True)
    if plan is not None:
        for warning in plan.warnings:
            click.echo(f"Warning: {warning}", err=True)


@click.command()
@file_options()
@project_options
@validation_options
@click.option('--preserve-existing', is_flag=True,
              help='Never delete resources missing from an authoritative document')
@click.option('--out', 'out_path', type=click.Path(), help='Write the plan JSON to this file')
@click.option('--show-noop', is_flag=True, help='List unchanged resources too')
@output_option
@click.pass_context
def plan(click_ctx, files, strict_env, project_id, config_path, strict, allow_cycles, preserve_existing,
         out_path, show_noop, output_format):
    """
    Build the execution plan for the given manifests.

    Nothing is changed in Atlas. Save the plan with --out and run it later
    with 'matlas apply --plan-file'.
    """
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            document, _ = session.load(files, strict=strict, allow_cycles=allow_cycles, strict_env=strict_env)

            def _plan(ctx):
                session.resolve(document)
                return session.plan(document, mode=PlanMode.APPLY.value, preserve_existing=preserve_existing,
                                    strict=strict, allow_cycles=allow_cycles)

            result, _, issues = run_interruptibly(_plan, session.ctx)

        echo_warnings(issues, result)
        if out_path:
            write_plan(result, out_path)
            click.echo(f"Plan saved to: {out_path}", err=True)
        emit(render(result, output_format,
                    lambda: format_plan(result, show_noop=show_noop),
                    lambda: summarize_plan(result)))
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Planning")
