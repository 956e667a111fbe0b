"""Apply command - converge Atlas to the manifests."""

import sys
from typing import Dict, Optional
import click
from ...contracts.plan import Plan, PlanMode
from ...contracts.simulation import DryRunMode
from ...pipeline import dry_run as simulate_plan, execute_plan
from ...presentation.human_formatter import (
    format_plan,
    format_progress,
    format_result,
    format_simulation,
    summarize_plan,
    summarize_result,
)
from ...report.artifact import read_plan
from ...utils.errors import MatlasError
from ...utils.logging import get_logger
from ..utils import (
    EXIT_CANCELLED,
    EXIT_FAILURE,
    EXIT_OK,
    emit,
    exit_code_for_result,
    fail,
    fail_unexpected,
    render,
    run_interruptibly,
)
from ..utils.options import DURATION, file_options, output_option, project_options, validation_options
from ..utils.session import CommandSession
from .plan import echo_warnings

logger = get_logger("cli.apply")


def confirm(question: str, auto_approve: bool) -> bool:
    """Ask before mutating; a closed stdin counts as 'no'."""
    if auto_approve:
        return True
    try:
        return click.confirm(question, default=False, err=True)
    except click.Abort:
        return False


def simulate_and_report(session: CommandSession, plan: Plan, mode: str, output_format: str,
                        annotations: Optional[Dict[str, str]] = None) -> None:
    """Dry run: print the simulation report and exit 0 when nothing looks unsatisfiable."""
    report = run_interruptibly(
        lambda ctx: simulate_plan(session.services, plan, mode=mode, settings=session.settings,
                            annotations=annotations, ctx=ctx),
        session.ctx,
    )
    emit(render(report, output_format,
                lambda: format_plan(plan) + "\n\n" + format_simulation(report),
                lambda: f"{summarize_plan(plan)}; dry run {'ok' if report.ok else 'found problems'}"))
    sys.exit(EXIT_OK if report.ok else EXIT_FAILURE)


def execute_and_report(session: CommandSession, plan: Plan, output_format: str,
                       annotations: Optional[Dict[str, str]] = None, concurrency: Optional[int] = None,
                       timeout: Optional[float] = None) -> None:
    """Run the plan with live progress on stderr, print the result and exit with its code."""
    def _progress(result):
        click.echo(format_progress(result), err=True)

    session.enable_temp_users()
    result = run_interruptibly(
        lambda ctx: execute_plan(
            session.services, plan, settings=session.settings, temp_users=session.temp_users,
            progress=_progress, annotations=annotations, max_concurrent=concurrency,
            run_timeout=timeout, ctx=ctx,
        ),
        session.ctx,
    )
    emit(render(result, output_format, lambda: format_result(result), lambda: summarize_result(result)))
    logger.info(f"{result.run_id} finished with status {result.status}")
    sys.exit(exit_code_for_result(result))


@click.command()
@file_options(required=False)
@project_options
@validation_options
@click.option('--plan-file', type=click.Path(), help='Execute a plan saved with "matlas plan --out"')
@click.option('--dry-run', is_flag=True, help='Show what would happen without changing anything')
@click.option('--dry-run-mode', type=click.Choice([m.value for m in DryRunMode]), default=DryRunMode.QUICK.value,
              show_default=True, help='quick: plan analysis only; thorough: also read-only probes')
@click.option('--auto-approve', is_flag=True, help='Skip the confirmation prompt')
@click.option('--preserve-existing', is_flag=True,
              help='Never delete resources missing from an authoritative document')
@click.option('--concurrency', type=click.IntRange(min=1), default=None,
              help='Maximum concurrent operations per stage')
@click.option('--timeout', type=DURATION, default=None, help='Cancel the run after this long (e.g. 30m)')
@output_option
@click.pass_context
def apply(click_ctx, files, strict_env, project_id, config_path, strict, allow_cycles, plan_file, dry_run,
          dry_run_mode, auto_approve, preserve_existing, concurrency, timeout, output_format):
    """
    Create, update and delete Atlas resources to match the manifests.

    Operations run stage by stage; failures do not roll back. Press Ctrl-C
    to cancel: queued operations are skipped and temporary users are
    released before exit.
    """
    if not files and not plan_file:
        raise click.UsageError("Pass manifests with -f/--file or a saved plan with --plan-file")
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            annotations: Dict[str, str] = {}
            if plan_file:
                plan = read_plan(plan_file)
                session.project_id = plan.project_id or session.project_id
                logger.info(f"Loaded saved plan {plan.id}")
            else:
                document, _ = session.load(files, strict=strict, allow_cycles=allow_cycles, strict_env=strict_env)
                annotations = dict(document.metadata.annotations)

                def _plan(ctx):
                    session.resolve(document)
                    return session.plan(document, mode=PlanMode.APPLY.value, preserve_existing=preserve_existing,
                                        strict=strict, allow_cycles=allow_cycles, dry_run=dry_run)

                plan, _, issues = run_interruptibly(_plan, session.ctx)
                echo_warnings(issues, plan)

            if dry_run:
                simulate_and_report(session, plan, dry_run_mode, output_format, annotations)

            if not plan.has_changes:
                click.echo("No changes. Atlas already matches the manifests.")
                sys.exit(EXIT_OK)

            click.echo(format_plan(plan), err=True)
            if not confirm(f"Apply {len(plan.actionable())} operation(s) to project "
                           f"{plan.project_id or '(new project)'}?", auto_approve):
                click.echo("Apply cancelled; nothing was changed.", err=True)
                sys.exit(EXIT_CANCELLED)

            execute_and_report(session, plan, output_format, annotations, concurrency, timeout)
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Apply")
