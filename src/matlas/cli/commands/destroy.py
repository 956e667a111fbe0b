"""Destroy command - delete the resources a document manages."""

import sys
from typing import Dict
import click
from ...contracts.plan import PlanMode
from ...contracts.simulation import DryRunMode
from ...manifest.models import ApplyDocument, ResourceMetadata
from ...presentation.human_formatter import format_plan
from ...utils.errors import MatlasError
from ...utils.logging import get_logger
from ..utils import EXIT_CANCELLED, EXIT_OK, fail, fail_unexpected, run_interruptibly
from ..utils.options import DURATION, file_options, output_option, project_options
from ..utils.session import CommandSession
from .apply import confirm, execute_and_report, simulate_and_report
from .plan import echo_warnings

logger = get_logger("cli.destroy")


@click.command()
@file_options(required=False)
@project_options
@click.option('--discovery-only', is_flag=True,
              help='Delete everything discovered in the project except the project itself')
@click.option('--dry-run', is_flag=True, help='Show what would be deleted without deleting')
@click.option('--auto-approve', is_flag=True, help='Skip the confirmation prompt (dangerous)')
@click.option('--concurrency', type=click.IntRange(min=1), default=None,
              help='Maximum concurrent operations per stage')
@click.option('--timeout', type=DURATION, default=None, help='Cancel the run after this long (e.g. 30m)')
@output_option
@click.pass_context
def destroy(click_ctx, files, strict_env, project_id, config_path, discovery_only, dry_run, auto_approve,
            concurrency, timeout, output_format):
    """
    Delete the resources declared in the manifests.

    Resources with deletionPolicy: Retain are kept. With --discovery-only
    every discovered resource except the Project is deleted, whether or not
    a manifest mentions it.
    """
    if not files and not discovery_only:
        raise click.UsageError("Pass manifests with -f/--file, or --discovery-only with --project-id")
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            if files:
                document, _ = session.load(files, strict_env=strict_env)
            else:
                document = ApplyDocument(metadata=ResourceMetadata(name="discovered"))
            annotations: Dict[str, str] = dict(document.metadata.annotations)

            def _plan(ctx):
                session.resolve(document)
                return session.plan(document, mode=PlanMode.DESTROY.value,
                                    destroy_discovered=discovery_only, dry_run=dry_run)

            plan, _, issues = run_interruptibly(_plan, session.ctx)
            echo_warnings(issues, plan)

            if dry_run:
                simulate_and_report(session, plan, DryRunMode.QUICK.value, output_format, annotations)

            if not plan.has_changes:
                click.echo("Nothing to destroy.")
                sys.exit(EXIT_OK)

            click.echo(format_plan(plan), err=True)
            question = (f"Destroy {plan.summary.delete} resource(s) in project {plan.project_id}? "
                        f"This cannot be undone.")
            if not confirm(question, auto_approve):
                click.echo("Destroy cancelled; nothing was deleted.", err=True)
                sys.exit(EXIT_CANCELLED)

            execute_and_report(session, plan, output_format, annotations, concurrency, timeout)
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Destroy")
