"""Diff command - field-level differences between manifests and Atlas."""

import click
from ...contracts.plan import PlanMode
from ...presentation.human_formatter import format_diff, summarize_plan
from ...utils.errors import MatlasError
from ..utils import emit, fail, fail_unexpected, render, run_interruptibly
from ..utils.options import file_options, output_option, project_options, validation_options
from ..utils.session import CommandSession
from .plan import echo_warnings


@click.command()
@file_options()
@project_options
@validation_options
@click.option('--preserve-existing', is_flag=True, help='Exclude deletions of unmanaged resources')
@output_option
@click.pass_context
def diff(click_ctx, files, strict_env, project_id, config_path, strict, allow_cycles, preserve_existing,
         output_format):
    """Show what differs between the manifests and the live project."""
    try:
        with CommandSession(click_ctx, config_path, project_id) as session:
            document, _ = session.load(files, strict=strict, allow_cycles=allow_cycles, strict_env=strict_env)

            def _plan(ctx):
                session.resolve(document)
                return session.plan(document, mode=PlanMode.APPLY.value, preserve_existing=preserve_existing,
                                    strict=strict, allow_cycles=allow_cycles)

            result, _, issues = run_interruptibly(_plan, session.ctx)

        echo_warnings(issues, result)
        emit(render(result, output_format, lambda: format_diff(result), lambda: summarize_plan(result)))
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Diff")
