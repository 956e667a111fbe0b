"""Main CLI entry point for matlas."""

import logging
import os
import click
from .commands.apply import apply
from .commands.destroy import destroy
from .commands.diff import diff
from .commands.discover import discover
from .commands.plan import plan
from .commands.show import show
from .commands.validate import validate
from .commands.version import version
from .. import __version__
from ..utils.logging import get_logger, setup_logging

logger = get_logger("cli.main")


@click.group()
@click.version_option(version=__version__, prog_name="matlas", message="%(prog)s version %(version)s")
@click.option('--verbose', '-v', count=True, help='Log to stderr (-v info, -vv debug)')
@click.pass_context
def cli(ctx, verbose):
    """matlas - Declarative apply engine for MongoDB Atlas."""
    ctx.ensure_object(dict)
    if verbose:
        setup_logging(logging.DEBUG if verbose > 1 else logging.INFO)
    elif os.environ.get("MATLAS_LOG_LEVEL"):
        setup_logging()


cli.add_command(validate)
cli.add_command(plan)
cli.add_command(diff)
cli.add_command(apply)
cli.add_command(destroy)
cli.add_command(discover)
cli.add_command(show)
cli.add_command(version)
