"""Version command - show matlas version."""

import click
from ... import __version__


@click.command()
def version():
    """Show matlas version."""
    click.echo(f"matlas version {__version__}")
