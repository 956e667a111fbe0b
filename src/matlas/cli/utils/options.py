"""Options shared by several commands."""

import re
import click

OUTPUT_FORMATS = ["table", "json", "yaml", "summary"]

_DURATION = re.compile(r"^\s*(?:(\d+(?:\.\d+)?)h)?\s*(?:(\d+(?:\.\d+)?)m)?\s*(?:(\d+(?:\.\d+)?)s?)?\s*$")


class Duration(click.ParamType):
    """Seconds, or a duration such as '90s', '15m', '1h30m'."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        match = _DURATION.match(str(value))
        if not match or not any(match.groups()):
            self.fail(f"'{value}' is not a duration (e.g. 300, 90s, 15m, 1h30m)", param, ctx)
        hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
        total = hours * 3600 + minutes * 60 + seconds
        if total <= 0:
            self.fail("duration must be positive", param, ctx)
        return total


DURATION = Duration()


def file_options(required: bool = True):
    """-f/--file (repeatable; globs and directories allowed) plus --strict-env."""
    def decorator(fn):
        fn = click.option('--strict-env', is_flag=True,
                          help='Fail when a ${VAR} in a manifest is unset and has no default')(fn)
        fn = click.option('--file', '-f', 'files', multiple=True, required=required,
                          help='Manifest file, directory or glob (repeatable)')(fn)
        return fn
    return decorator


def project_options(fn):
    """--project-id and --config."""
    fn = click.option('--config', 'config_path', type=click.Path(), default=None,
                      help='Config file replacing ~/.matlas/config.yaml')(fn)
    fn = click.option('--project-id', default=None,
                      help='Atlas project id (default: MATLAS_PROJECT_ID, config, or the document Project)')(fn)
    return fn


def validation_options(fn):
    fn = click.option('--allow-cycles', is_flag=True, help='Report dependency cycles as warnings')(fn)
    fn = click.option('--strict', is_flag=True, help='Treat unknown databases and loose role scopes as errors')(fn)
    return fn


def output_option(fn):
    return click.option('--output', '-o', 'output_format', type=click.Choice(OUTPUT_FORMATS),
                        default="table", show_default=True, help='Output format')(fn)
