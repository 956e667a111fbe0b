"""CLI utilities package."""

import json
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
import click
from ...config.manager import load_config
from ...config.settings import EngineSettings, load_credentials, load_engine_settings
from ...contracts.result import ExecutionResult, RunStatus
from ...report.artifact import dump_yaml
from ...services.atlas import build_atlas_services
from ...utils.context import Context
from ...utils.errors import (
    ConfigError,
    LoadError,
    MatlasError,
    OperationCancelledError,
    ValidationFailedError,
)
from ...utils.logging import get_logger

logger = get_logger("cli.utils")

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_FAILURE = 2
EXIT_CANCELLED = 3
EXIT_CONFIG = 4


def format_error(message: str, suggestion: Optional[str] = None) -> str:
    """
    Format error message with optional suggestion.

    Args:
        message: Error message
        suggestion: Optional suggestion or help text

    Returns:
        Formatted error string
    """
    error = f"Error: {message}"
    if suggestion:
        error += f"\nTip: {suggestion}"
    return error


def exit_code_for(error: BaseException) -> int:
    """Map an exception to the process exit code."""
    if isinstance(error, OperationCancelledError):
        return EXIT_CANCELLED
    if isinstance(error, (LoadError, ValidationFailedError)):
        return EXIT_VALIDATION
    if isinstance(error, ConfigError):
        return EXIT_CONFIG
    return EXIT_FAILURE


def exit_code_for_result(result: ExecutionResult) -> int:
    if result.status == RunStatus.COMPLETED.value:
        return EXIT_OK
    if result.status == RunStatus.CANCELLED.value:
        return EXIT_CANCELLED
    return EXIT_FAILURE


def fail(error: MatlasError) -> None:
    """Print a MatlasError and exit with its mapped code."""
    click.echo(format_error(error.message, error.suggestion), err=True)
    issues = getattr(error, "issues", None)
    if issues is not None and issues.errors:
        for issue in issues.errors:
            click.echo(f"  - {issue}", err=True)
    sys.exit(exit_code_for(error))


def fail_unexpected(error: Exception, action: str) -> None:
    logger.error(f"Unexpected error: {error}", exc_info=True)
    click.echo(format_error(f"{action} failed: {error}"), err=True)
    sys.exit(EXIT_FAILURE)


def emit(text: str, output: Optional[str] = None, quiet: bool = False) -> None:
    """Write command output to a file, or stdout when no file is given."""
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(text if text.endswith("\n") else text + "\n")
        if not quiet:
            click.echo(f"Output saved to: {output_path}", err=True)
        return
    try:
        click.echo(text)
    except UnicodeEncodeError:
        click.echo(text.encode('ascii', errors='replace').decode('ascii'))


def render(model, output_format: str, table: Callable[[], str], summary: Callable[[], str]) -> str:
    """Render a contract model as table text, summary line, JSON or YAML."""
    if output_format == "json":
        return json.dumps(model.model_dump(mode="json", by_alias=True), indent=2, sort_keys=True)
    if output_format == "yaml":
        return dump_yaml(model.model_dump(mode="json", by_alias=True))
    if output_format == "summary":
        return summary()
    return table()


def load_run_config(config_path: Optional[str] = None) -> Tuple[Dict[str, Any], EngineSettings]:
    """
    Read config files and build engine settings.

    Raises:
        ConfigError: If a config file is unreadable or settings are invalid
    """
    config = load_config(config_path)
    return config, load_engine_settings(config)


def open_services(click_ctx: click.Context, config: Dict[str, Any], settings: EngineSettings,
                  project_id: Optional[str] = None):
    """
    Build the Services bundle for this invocation.

    A `services_factory` in the click context object (used by tests and
    embedders) replaces the Atlas-backed services.

    Raises:
        ConfigError: If Atlas credentials are missing
    """
    factory: Optional[Callable] = (click_ctx.obj or {}).get("services_factory")
    if factory is not None:
        return factory(config, settings)
    credentials = load_credentials(config, project_id)
    return build_atlas_services(credentials, settings)


def run_interruptibly(fn: Callable[[Context], Any], ctx: Context, on_interrupt: Optional[Callable[[], None]] = None):
    """
    Run `fn(ctx)` on a worker thread; Ctrl-C cancels `ctx` instead of
    killing the process, and the function's result is still returned.
    """
    outcome: Dict[str, Any] = {}

    def _target():
        try:
            outcome["value"] = fn(ctx)
        except BaseException as e:  # re-raised on the calling thread
            outcome["error"] = e

    worker = threading.Thread(target=_target, name="matlas-run", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            click.echo("Interrupted; cancelling run (in-flight operations finish their current call)...", err=True)
            ctx.cancel("interrupted by user")
            if on_interrupt is not None:
                on_interrupt()
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


__all__ = [
    "EXIT_OK",
    "EXIT_VALIDATION",
    "EXIT_FAILURE",
    "EXIT_CANCELLED",
    "EXIT_CONFIG",
    "format_error",
    "exit_code_for",
    "exit_code_for_result",
    "fail",
    "fail_unexpected",
    "emit",
    "render",
    "load_run_config",
    "open_services",
    "run_interruptibly",
]
