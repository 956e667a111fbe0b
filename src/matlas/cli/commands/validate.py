"""Validate command - check manifests without contacting Atlas."""

import sys
import click
from ...manifest.loader import load_manifests
from ...presentation.human_formatter import format_issues, summarize_issues
from ...utils.errors import MatlasError
from ...utils.logging import get_logger
from ...validation.validator import validate_document
from ..utils import EXIT_OK, EXIT_VALIDATION, emit, fail, fail_unexpected, render
from ..utils.options import file_options, output_option, validation_options

logger = get_logger("cli.validate")


@click.command()
@file_options()
@validation_options
@output_option
def validate(files, strict_env, strict, allow_cycles, output_format):
    """
    Validate manifests offline: schema, names, references, cycles, CIDRs.

    References are checked against the document only; resources that
    already exist in Atlas are reported as errors here but accepted by
    plan and apply.
    """
    try:
        document = load_manifests(list(files), strict_env=strict_env)
        issues = validate_document(document, strict=strict, allow_cycles=allow_cycles)
        emit(render(issues, output_format,
                    lambda: format_issues(issues),
                    lambda: summarize_issues(issues)))
        logger.info(f"Validated {len(document.resources)} resource(s): {summarize_issues(issues)}")
        sys.exit(EXIT_OK if issues.ok else EXIT_VALIDATION)
    except MatlasError as e:
        fail(e)
    except Exception as e:
        fail_unexpected(e, "Validation")
