"""Presentation layer - human-friendly formatting."""

from .human_formatter import (
    format_diff,
    format_issues,
    format_plan,
    format_progress,
    format_result,
    format_simulation,
    format_state,
    summarize_issues,
    summarize_plan,
    summarize_result,
    summarize_state,
)

__all__ = [
    "format_diff",
    "format_issues",
    "format_plan",
    "format_progress",
    "format_result",
    "format_simulation",
    "format_state",
    "summarize_issues",
    "summarize_plan",
    "summarize_result",
    "summarize_state",
]
