"""Human-friendly output formatter - converts structured data to readable text."""

import os
from typing import Any, List, Optional
from ..contracts.issues import IssueSet
from ..contracts.plan import OperationType, Plan
from ..contracts.result import ExecutionResult, OperationResult
from ..contracts.simulation import SimulationReport
from ..contracts.state import ProjectState

WIDTH = 65

_SYMBOLS = {
    OperationType.CREATE.value: ("+", "+"),
    OperationType.UPDATE.value: ("~", "~"),
    OperationType.DELETE.value: ("-", "-"),
    OperationType.NO_OP.value: ("=", "·"),
}

_STATUS_MARKS = {
    "Completed": ("[OK]", "✅"),
    "Failed": ("[FAIL]", "❌"),
    "Skipped": ("[SKIP]", "⏭️ "),
    "Cancelled": ("[CANCEL]", "⛔"),
    "Running": ("[..]", "⏳"),
    "Pending": ("[ ]", "•"),
}


def _use_ascii(ascii_mode: Optional[bool] = None) -> bool:
    """Resolve whether to use ASCII output (checked at format time)."""
    if ascii_mode is not None:
        return bool(ascii_mode)
    return os.environ.get("MATLAS_ASCII", "").lower() in ("1", "true", "yes")


def _box(title: str, width: int = WIDTH, ascii_mode: bool = False) -> List[str]:
    """Return box-drawing header lines."""
    b = {"tl": "+", "tr": "+", "h": "-", "v": "|"} if ascii_mode else {"tl": "┌", "tr": "┐", "h": "─", "v": "│"}
    h = b["h"] * (width - 2)
    return [
        b["tl"] + h + b["tr"],
        f"{b['v']} {title:<{width - 4}} {b['v']}",
        ("+" if ascii_mode else "└") + h + ("+" if ascii_mode else "┘"),
        "",
    ]


def _section(title: str, width: int = WIDTH) -> List[str]:
    """Return section divider."""
    h = "-" * width
    return [h, title.center(width), h]


def _short(value: Any, limit: int = 40) -> str:
    text = "(unset)" if value is None else str(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def format_plan(plan: Plan, show_noop: bool = False, ascii_mode: Optional[bool] = None) -> str:
    """Plan as staged, diff-annotated text."""
    ascii_mode = _use_ascii(ascii_mode)
    s = plan.summary
    lines = _box(f"MATLAS PLAN {plan.id} ({plan.mode})", ascii_mode=ascii_mode)
    lines.append(f"Project: {plan.project_id or '(new project)'}")
    lines.append(
        f"Changes: {s.create} to create, {s.update} to update, {s.delete} to delete, "
        f"{s.no_op} unchanged"
    )
    lines.append("")

    if not plan.has_changes:
        lines.append("No changes. Observed state matches the document.")

    for stage, ops in plan.stages().items():
        shown = [op for op in ops if op.actionable or show_noop]
        if not shown:
            continue
        lines.extend(_section(f"STAGE {stage}"))
        for op in shown:
            symbol = _SYMBOLS[op.type][0 if ascii_mode else 1]
            deps = f"  (after {', '.join(op.dependencies)})" if op.dependencies else ""
            lines.append(f"  {symbol} {op.id} {op.type:<6} {op.kind} '{op.name}'{deps}")
            if op.type == OperationType.UPDATE.value or op.replacement:
                for change in op.diff:
                    flag = " [immutable]" if change.immutable else ""
                    lines.append(f"        {change.path}: {_short(change.before)} -> {_short(change.after)}{flag}")
        lines.append("")

    if plan.warnings:
        lines.extend(_section("WARNINGS"))
        for warning in plan.warnings:
            lines.append(f"  ! {warning}")
        lines.append("")
    return "\n".join(lines)


def format_issues(issues: IssueSet, ascii_mode: Optional[bool] = None) -> str:
    """Validation findings grouped by severity."""
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box("MATLAS VALIDATION", ascii_mode=ascii_mode)
    lines.append(f"{len(issues.errors)} error(s), {len(issues.warnings)} warning(s), {len(issues.infos)} info")
    lines.append("")
    for title, group in (("ERRORS", issues.errors), ("WARNINGS", issues.warnings), ("INFO", issues.infos)):
        if not group:
            continue
        lines.extend(_section(title))
        for issue in group:
            lines.append(f"  [{issue.code}] {issue.resource or 'document'}"
                         + (f" ({issue.field})" if issue.field else "")
                         + f": {issue.message}")
            if issue.suggestion:
                lines.append(f"      -> {issue.suggestion}")
        lines.append("")
    if issues.ok:
        lines.append("Document is valid.")
    return "\n".join(lines)


def format_simulation(report: SimulationReport, ascii_mode: Optional[bool] = None) -> str:
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box(f"MATLAS DRY RUN ({report.mode})", ascii_mode=ascii_mode)
    counts = ", ".join(f"{n} {t}" for t, n in sorted(report.counts_by_type.items())) or "no operations"
    lines.append(f"Plan {report.plan_id}: {counts}")
    lines.append(f"Estimated duration: ~{report.estimated_duration_seconds}s")
    lines.append("")
    for op in report.operations:
        prediction = f" [{op.prediction}]" if op.prediction else ""
        destructive = " (destructive)" if op.destructive else ""
        lines.append(f"  {op.operation_id} stage {op.stage} {op.type} {op.kind} '{op.name}'{destructive}{prediction}")
        if op.reason:
            lines.append(f"      {op.reason}")
        for problem in op.unsatisfied_dependencies:
            lines.append(f"      ! {problem}")
    for warning in report.warnings:
        lines.append(f"  ! {warning}")
    lines.append("")
    lines.append("Dry run OK." if report.ok else "Dry run found problems.")
    return "\n".join(lines)


def format_progress(result: OperationResult, ascii_mode: Optional[bool] = None) -> str:
    """One line per operation status change."""
    ascii_mode = _use_ascii(ascii_mode)
    mark = _STATUS_MARKS.get(result.status, ("?", "?"))[0 if ascii_mode else 1]
    line = f"{mark} {result.operation_id} {result.type} {result.kind} '{result.name}' {result.status}"
    if result.skip_reason:
        line += f" ({result.skip_reason})"
    if result.duration_seconds is not None:
        line += f" [{result.duration_seconds:.1f}s]"
    if result.error:
        line += f": {result.error.message}"
    return line


def format_result(result: ExecutionResult, ascii_mode: Optional[bool] = None) -> str:
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box(f"MATLAS RUN {result.run_id}: {result.status}", ascii_mode=ascii_mode)
    counts = ", ".join(f"{n} {s}" for s, n in sorted(result.summary.items()) if s != "total")
    lines.append(f"{result.summary.get('total', 0)} operation(s): {counts or 'nothing to do'}")
    lines.append("")
    for op in result.results:
        lines.append("  " + format_progress(op, ascii_mode))
        for warning in op.warnings:
            lines.append(f"      ! {warning}")
    for error in result.errors:
        lines.append(f"  ERROR: {error}")
    for warning in result.warnings:
        lines.append(f"  ! {warning}")
    return "\n".join(lines)


def format_state(state: ProjectState, ascii_mode: Optional[bool] = None) -> str:
    """Discovered resources as a per-kind listing."""
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box(f"MATLAS DISCOVERY {state.project_id or ''}".rstrip(), ascii_mode=ascii_mode)
    lines.append(f"{state.count()} resource(s) at {state.snapshot_time.isoformat()}")
    lines.append("")
    for kind in state.kinds():
        resources = state.of(kind)
        lines.extend(_section(f"{kind} ({len(resources)})"))
        for observed in resources:
            status = f" [{observed.status}]" if observed.status else ""
            lines.append(f"  {observed.name}  key={observed.key}{status}")
        lines.append("")
    for kind, error in sorted(state.errors.items()):
        lines.append(f"  ! {kind}: discovery failed: {error}")
    if state.alerts:
        lines.append(f"  {len(state.alerts)} open alert(s)")
    return "\n".join(lines)


def summarize_plan(plan: Plan) -> str:
    s = plan.summary
    return (f"{plan.id}: {s.create} create, {s.update} update, {s.delete} delete, "
            f"{s.no_op} unchanged in {s.stages} stage(s)")


def summarize_result(result: ExecutionResult) -> str:
    counts = ", ".join(f"{n} {s.lower()}" for s, n in sorted(result.summary.items()) if s != "total")
    return f"{result.run_id} {result.status}: {counts or 'nothing to do'}"


def summarize_state(state: ProjectState) -> str:
    per_kind = ", ".join(f"{len(state.of(kind))} {kind}" for kind in state.kinds())
    line = f"{state.count()} resource(s)" + (f": {per_kind}" if per_kind else "")
    if state.errors:
        line += f" (failed: {', '.join(sorted(state.errors))})"
    return line


def summarize_issues(issues: IssueSet) -> str:
    verdict = "valid" if issues.ok else "invalid"
    return f"{verdict}: {len(issues.errors)} error(s), {len(issues.warnings)} warning(s), {len(issues.infos)} info"


def format_diff(plan: Plan, ascii_mode: Optional[bool] = None) -> str:
    """Field-level differences between the document and Atlas."""
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box(f"MATLAS DIFF {plan.project_id or '(new project)'}", ascii_mode=ascii_mode)
    changed = plan.actionable()
    if not changed:
        lines.append("No differences.")
        return "\n".join(lines)
    for op in changed:
        symbol = _SYMBOLS[op.type][0 if ascii_mode else 1]
        note = " (replacement)" if op.replacement else ""
        lines.append(f"{symbol} {op.kind} '{op.name}'{note}")
        if op.type == OperationType.CREATE.value and op.desired is not None and not op.diff:
            for field, value in sorted(op.desired.spec.items()):
                lines.append(f"    + {field}: {_short(value, 60)}")
        for change in op.diff:
            flag = " [immutable]" if change.immutable else ""
            lines.append(f"    ~ {change.path}: {_short(change.before)} -> {_short(change.after)}{flag}")
        lines.append("")
    lines.append(summarize_plan(plan))
    return "\n".join(lines)
