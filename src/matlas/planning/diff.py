"""Field-level diff between desired and observed specs."""

from typing import Any, Dict, List
from ..contracts.plan import ChangeType, FieldChange
from ..kinds.base import KindHandler


def is_empty(value: Any) -> bool:
    """None, '', [] and {} all mean 'not set'."""
    return value is None or value == "" or value == [] or value == {}


def values_equal(a: Any, b: Any) -> bool:
    if is_empty(a) and is_empty(b):
        return True
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    return a == b


def diff_specs(handler: KindHandler, desired: Dict[str, Any], observed: Dict[str, Any],
               authoritative: bool = False) -> List[FieldChange]:
    """
    Compare two normalized specs.

    Fields absent on the desired side mean "leave as observed" unless
    `authoritative`, in which case observed-only fields are reported as
    removed. Identity, write-only and ignored fields are never compared.

    Returns:
        Changes sorted by path
    """
    wanted = handler.diffable_fields(desired)
    current = handler.diffable_fields(observed)
    immutable = set(handler.immutable_fields)

    changes: List[FieldChange] = []
    fields = set(wanted) | (set(current) if authoritative else set())
    for field in sorted(fields):
        after = wanted.get(field)
        before = current.get(field)
        if field not in wanted and not authoritative:
            continue
        for change in _diff_value(field, before, after):
            change.immutable = field in immutable
            changes.append(change)
    return changes


def _diff_value(path: str, before: Any, after: Any) -> List[FieldChange]:
    if values_equal(before, after):
        return []
    if isinstance(before, dict) and isinstance(after, dict):
        changes: List[FieldChange] = []
        for key in sorted(set(before) | set(after)):
            changes.extend(_diff_value(f"{path}.{key}", before.get(key), after.get(key)))
        return changes
    if is_empty(before):
        change_type = ChangeType.ADDED
    elif is_empty(after):
        change_type = ChangeType.REMOVED
    else:
        change_type = ChangeType.MODIFIED
    return [FieldChange(path=path, before=before, after=after, change_type=change_type)]
