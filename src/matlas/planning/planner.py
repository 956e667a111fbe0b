"""Build a staged execution plan from desired and observed state."""

import hashlib
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple
import networkx as nx
from .diff import diff_specs
from ..contracts.plan import (
    OperationType,
    Plan,
    PlanMode,
    PlannedOperation,
    PlanSummary,
)
from ..contracts.state import ObservedResource, ProjectState
from ..kinds.registry import get_handler
from ..manifest.models import ApplyDocument, Resource, ResourceKind, ResourceMetadata
from ..utils.errors import PlanError
from ..utils.logging import get_logger

logger = get_logger("planning.planner")

_TYPE_ORDER = {
    OperationType.DELETE.value: 0,
    OperationType.CREATE.value: 1,
    OperationType.UPDATE.value: 2,
    OperationType.NO_OP.value: 3,
}


class _Draft:
    """Mutable operation under construction; becomes a PlannedOperation."""

    def __init__(self, op_type: str, kind: str, name: str, key: str, desired: Optional[Resource] = None,
                 observed: Optional[ObservedResource] = None):
        self.type = op_type
        self.kind = kind
        self.name = name
        self.key = key
        self.desired = desired
        self.observed = observed
        self.diff = []
        self.warnings: List[str] = []
        self.replacement = False
        self.deps: Set[int] = set()
        self.stage = 0

    @property
    def rank(self) -> int:
        return get_handler(self.kind).rank

    def sort_key(self):
        return (self.stage, self.rank, self.name, self.key, _TYPE_ORDER[self.type])


class Planner:
    """
    Classifies every desired and observed resource, derives lifecycle
    dependencies between the resulting operations and assigns stages.
    """

    def __init__(self, document: ApplyDocument, state: ProjectState, mode: str = PlanMode.APPLY.value,
                 preserve_existing: bool = True, destroy_discovered: bool = False):
        self.document = document
        self.state = state
        self.mode = PlanMode(mode).value
        self.preserve_existing = preserve_existing
        self.destroy_discovered = destroy_discovered
        self.authoritative = document.authoritative
        self.warnings: List[str] = []
        self._drafts: List[_Draft] = []

    def build(self) -> Plan:
        """
        Returns:
            Plan with deterministic ids and content hash

        Raises:
            PlanError: If the operation graph has a cycle
        """
        if self.mode == PlanMode.DESTROY.value:
            self._classify_destroy()
        else:
            self._classify_desired()
            self._classify_unmanaged()

        for kind in sorted(self.state.errors):
            if kind in self.document.kinds() or self.mode == PlanMode.DESTROY.value:
                self.warnings.append(f"{kind} could not be discovered; its resources were treated as absent")

        self._link()
        self._assign_stages()
        plan = self._finalize()
        logger.info(
            f"Plan {plan.id}: {plan.summary.create} create, {plan.summary.update} update, "
            f"{plan.summary.delete} delete, {plan.summary.no_op} no-op in {plan.summary.stages} stage(s)"
        )
        return plan

    # -- classification -------------------------------------------------------

    def _classify_desired(self) -> None:
        seen: Set[Tuple[str, str]] = set()
        for resource in self.document.resources:
            handler = get_handler(resource.kind)
            key = handler.resource_key(resource)
            if (resource.kind, key) in seen:
                continue
            seen.add((resource.kind, key))
            observed = self.state.find(resource.kind, key)
            if observed is None:
                self._add(OperationType.CREATE.value, resource.kind, resource.metadata.name, key, desired=resource)
                continue

            changes = diff_specs(handler, handler.normalized(resource), observed.spec, self.authoritative)
            if not changes:
                self._add(OperationType.NO_OP.value, resource.kind, resource.metadata.name, key,
                          desired=resource, observed=observed)
                continue

            immutable = sorted({c.path.split(".")[0] for c in changes if c.immutable})
            if immutable or handler.replace_on_update:
                reason = (f"immutable field(s) {', '.join(immutable)} changed" if immutable
                          else f"{resource.kind} cannot be updated in place")
                warning = f"{resource.kind} '{resource.metadata.name}' will be replaced: {reason}"
                delete = self._add(OperationType.DELETE.value, resource.kind, resource.metadata.name, key,
                                   observed=observed)
                create = self._add(OperationType.CREATE.value, resource.kind, resource.metadata.name, key,
                                   desired=resource, observed=observed)
                for draft in (delete, create):
                    draft.replacement = True
                    draft.diff = changes
                    draft.warnings.append(warning)
                create.deps.add(self._drafts.index(delete))
                self.warnings.append(warning)
                continue

            update = self._add(OperationType.UPDATE.value, resource.kind, resource.metadata.name, key,
                               desired=resource, observed=observed)
            update.diff = changes

    def _classify_unmanaged(self) -> None:
        """Observed but not desired: preserved unless authoritative and not preserving."""
        if self.preserve_existing or not self.authoritative:
            return
        desired = {(d.kind, d.key) for d in self._drafts}
        for observed in self.state.all():
            if observed.kind == ResourceKind.PROJECT.value or (observed.kind, observed.key) in desired:
                continue
            self._delete(observed)

    def _classify_destroy(self) -> None:
        if self.destroy_discovered:
            targets = [o for o in self.state.all() if o.kind != ResourceKind.PROJECT.value]
        else:
            targets = []
            for resource in self.document.resources:
                key = get_handler(resource.kind).resource_key(resource)
                observed = self.state.find(resource.kind, key)
                if observed is None:
                    logger.debug(f"{resource.ref} not found; nothing to destroy")
                    continue
                if resource.retained:
                    self.warnings.append(f"{resource.ref} has deletionPolicy Retain and is kept")
                    continue
                targets.append(observed)
        seen: Set[Tuple[str, str]] = set()
        for observed in targets:
            if (observed.kind, observed.key) not in seen:
                seen.add((observed.kind, observed.key))
                self._delete(observed)

    def _delete(self, observed: ObservedResource) -> None:
        self._add(OperationType.DELETE.value, observed.kind, observed.name, observed.key, observed=observed)

    def _add(self, op_type: str, kind: str, name: str, key: str, desired: Optional[Resource] = None,
             observed: Optional[ObservedResource] = None) -> _Draft:
        draft = _Draft(op_type, kind, name, key, desired, observed)
        self._drafts.append(draft)
        return draft

    # -- dependencies -----------------------------------------------------------

    def _link(self) -> None:
        """
        Lifecycle dependencies:
        - a Create or Update of X waits for the Create/Update of every Y it references;
        - a Delete of Y waits for the Delete/Update of every X whose observed spec references Y;
        - everything inside a project waits for that project's Create, and a
          project Delete waits for every other Delete;
        - metadata.dependsOn adds the same edges as a reference.
        """
        writes: Dict[Tuple[str, str], List[int]] = defaultdict(list)
        by_name: Dict[Tuple[str, str], Tuple[str, str]] = {}
        deletes: Dict[Tuple[str, str], int] = {}
        for index, draft in enumerate(self._drafts):
            if draft.type in (OperationType.CREATE.value, OperationType.UPDATE.value):
                writes[(draft.kind, draft.key)].append(index)
                by_name[(draft.kind, draft.name)] = (draft.kind, draft.key)
            elif draft.type == OperationType.DELETE.value:
                deletes[(draft.kind, draft.key)] = index

        project_creates = [i for i, d in enumerate(self._drafts)
                           if d.kind == ResourceKind.PROJECT.value and d.type == OperationType.CREATE.value]

        for index, draft in enumerate(self._drafts):
            handler = get_handler(draft.kind)
            if draft.type in (OperationType.CREATE.value, OperationType.UPDATE.value):
                for ref in handler.references(draft.desired):
                    target = (ref.kind, ref.key)
                    if target not in writes:
                        target = by_name.get((ref.kind, ref.key), target)
                    draft.deps.update(i for i in writes.get(target, []) if i != index)
                for target in self._explicit_targets(draft.desired):
                    draft.deps.update(i for i in writes.get(target, []) if i != index)
                if handler.requires_project:
                    draft.deps.update(project_creates)

            if draft.type in (OperationType.DELETE.value, OperationType.UPDATE.value) and draft.observed is not None:
                as_resource = _observed_resource(draft.observed)
                targets = [(r.kind, r.key) for r in handler.references(as_resource)]
                if draft.desired is not None:
                    targets.extend(self._explicit_targets(draft.desired))
                for target in targets:
                    delete_index = deletes.get(target)
                    if delete_index is None or delete_index == index:
                        continue
                    # A replaced target is recreated before X's update runs.
                    if self._drafts[delete_index].replacement and draft.type != OperationType.DELETE.value:
                        continue
                    self._drafts[delete_index].deps.add(index)

        for index, draft in enumerate(self._drafts):
            if draft.kind == ResourceKind.PROJECT.value and draft.type == OperationType.DELETE.value:
                draft.deps.update(
                    i for i, other in enumerate(self._drafts)
                    if other.type == OperationType.DELETE.value and other.kind != ResourceKind.PROJECT.value
                )

    def _explicit_targets(self, resource: Optional[Resource]) -> List[Tuple[str, str]]:
        if resource is None:
            return []
        targets = []
        for entry in resource.metadata.depends_on:
            kind, _, name = entry.rpartition(":")
            for other in self.document.resources:
                if other.metadata.name == name and (not kind or other.kind == kind):
                    targets.append((other.kind, get_handler(other.kind).resource_key(other)))
                    break
        return targets

    def _assign_stages(self) -> None:
        graph = nx.DiGraph()
        for index, draft in enumerate(self._drafts):
            if draft.type == OperationType.NO_OP.value:
                continue
            graph.add_node(index)
            for dep in draft.deps:
                if self._drafts[dep].type != OperationType.NO_OP.value:
                    graph.add_edge(dep, index)
        try:
            order = list(nx.topological_sort(graph))
        except nx.NetworkXUnfeasible:
            cycle = nx.find_cycle(graph)
            path = " -> ".join(self._drafts[edge[0]].name for edge in cycle)
            raise PlanError(f"Operation dependencies form a cycle: {path}")
        for index in order:
            preds = list(graph.predecessors(index))
            self._drafts[index].stage = 1 + max(self._drafts[p].stage for p in preds) if preds else 0

    # -- output -----------------------------------------------------------------

    def _finalize(self) -> Plan:
        ordered = sorted(range(len(self._drafts)), key=lambda i: self._drafts[i].sort_key())
        ids = {index: f"op-{position + 1:03d}" for position, index in enumerate(ordered)}

        operations = []
        for index in ordered:
            draft = self._drafts[index]
            operations.append(
                PlannedOperation(
                    id=ids[index],
                    kind=draft.kind,
                    name=draft.name,
                    key=draft.key,
                    type=draft.type,
                    desired=draft.desired,
                    observed=draft.observed,
                    diff=draft.diff,
                    dependencies=sorted(ids[d] for d in draft.deps if self._drafts[d].type != OperationType.NO_OP.value),
                    stage=draft.stage,
                    priority=draft.rank,
                    warnings=list(draft.warnings),
                    destructive=draft.type == OperationType.DELETE.value,
                    replacement=draft.replacement,
                )
            )

        plan = Plan(
            id="",
            project_id=self.state.project_id,
            mode=self.mode,
            authoritative=self.authoritative,
            operations=operations,
            summary=_summarize(operations),
            warnings=sorted(set(self.warnings)),
        )
        digest = hashlib.sha256(plan.to_json().encode("utf-8")).hexdigest()[:16]
        plan.id = f"plan-{digest}"
        return plan


def _observed_resource(observed: ObservedResource) -> Resource:
    return Resource(kind=observed.kind, metadata=ResourceMetadata(name=observed.name), spec=observed.spec)


def _summarize(operations: List[PlannedOperation]) -> PlanSummary:
    summary = PlanSummary(total=len(operations))
    by_kind: Dict[str, Dict[str, int]] = {}
    stages = set()
    for op in operations:
        counts = by_kind.setdefault(op.kind, {})
        counts[op.type] = counts.get(op.type, 0) + 1
        if op.type == OperationType.CREATE.value:
            summary.create += 1
        elif op.type == OperationType.UPDATE.value:
            summary.update += 1
        elif op.type == OperationType.DELETE.value:
            summary.delete += 1
        else:
            summary.no_op += 1
        if op.actionable:
            stages.add(op.stage)
        if op.destructive:
            summary.destructive += 1
    summary.stages = len(stages)
    summary.by_kind = by_kind
    return summary


def build_plan(document: ApplyDocument, state: ProjectState, mode: str = PlanMode.APPLY.value,
               preserve_existing: bool = True, destroy_discovered: bool = False) -> Plan:
    """Plan the operations converging `state` to `document`."""
    return Planner(document, state, mode, preserve_existing, destroy_discovered).build()
