"""Abstract base class for resource kind handlers."""

import copy
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
from .schema import PropertySchema
from ..contracts.plan import OperationType, PlannedOperation
from ..contracts.simulation import Prediction
from ..contracts.state import ObservedResource
from ..manifest.models import KIND_RANK, Resource
from ..utils.context import Context
from ..utils.errors import FatalServiceError, NotFoundError
from ..utils.logging import get_logger

logger = get_logger("kinds.base")

_NAME_SANITIZER = re.compile(r"[^a-zA-Z0-9._-]+")


class Reference(NamedTuple):
    """A named dependency from one resource onto another."""
    kind: str
    key: str
    field: str
    required: bool = True


class Outcome(NamedTuple):
    """Result of a dispatched service call."""
    atlas_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class RunEnv:
    """
    What a handler needs to talk to Atlas for one operation or discovery task.

    `temp_users` is a TempUserManager when MongoDB-level access may be minted,
    None in read-only contexts such as dry runs.
    """

    def __init__(self, services, ctx: Context, project_id: Optional[str], temp_users=None,
                 settings=None, annotations: Optional[Dict[str, str]] = None):
        self.services = services
        self.ctx = ctx
        self.project_id = project_id
        self.temp_users = temp_users
        self.settings = settings
        self.annotations = annotations or {}


class KindHandler(ABC):
    """
    Capabilities of one resource kind.

    The planner, validator, discovery and executor work generically through
    these capabilities; no stage switches on kind strings.
    """

    kind: str = ""
    service_attr: str = ""
    schema: PropertySchema = PropertySchema(type="object")

    # Fields forming the natural key; matched, never diffed.
    identity_fields: Tuple[str, ...] = ()
    # Changing these turns an Update into Delete + Create.
    immutable_fields: Tuple[str, ...] = ()
    # Compared ignoring case (stored upper case).
    case_insensitive_fields: Tuple[str, ...] = ()
    # Lists compared as sets.
    set_fields: Tuple[str, ...] = ()
    # Sent to Atlas but never read back, so never diffed.
    write_only_fields: Tuple[str, ...] = ()
    # Accepted in manifests but not part of Atlas state.
    ignored_fields: Tuple[str, ...] = ("projectName", "dependsOn")
    # Legacy or alternate spellings -> canonical field name.
    field_aliases: Dict[str, str] = {}
    defaults: Dict[str, Any] = {}

    async_create: bool = False
    replace_on_update: bool = False
    requires_project: bool = True
    # Seconds, used by dry-run duration estimates.
    estimates: Dict[str, int] = {"Create": 60, "Update": 30, "Delete": 15}

    @property
    def rank(self) -> int:
        return KIND_RANK.get(self.kind, len(KIND_RANK))

    # -- normalization and identity -----------------------------------------

    def normalize(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        """Canonical spec form: aliases resolved, strings trimmed, defaults applied."""
        data = _trim(copy.deepcopy(spec or {}))
        for alias, canonical in self.field_aliases.items():
            if alias in data:
                value = data.pop(alias)
                data.setdefault(canonical, value)
        for field, value in self.defaults.items():
            if data.get(field) is None:
                data[field] = copy.deepcopy(value)
        for field in self.case_insensitive_fields:
            if isinstance(data.get(field), str):
                data[field] = data[field].upper()
        for field in self.set_fields:
            if isinstance(data.get(field), list):
                data[field] = canonical_set(data[field])
        data = {k: v for k, v in data.items() if v is not None}
        return self.normalize_spec(data)

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        """Kind-specific normalization hook."""
        return spec

    def normalized(self, resource: Resource) -> Dict[str, Any]:
        return self.normalize(resource.spec)

    @abstractmethod
    def key(self, name: str, spec: Dict[str, Any]) -> str:
        """Natural key from a normalized spec."""
        pass

    def resource_key(self, resource: Resource) -> str:
        return self.key(resource.metadata.name, self.normalized(resource))

    def references(self, resource: Resource) -> List[Reference]:
        """Other resources this one names."""
        return []

    def diffable_fields(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        excluded = set(self.identity_fields) | set(self.write_only_fields) | set(self.ignored_fields)
        return {k: v for k, v in spec.items() if k not in excluded}

    # -- Atlas translation --------------------------------------------------

    @abstractmethod
    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        """Atlas request payload for a desired resource."""
        pass

    @abstractmethod
    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        """Observed resource from an Atlas payload."""
        pass

    def include_observed(self, payload: Dict[str, Any]) -> bool:
        """False for Atlas objects the engine must never manage."""
        return True

    def observed(self, name: str, spec: Dict[str, Any], atlas_id: str, payload: Dict[str, Any],
                 status: Optional[str] = None, created: Any = None, updated: Any = None) -> ObservedResource:
        spec = self.normalize(spec)
        return ObservedResource(
            kind=self.kind,
            name=sanitize_name(name),
            key=self.key(name, spec),
            atlas_id=str(atlas_id),
            spec=spec,
            status=status,
            created_at=parse_time(created),
            updated_at=parse_time(updated),
            raw=payload,
        )

    # -- service dispatch ---------------------------------------------------

    def service(self, env: RunEnv):
        svc = getattr(env.services, self.service_attr, None)
        if svc is None:
            raise FatalServiceError(f"No service configured for {self.kind}")
        return svc

    def discover(self, env: RunEnv, page_size: int = 500, document=None) -> List[ObservedResource]:
        """
        Observed resources of this kind.

        Uses the service's list-all form when available; otherwise requests
        pages of `page_size` until a short page comes back.
        """
        svc = self.service(env)
        if svc.supports_list_all:
            payloads = svc.list(env.ctx, env.project_id)
        else:
            payloads = []
            page = 1
            while True:
                env.ctx.check()
                batch = svc.list_page(env.ctx, env.project_id, page, page_size)
                payloads.extend(batch)
                if len(batch) < page_size:
                    break
                page += 1
        return [self.from_atlas(p) for p in payloads if self.include_observed(p)]

    def find(self, env: RunEnv, key: str) -> Optional[ObservedResource]:
        """Current observed resource with this key, if any."""
        for observed in self.discover(env):
            if observed.key == key:
                return observed
        return None

    def create(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        payload = self.service(env).create(env.ctx, env.project_id, self.to_atlas(op.desired))
        return Outcome(self.atlas_id(payload or {}), payload)

    def update(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        payload = self.service(env).update(env.ctx, env.project_id, op.observed.atlas_id, self.to_atlas(op.desired))
        return Outcome(op.observed.atlas_id, payload)

    def delete(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        self.service(env).delete(env.ctx, env.project_id, op.observed.atlas_id)
        return Outcome(op.observed.atlas_id, None)

    def atlas_id(self, payload: Dict[str, Any]) -> Optional[str]:
        value = payload.get("id")
        return str(value) if value is not None else None

    # -- post-conditions ----------------------------------------------------

    def ready_state(self, env: RunEnv, atlas_id: str) -> str:
        """AVAILABLE, PENDING or FAILED for asynchronously provisioned kinds."""
        return "AVAILABLE"

    def is_gone(self, env: RunEnv, atlas_id: str) -> bool:
        try:
            self.service(env).get(env.ctx, env.project_id, atlas_id)
        except NotFoundError:
            return True
        return False

    # -- dry-run probes -----------------------------------------------------

    def probe(self, env: RunEnv, op: PlannedOperation) -> Tuple[Prediction, str]:
        """Read-only precondition check for a planned operation."""
        current = self.find(env, op.key)
        if op.type == OperationType.CREATE.value:
            if current is not None and not op.replacement:
                return Prediction.LIKELY_FAIL, f"{self.kind} '{op.key}' already exists"
            return self.probe_create(env, op)
        if op.type in (OperationType.UPDATE.value, OperationType.DELETE.value):
            if current is None:
                return Prediction.LIKELY_FAIL, f"{self.kind} '{op.key}' not found"
            return Prediction.LIKELY_SUCCEED, "resource exists"
        return Prediction.LIKELY_SUCCEED, "no change"

    def probe_create(self, env: RunEnv, op: PlannedOperation) -> Tuple[Prediction, str]:
        return Prediction.LIKELY_SUCCEED, "name is free"

    def estimate(self, op_type: str) -> int:
        return self.estimates.get(op_type, 0)


def _trim(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {str(k): _trim(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_trim(v) for v in value]
    return value


def canonical_set(items: List[Any]) -> List[Any]:
    """Deduplicated list in a stable order, for set-valued fields."""
    seen = {}
    for item in items:
        seen.setdefault(json.dumps(item, sort_keys=True, default=str), item)
    return [seen[k] for k in sorted(seen)]


def sanitize_name(value: Any) -> str:
    cleaned = _NAME_SANITIZER.sub("-", str(value)).strip("-")
    return cleaned[:64] or "unnamed"


def parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
