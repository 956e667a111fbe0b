"""SearchIndex kind."""

from typing import Dict, Any, List, Tuple
from .base import KindHandler, Reference, RunEnv
from .schema import obj, string, PropertySchema
from ..contracts.plan import PlannedOperation
from ..contracts.simulation import Prediction
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind

# Advanced search features folded into the index definition.
_DEFINITION_EXTRAS = ("analyzers", "synonyms")


class SearchIndexKind(KindHandler):
    """
    Atlas Search and Vector Search indexes, keyed by
    '<cluster>/<database>/<collection>/<indexName>'.

    Definition changes are applied as Delete + Create.
    """

    kind = ResourceKind.SEARCH_INDEX.value
    service_attr = "search"
    schema = obj(
        {
            "clusterName": string(min_length=1, max_length=64),
            "databaseName": string(min_length=1, max_length=63),
            "collectionName": string(min_length=1, max_length=255),
            "indexName": string(min_length=1, max_length=64),
            "indexType": string(enum=["search", "vectorSearch"]),
            "definition": PropertySchema(type="object"),
            "analyzers": PropertySchema(type="array"),
            "synonyms": PropertySchema(type="array"),
            "projectName": string(),
        },
        required=["clusterName", "databaseName", "collectionName", "indexName", "definition"],
    )
    identity_fields = ("clusterName", "databaseName", "collectionName", "indexName")
    field_aliases = {"database": "databaseName", "name": "indexName", "type": "indexType"}
    defaults = {"indexType": "search"}
    replace_on_update = True
    estimates = {"Create": 120, "Update": 180, "Delete": 30}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return "/".join(str(spec.get(f, "")) for f in self.identity_fields)

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        definition = dict(spec.get("definition") or {})
        for extra in _DEFINITION_EXTRAS:
            if extra in spec:
                definition.setdefault(extra, spec.pop(extra))
        spec["definition"] = definition
        return spec

    def references(self, resource: Resource) -> List[Reference]:
        cluster = resource.spec.get("clusterName")
        if not cluster:
            return []
        return [Reference(ResourceKind.CLUSTER.value, str(cluster), "clusterName")]

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        return {
            "clusterName": spec["clusterName"],
            "database": spec["databaseName"],
            "collectionName": spec["collectionName"],
            "name": spec["indexName"],
            "type": spec.get("indexType", "search"),
            "definition": spec.get("definition", {}),
        }

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        definition = payload.get("latestDefinition") or payload.get("definition") or {}
        spec = {
            "clusterName": payload.get("clusterName"),
            "databaseName": payload.get("database"),
            "collectionName": payload.get("collectionName"),
            "indexName": payload.get("name"),
            "indexType": payload.get("type", "search"),
            "definition": definition,
        }
        atlas_id = f"{payload.get('clusterName')}/{payload.get('indexID')}"
        return self.observed(payload.get("name"), spec, atlas_id, payload, status=payload.get("status"))

    def atlas_id(self, payload: Dict[str, Any]):
        if payload.get("indexID") is None:
            return None
        return f"{payload.get('clusterName')}/{payload['indexID']}"

    def probe_create(self, env: RunEnv, op: PlannedOperation) -> Tuple[Prediction, str]:
        cluster = op.desired.spec.get("clusterName") if op.desired else None
        clusters = getattr(env.services, "clusters", None)
        if cluster and clusters is not None:
            names = {c.get("name") for c in clusters.list(env.ctx, env.project_id)}
            if cluster not in names:
                return Prediction.UNCERTAIN, f"cluster '{cluster}' does not exist yet"
        return Prediction.LIKELY_SUCCEED, "index name is free"
