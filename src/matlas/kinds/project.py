"""Project kind."""

from typing import Dict, Any
from .base import KindHandler
from .schema import obj, string, string_map
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind
from ..utils.tags import tags_from_atlas, tags_to_atlas


class ProjectKind(KindHandler):
    kind = ResourceKind.PROJECT.value
    service_attr = "projects"
    schema = obj(
        {
            "name": string(min_length=1, max_length=64),
            "organizationId": string(pattern=r"^[a-fA-F0-9]{24}$"),
            "tags": string_map(),
        },
        required=["organizationId"],
    )
    identity_fields = ("name",)
    immutable_fields = ("organizationId",)
    ignored_fields = ("dependsOn",)
    field_aliases = {"orgId": "organizationId"}
    requires_project = False
    estimates = {"Create": 10, "Update": 5, "Delete": 10}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return spec.get("name") or name

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if "organizationId" in spec:
            spec["organizationId"] = str(spec["organizationId"]).lower()
        return spec

    def normalized(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalize(resource.spec)
        spec.setdefault("name", resource.metadata.name)
        return spec

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {"name": spec["name"], "orgId": spec.get("organizationId")}
        if spec.get("tags"):
            payload["tags"] = tags_to_atlas(spec["tags"])
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        spec: Dict[str, Any] = {"name": payload.get("name"), "organizationId": payload.get("orgId")}
        tags = tags_from_atlas(payload.get("tags"))
        if tags:
            spec["tags"] = tags
        return self.observed(payload.get("name"), spec, payload.get("id"), payload, created=payload.get("created"))

    def discover(self, env, page_size: int = 500, document=None):
        if not env.project_id:
            return []
        return super().discover(env, page_size, document)
