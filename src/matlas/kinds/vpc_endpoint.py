"""VPCEndpoint kind (private endpoint services)."""

from typing import Dict, Any
from .base import KindHandler
from .catalog import PROVIDERS, canonical_region
from .schema import obj, string
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind


class VPCEndpointKind(KindHandler):
    """One endpoint service per provider region; nothing is updatable in place."""

    kind = ResourceKind.VPC_ENDPOINT.value
    service_attr = "vpc_endpoints"
    schema = obj(
        {
            "provider": string(enum=list(PROVIDERS), case_insensitive=True),
            "region": string(min_length=1),
            "endpointId": string(),
            "projectName": string(),
        },
        required=["provider", "region"],
    )
    identity_fields = ("provider", "region")
    case_insensitive_fields = ("provider",)
    ignored_fields = ("projectName", "dependsOn", "endpointId")
    field_aliases = {"cloudProvider": "provider", "providerName": "provider", "regionName": "region"}
    estimates = {"Create": 180, "Update": 0, "Delete": 120}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return f"{spec.get('provider', '')}/{spec.get('region', '')}"

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if spec.get("region"):
            spec["region"] = canonical_region(spec["region"])
        return spec

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        region = spec["region"]
        if spec["provider"] == "AWS":
            region = region.lower().replace("_", "-")
        return {"providerName": spec["provider"], "region": region}

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        provider = str(payload.get("cloudProvider") or "").upper()
        spec = {"provider": provider, "region": payload.get("regionName") or payload.get("region")}
        atlas_id = f"{provider}/{payload.get('id')}"
        name = f"{provider}-{spec['region']}".lower()
        return self.observed(name, spec, atlas_id, payload, status=payload.get("status"))

    def atlas_id(self, payload: Dict[str, Any]):
        if payload.get("id") is None:
            return None
        return f"{str(payload.get('cloudProvider') or '').upper()}/{payload['id']}"
