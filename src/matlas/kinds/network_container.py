"""NetworkContainer kind (Atlas-side VPC/VNet per provider region)."""

from typing import Dict, Any
from .base import KindHandler
from .catalog import PROVIDERS, canonical_region
from .schema import obj, string
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind


def container_key(provider: str, region: str) -> str:
    provider = str(provider or "").upper()
    # GCP containers are global: one per project.
    if provider == "GCP":
        return "GCP"
    return f"{provider}/{canonical_region(region)}"


class NetworkContainerKind(KindHandler):
    kind = ResourceKind.NETWORK_CONTAINER.value
    service_attr = "network_containers"
    schema = obj(
        {
            "provider": string(enum=list(PROVIDERS), case_insensitive=True),
            "region": string(min_length=1),
            "cidrBlock": string(pattern=r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$"),
            "projectName": string(),
        },
        required=["provider", "cidrBlock"],
    )
    identity_fields = ("provider", "region")
    case_insensitive_fields = ("provider",)
    field_aliases = {"providerName": "provider", "atlasCidrBlock": "cidrBlock", "regionName": "region"}
    estimates = {"Create": 60, "Update": 30, "Delete": 15}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return container_key(spec.get("provider"), spec.get("region"))

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if spec.get("region"):
            spec["region"] = canonical_region(spec["region"])
        return spec

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {"providerName": spec["provider"], "atlasCidrBlock": spec["cidrBlock"]}
        if spec["provider"] == "AWS":
            payload["regionName"] = spec.get("region")
        elif spec["provider"] == "AZURE":
            payload["region"] = spec.get("region")
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        spec: Dict[str, Any] = {
            "provider": payload.get("providerName"),
            "cidrBlock": payload.get("atlasCidrBlock"),
        }
        region = payload.get("regionName") or payload.get("region")
        if region:
            spec["region"] = region
        name = "-".join(p for p in (spec["provider"], region) if p).lower()
        return self.observed(name, spec, payload.get("id"), payload)
