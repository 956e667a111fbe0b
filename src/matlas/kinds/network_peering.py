"""NetworkPeering kind (asynchronous provisioning)."""

from typing import Dict, Any, List
from .base import KindHandler, Outcome, Reference, RunEnv
from .catalog import PROVIDERS, canonical_region
from .network_container import container_key
from .schema import obj, string
from ..contracts.plan import PlannedOperation
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind
from ..utils.errors import AtlasValidationError

_AVAILABLE = {"AVAILABLE"}
_FAILED = {"FAILED", "REJECTED", "EXPIRED", "TERMINATING", "DELETED", "DELETING"}


class NetworkPeeringKind(KindHandler):
    """Peering connections are keyed by '<provider>/<vpcId>'."""

    kind = ResourceKind.NETWORK_PEERING.value
    service_attr = "network_peering"
    schema = obj(
        {
            "provider": string(enum=list(PROVIDERS), case_insensitive=True),
            "vpcId": string(min_length=1),
            "region": string(min_length=1),
            "cidrBlock": string(pattern=r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$"),
            "awsAccountId": string(pattern=r"^\d{12}$"),
            "containerId": string(),
            "projectName": string(),
        },
        required=["provider", "vpcId", "region", "cidrBlock"],
    )
    identity_fields = ("provider", "vpcId")
    immutable_fields = ("region", "awsAccountId")
    case_insensitive_fields = ("provider",)
    ignored_fields = ("projectName", "dependsOn", "containerId")
    field_aliases = {
        "providerName": "provider",
        "accepterRegionName": "region",
        "routeTableCidrBlock": "cidrBlock",
    }
    async_create = True
    estimates = {"Create": 300, "Update": 60, "Delete": 60}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return f"{spec.get('provider', '')}/{spec.get('vpcId', name)}"

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if spec.get("region"):
            spec["region"] = canonical_region(spec["region"])
        return spec

    def references(self, resource: Resource) -> List[Reference]:
        spec = self.normalized(resource)
        key = container_key(spec.get("provider"), spec.get("region"))
        return [Reference(ResourceKind.NETWORK_CONTAINER.value, key, "region", required=False)]

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {
            "providerName": spec["provider"],
            "vpcId": spec["vpcId"],
            "accepterRegionName": spec["region"].lower().replace("_", "-"),
            "routeTableCidrBlock": spec["cidrBlock"],
        }
        if spec.get("awsAccountId"):
            payload["awsAccountId"] = spec["awsAccountId"]
        if resource.spec.get("containerId"):
            payload["containerId"] = resource.spec["containerId"]
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        spec: Dict[str, Any] = {
            "provider": payload.get("providerName", "AWS"),
            "vpcId": payload.get("vpcId"),
            "region": payload.get("accepterRegionName"),
            "cidrBlock": payload.get("routeTableCidrBlock"),
        }
        if payload.get("awsAccountId"):
            spec["awsAccountId"] = payload["awsAccountId"]
        status = payload.get("statusName") or payload.get("status")
        return self.observed(payload.get("vpcId"), spec, payload.get("id"), payload, status=status)

    def create(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        payload = self.to_atlas(op.desired)
        if "containerId" not in payload:
            payload["containerId"] = self._container_id(env, op.desired)
        created = self.service(env).create(env.ctx, env.project_id, payload)
        return Outcome(self.atlas_id(created or {}), created)

    def _container_id(self, env: RunEnv, resource: Resource) -> str:
        spec = self.normalized(resource)
        wanted = container_key(spec.get("provider"), spec.get("region"))
        containers = getattr(env.services, "network_containers", None)
        if containers is not None:
            for payload in containers.list(env.ctx, env.project_id):
                key = container_key(payload.get("providerName"), payload.get("regionName") or payload.get("region"))
                if key == wanted:
                    return payload.get("id")
        raise AtlasValidationError(
            f"No network container for {wanted}; peering requires one",
            suggestion="Add a NetworkContainer for the same provider and region",
        )

    def ready_state(self, env: RunEnv, atlas_id: str) -> str:
        state = str(self.service(env).get_status(env.ctx, env.project_id, atlas_id)).upper()
        if state in _AVAILABLE:
            return "AVAILABLE"
        if state in _FAILED:
            return "FAILED"
        return "PENDING"
