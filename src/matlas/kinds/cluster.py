"""Cluster kind (asynchronous provisioning)."""

from typing import Dict, Any, List, Tuple
from .base import KindHandler, Reference, RunEnv
from .catalog import INSTANCE_SIZES, PROVIDERS, TENANT_SIZES, canonical_region
from .schema import array, boolean, number, obj, string, string_map, PropertySchema
from ..contracts.plan import PlannedOperation
from ..contracts.simulation import Prediction
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind
from ..utils.tags import tags_from_atlas, tags_to_atlas

# Atlas stateName -> readiness
_READY = {"IDLE": "AVAILABLE", "AVAILABLE": "AVAILABLE"}
_FAILED = {"FAILED", "DELETED", "DELETING"}

MAX_CLUSTERS_PER_PROJECT = 25


class ClusterKind(KindHandler):
    """
    Clusters are keyed by name. The Atlas payload uses the advanced cluster
    shape with a single region config; tenant sizes (M0/M2/M5) are sent with
    providerName TENANT and the real provider as backingProviderName.
    """

    kind = ResourceKind.CLUSTER.value
    service_attr = "clusters"
    schema = obj(
        {
            "provider": string(enum=list(PROVIDERS), case_insensitive=True),
            "region": string(min_length=1),
            "instanceSize": string(enum=list(INSTANCE_SIZES), case_insensitive=True),
            "mongoDBVersion": string(pattern=r"^\d+\.\d+$"),
            "clusterType": string(enum=["REPLICASET", "SHARDED", "GEOSHARDED"], case_insensitive=True),
            "diskSizeGB": number(minimum=1, maximum=4096),
            "backupEnabled": boolean(),
            "tierType": string(),
            "tags": string_map(),
            "projectName": string(),
            "autoScaling": PropertySchema(type="object"),
            "replicationSpecs": array(PropertySchema(type="object")),
            "encryption": PropertySchema(type="object"),
            "biConnector": PropertySchema(type="object"),
        },
        required=["provider", "region", "instanceSize"],
    )
    immutable_fields = ("provider",)
    case_insensitive_fields = ("provider", "instanceSize", "clusterType")
    ignored_fields = ("projectName", "dependsOn", "tierType", "autoScaling", "replicationSpecs",
                      "encryption", "biConnector")
    field_aliases = {"mongodbVersion": "mongoDBVersion", "providerName": "provider"}
    defaults = {"clusterType": "REPLICASET"}
    async_create = True
    estimates = {"Create": 600, "Update": 300, "Delete": 120}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return name

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if "region" in spec:
            spec["region"] = canonical_region(spec["region"])
        if "mongoDBVersion" in spec:
            spec["mongoDBVersion"] = str(spec["mongoDBVersion"])
        if isinstance(spec.get("diskSizeGB"), int):
            spec["diskSizeGB"] = float(spec["diskSizeGB"])
        return spec

    def references(self, resource: Resource) -> List[Reference]:
        project = resource.spec.get("projectName")
        if project:
            return [Reference(ResourceKind.PROJECT.value, str(project), "projectName", required=False)]
        return []

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        provider = spec["provider"]
        size = spec["instanceSize"]
        region_config: Dict[str, Any] = {
            "providerName": provider,
            "regionName": spec["region"],
            "priority": 7,
            "electableSpecs": {"instanceSize": size, "nodeCount": 3},
        }
        if size in TENANT_SIZES:
            region_config["providerName"] = "TENANT"
            region_config["backingProviderName"] = provider
            region_config["electableSpecs"] = {"instanceSize": size}
        elif spec.get("diskSizeGB") is not None:
            region_config["electableSpecs"]["diskSizeGB"] = spec["diskSizeGB"]

        payload: Dict[str, Any] = {
            "name": resource.metadata.name,
            "clusterType": spec.get("clusterType", "REPLICASET"),
            "replicationSpecs": [{"regionConfigs": [region_config]}],
        }
        if spec.get("mongoDBVersion"):
            payload["mongoDBMajorVersion"] = spec["mongoDBVersion"]
        if spec.get("backupEnabled") is not None:
            payload["backupEnabled"] = spec["backupEnabled"]
        if spec.get("tags"):
            payload["tags"] = tags_to_atlas(spec["tags"])
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        region_config = _first_region_config(payload)
        provider = region_config.get("providerName")
        if provider == "TENANT":
            provider = region_config.get("backingProviderName")
        electable = region_config.get("electableSpecs") or {}

        spec: Dict[str, Any] = {
            "provider": provider,
            "region": region_config.get("regionName"),
            "instanceSize": electable.get("instanceSize"),
            "clusterType": payload.get("clusterType"),
            "mongoDBVersion": payload.get("mongoDBMajorVersion"),
            "backupEnabled": payload.get("backupEnabled"),
        }
        disk = electable.get("diskSizeGB", payload.get("diskSizeGB"))
        if disk is not None:
            spec["diskSizeGB"] = disk
        tags = tags_from_atlas(payload.get("tags"))
        if tags:
            spec["tags"] = tags
        return self.observed(
            payload.get("name"), spec, payload.get("name"), payload,
            status=payload.get("stateName"), created=payload.get("createDate"),
        )

    def atlas_id(self, payload: Dict[str, Any]):
        return payload.get("name")

    def ready_state(self, env: RunEnv, atlas_id: str) -> str:
        state = str(self.service(env).get_status(env.ctx, env.project_id, atlas_id)).upper()
        if state in _READY:
            return _READY[state]
        if state in _FAILED:
            return "FAILED"
        return "PENDING"

    def probe_create(self, env: RunEnv, op: PlannedOperation) -> Tuple[Prediction, str]:
        count = len(self.discover(env))
        if count >= MAX_CLUSTERS_PER_PROJECT:
            return Prediction.LIKELY_FAIL, f"project already has {count} clusters (limit {MAX_CLUSTERS_PER_PROJECT})"
        return Prediction.LIKELY_SUCCEED, "name is free and cluster quota available"


def _first_region_config(payload: Dict[str, Any]) -> Dict[str, Any]:
    for spec in payload.get("replicationSpecs") or []:
        for config in spec.get("regionConfigs") or []:
            return config
    return {}
