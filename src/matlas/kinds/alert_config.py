"""AlertConfig kind."""

import hashlib
import json
from typing import Dict, Any
from .base import KindHandler, canonical_set
from .schema import array, boolean, number, obj, string, PropertySchema
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind

_NOTIFICATION_FIELDS = (
    "typeName", "intervalMin", "delayMin", "emailEnabled", "smsEnabled", "emailAddress",
    "mobileNumber", "roles", "channelName", "username", "teamId", "notifierId",
    "datadogRegion", "opsGenieRegion", "serviceKey", "webhookUrl", "microsoftTeamsWebhookUrl",
)

_MATCHER = obj(
    {
        "fieldName": string(min_length=1),
        "operator": string(enum=["EQUALS", "NOT_EQUALS", "CONTAINS", "NOT_CONTAINS",
                                 "STARTS_WITH", "ENDS_WITH", "REGEX"]),
        "value": string(),
    },
    required=["fieldName", "operator", "value"],
)
_THRESHOLD = obj(
    {
        "operator": string(enum=["GREATER_THAN", "LESS_THAN"]),
        "threshold": number(),
        "units": string(),
        "metricName": string(),
        "mode": string(),
    }
)


class AlertConfigKind(KindHandler):
    """
    Alert configurations have no user-facing name in Atlas; they are keyed
    by event type plus a hash of matchers and metric.
    """

    kind = ResourceKind.ALERT_CONFIG.value
    service_attr = "alert_configs"
    schema = obj(
        {
            "eventTypeName": string(min_length=1),
            "enabled": boolean(),
            "matchers": array(_MATCHER),
            "notifications": array(obj({"typeName": string(min_length=1)}, required=["typeName"]), min_length=1),
            "threshold": _THRESHOLD,
            "metricThreshold": _THRESHOLD,
            "projectName": string(),
            "severityOverride": PropertySchema(type="string"),
        },
        required=["eventTypeName", "notifications"],
    )
    identity_fields = ("eventTypeName",)
    set_fields = ("matchers", "notifications")
    ignored_fields = ("projectName", "dependsOn", "severityOverride")
    defaults = {"enabled": True}
    estimates = {"Create": 10, "Update": 10, "Delete": 5}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        basis = {
            "matchers": spec.get("matchers") or [],
            "metric": (spec.get("metricThreshold") or {}).get("metricName"),
        }
        digest = hashlib.sha256(json.dumps(basis, sort_keys=True).encode("utf-8")).hexdigest()[:12]
        return f"{spec.get('eventTypeName', name)}/{digest}"

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        notifications = spec.get("notifications")
        if isinstance(notifications, list):
            spec["notifications"] = canonical_set([
                {k: v for k, v in n.items() if k in _NOTIFICATION_FIELDS and v is not None}
                if isinstance(n, dict) else n
                for n in notifications
            ])
        return spec

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {
            "eventTypeName": spec["eventTypeName"],
            "enabled": spec.get("enabled", True),
            "matchers": spec.get("matchers", []),
            "notifications": spec.get("notifications", []),
        }
        for field in ("threshold", "metricThreshold"):
            if spec.get(field):
                payload[field] = spec[field]
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        spec: Dict[str, Any] = {
            "eventTypeName": payload.get("eventTypeName"),
            "enabled": payload.get("enabled", True),
            "matchers": [
                {"fieldName": m.get("fieldName"), "operator": m.get("operator"), "value": m.get("value")}
                for m in payload.get("matchers") or []
            ],
            "notifications": payload.get("notifications") or [],
        }
        for field in ("threshold", "metricThreshold"):
            if payload.get(field):
                spec[field] = payload[field]
        name = str(payload.get("eventTypeName", "alert")).lower().replace("_", "-")
        observed = self.observed(name, spec, payload.get("id"), payload,
                                 created=payload.get("created"), updated=payload.get("updated"))
        observed.name = f"{observed.name}-{observed.key.rsplit('/', 1)[-1][:6]}"
        return observed
