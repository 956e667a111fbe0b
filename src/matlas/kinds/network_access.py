"""NetworkAccess kind (project IP access list entries)."""

import ipaddress
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from .base import KindHandler, parse_time
from .schema import obj, string
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind

ENTRY_FIELDS = ("ipAddress", "cidr", "awsSecurityGroup")


def canonical_network(value: str) -> Optional[str]:
    """'10.0.0.0/08' and '10.0.0.1/8' both become '10.0.0.0/8'; None when not an IP/CIDR."""
    try:
        return str(ipaddress.ip_network(str(value).strip(), strict=False))
    except ValueError:
        return None


def entry_of(spec: Dict[str, Any]) -> Optional[str]:
    for field in ENTRY_FIELDS:
        if spec.get(field):
            return str(spec[field])
    return None


def format_timestamp(value: Any) -> Any:
    parsed = parse_time(value)
    if parsed is None:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class NetworkAccessKind(KindHandler):
    """
    Entries are matched by network, not by text: an ipAddress and the
    equivalent /32 CIDR are the same entry.
    """

    kind = ResourceKind.NETWORK_ACCESS.value
    service_attr = "network_access"
    schema = obj(
        {
            "ipAddress": string(min_length=1),
            "cidr": string(pattern=r"^[0-9a-fA-F:.]+/\d{1,3}$"),
            "awsSecurityGroup": string(pattern=r"^sg-[0-9a-zA-Z]+$"),
            "comment": string(max_length=80),
            "deleteAfter": string(min_length=1),
            "projectName": string(),
        },
        one_of_required=[list(ENTRY_FIELDS)],
    )
    identity_fields = ENTRY_FIELDS
    field_aliases = {"deleteAfterDate": "deleteAfter", "cidrBlock": "cidr"}
    estimates = {"Create": 15, "Update": 10, "Delete": 5}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        if spec.get("awsSecurityGroup"):
            return f"sg:{spec['awsSecurityGroup']}"
        entry = entry_of(spec)
        if entry is None:
            return name
        return canonical_network(entry) or entry.lower()

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        if "deleteAfter" in spec:
            spec["deleteAfter"] = format_timestamp(spec["deleteAfter"])
        return spec

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {}
        if spec.get("awsSecurityGroup"):
            payload["awsSecurityGroup"] = spec["awsSecurityGroup"]
        elif spec.get("cidr"):
            payload["cidrBlock"] = canonical_network(spec["cidr"]) or spec["cidr"]
        else:
            payload["ipAddress"] = spec.get("ipAddress")
        if spec.get("comment"):
            payload["comment"] = spec["comment"]
        if spec.get("deleteAfter"):
            payload["deleteAfterDate"] = spec["deleteAfter"]
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        spec: Dict[str, Any] = {}
        cidr = payload.get("cidrBlock")
        if payload.get("awsSecurityGroup"):
            spec["awsSecurityGroup"] = payload["awsSecurityGroup"]
            atlas_id = payload["awsSecurityGroup"]
        elif payload.get("ipAddress") and (not cidr or _is_host(cidr)):
            spec["ipAddress"] = payload["ipAddress"]
            atlas_id = payload["ipAddress"]
        else:
            spec["cidr"] = cidr
            atlas_id = cidr
        if payload.get("comment"):
            spec["comment"] = payload["comment"]
        if payload.get("deleteAfterDate"):
            spec["deleteAfter"] = payload["deleteAfterDate"]
        return self.observed(atlas_id, spec, atlas_id, payload)

    def atlas_id(self, payload: Dict[str, Any]):
        return payload.get("awsSecurityGroup") or payload.get("ipAddress") or payload.get("cidrBlock")

    def expired(self, spec: Dict[str, Any], now: Optional[datetime] = None) -> bool:
        when = parse_time(spec.get("deleteAfter"))
        if when is None:
            return False
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when <= (now or datetime.now(timezone.utc))


def _is_host(cidr: str) -> bool:
    network = canonical_network(cidr)
    if network is None:
        return False
    net = ipaddress.ip_network(network)
    return net.prefixlen == net.max_prefixlen
