"""DatabaseUser kind."""

from typing import Dict, Any, List
from .base import KindHandler, Reference, canonical_set
from .catalog import BUILTIN_ROLES
from .schema import array, obj, string, PropertySchema
from ..contracts.state import ObservedResource
from ..manifest.models import Resource, ResourceKind
from ..utils.tags import TEMP_USER_LABEL, tags_from_atlas


_ROLE = obj(
    {
        "roleName": string(min_length=1, max_length=64),
        "databaseName": string(min_length=1, max_length=63),
        "collectionName": string(min_length=1, max_length=127),
    },
    required=["roleName", "databaseName"],
)
_SCOPE = obj(
    {
        "name": string(min_length=1, max_length=64),
        "type": string(enum=["CLUSTER", "DATA_LAKE"], case_insensitive=True),
    },
    required=["name", "type"],
)


class DatabaseUserKind(KindHandler):
    """Users are keyed and addressed by '<authDatabase>/<username>'."""

    kind = ResourceKind.DATABASE_USER.value
    service_attr = "database_users"
    schema = obj(
        {
            "username": string(min_length=1, max_length=1024),
            "authDatabase": string(enum=["admin", "$external"]),
            "password": string(min_length=8, max_length=256),
            "roles": array(_ROLE, min_length=1),
            "scopes": array(_SCOPE),
            "projectName": string(),
            "labels": PropertySchema(type="object"),
        },
        required=["username", "roles"],
    )
    identity_fields = ("username", "authDatabase")
    set_fields = ("roles", "scopes")
    write_only_fields = ("password",)
    field_aliases = {"databaseName": "authDatabase"}
    defaults = {"authDatabase": "admin"}
    estimates = {"Create": 30, "Update": 15, "Delete": 10}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return f"{spec.get('authDatabase', 'admin')}/{spec.get('username', name)}"

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        scopes = spec.get("scopes")
        if isinstance(scopes, list):
            for scope in scopes:
                if isinstance(scope, dict) and isinstance(scope.get("type"), str):
                    scope["type"] = scope["type"].upper()
            spec["scopes"] = canonical_set(scopes)
        return spec

    def references(self, resource: Resource) -> List[Reference]:
        spec = self.normalized(resource)
        refs: List[Reference] = []
        for scope in spec.get("scopes") or []:
            if isinstance(scope, dict) and scope.get("type") == "CLUSTER" and scope.get("name"):
                refs.append(Reference(ResourceKind.CLUSTER.value, scope["name"], "scopes"))
        for role in spec.get("roles") or []:
            if not isinstance(role, dict) or role.get("roleName") in BUILTIN_ROLES:
                continue
            key = f"{role.get('roleName')}@{role.get('databaseName')}"
            refs.append(Reference(ResourceKind.DATABASE_ROLE.value, key, "roles", required=False))
        return refs

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        payload: Dict[str, Any] = {
            "username": spec["username"],
            "databaseName": spec.get("authDatabase", "admin"),
            "roles": spec.get("roles", []),
            "scopes": spec.get("scopes", []),
        }
        if spec.get("password"):
            payload["password"] = spec["password"]
        return payload

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        roles = []
        for role in payload.get("roles") or []:
            entry = {"roleName": role.get("roleName"), "databaseName": role.get("databaseName")}
            if role.get("collectionName"):
                entry["collectionName"] = role["collectionName"]
            roles.append(entry)
        scopes = [{"name": s.get("name"), "type": s.get("type")} for s in payload.get("scopes") or []]
        spec = {
            "username": payload.get("username"),
            "authDatabase": payload.get("databaseName", "admin"),
            "roles": roles,
            "scopes": scopes,
        }
        atlas_id = f"{spec['authDatabase']}/{spec['username']}"
        return self.observed(payload.get("username"), spec, atlas_id, payload)

    def include_observed(self, payload: Dict[str, Any]) -> bool:
        labels = tags_from_atlas(payload.get("labels"))
        return labels.get(TEMP_USER_LABEL) != "true"

    def atlas_id(self, payload: Dict[str, Any]):
        if not payload.get("username"):
            return None
        return f"{payload.get('databaseName', 'admin')}/{payload['username']}"
