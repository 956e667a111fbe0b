"""DatabaseRole kind, managed through MongoDB role commands."""

import os
from typing import Dict, Any, List, Optional
from .base import KindHandler, Outcome, Reference, RunEnv, canonical_set
from .catalog import BUILTIN_ROLES
from .schema import array, boolean, obj, string
from ..contracts.plan import PlannedOperation
from ..contracts.state import ObservedResource
from ..manifest.models import ANNOTATION_CONNECTION_STRING, Resource, ResourceKind
from ..tempuser.manager import ROLE_ADMIN_ROLES, Tier
from ..utils.errors import AuthError, FatalServiceError, NotFoundError
from ..utils.logging import get_logger

logger = get_logger("kinds.database_role")

CONNECTION_STRING_ENV = "MATLAS_ROLE_CONN_STRING"
# A freshly minted Atlas user can take a while to reach the cluster.
PROPAGATION_TIMEOUT = 60.0
PROPAGATION_INTERVAL = 2.0

_ROLE_REF = obj(
    {
        "roleName": string(min_length=1, max_length=64),
        "databaseName": string(min_length=1, max_length=63),
    },
    required=["roleName", "databaseName"],
)
_PRIVILEGE = obj(
    {
        "actions": array(string(min_length=1), min_length=1),
        "resource": obj(
            {
                "database": string(),
                "collection": string(),
                "cluster": boolean(),
            }
        ),
    },
    required=["actions", "resource"],
)


class DatabaseRoleKind(KindHandler):
    """
    Custom roles keyed '<roleName>@<databaseName>'.

    Roles live inside a cluster, so every call needs a connection string:
    the document's connection-string annotation, then MATLAS_ROLE_CONN_STRING,
    then a temporary user-admin user on the role's `clusterName`.
    """

    kind = ResourceKind.DATABASE_ROLE.value
    service_attr = "mongo_admin"
    schema = obj(
        {
            "roleName": string(min_length=1, max_length=64),
            "databaseName": string(min_length=1, max_length=63),
            "privileges": array(_PRIVILEGE),
            "inheritedRoles": array(_ROLE_REF),
            "clusterName": string(min_length=1, max_length=64),
            "projectName": string(),
        },
        required=["roleName", "databaseName"],
    )
    identity_fields = ("roleName", "databaseName")
    set_fields = ("privileges", "inheritedRoles")
    ignored_fields = ("projectName", "dependsOn", "clusterName")
    field_aliases = {"role": "roleName", "database": "databaseName", "roles": "inheritedRoles"}
    defaults = {"privileges": [], "inheritedRoles": []}
    estimates = {"Create": 10, "Update": 10, "Delete": 5}

    def key(self, name: str, spec: Dict[str, Any]) -> str:
        return f"{spec.get('roleName', name)}@{spec.get('databaseName', 'admin')}"

    def normalize_spec(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        privileges = []
        for privilege in spec.get("privileges") or []:
            if not isinstance(privilege, dict):
                privileges.append(privilege)
                continue
            privilege = dict(privilege)
            if isinstance(privilege.get("actions"), list):
                privilege["actions"] = sorted(set(str(a) for a in privilege["actions"]))
            resource = privilege.get("resource")
            if isinstance(resource, dict) and "db" in resource:
                resource = dict(resource)
                resource.setdefault("database", resource.pop("db"))
                privilege["resource"] = resource
            privileges.append(privilege)
        spec["privileges"] = canonical_set(privileges)
        return spec

    def references(self, resource: Resource) -> List[Reference]:
        spec = self.normalized(resource)
        refs: List[Reference] = []
        for parent in spec.get("inheritedRoles") or []:
            if not isinstance(parent, dict) or parent.get("roleName") in BUILTIN_ROLES:
                continue
            key = f"{parent.get('roleName')}@{parent.get('databaseName')}"
            refs.append(Reference(self.kind, key, "inheritedRoles", required=False))
        if spec.get("clusterName"):
            refs.append(Reference(ResourceKind.CLUSTER.value, spec["clusterName"], "clusterName"))
        return refs

    def to_atlas(self, resource: Resource) -> Dict[str, Any]:
        spec = self.normalized(resource)
        privileges = []
        for privilege in spec.get("privileges", []):
            target = privilege.get("resource") or {}
            if target.get("cluster"):
                mongo_resource: Dict[str, Any] = {"cluster": True}
            else:
                mongo_resource = {"db": target.get("database", ""), "collection": target.get("collection", "")}
            privileges.append({"resource": mongo_resource, "actions": list(privilege.get("actions", []))})
        return {
            "role": spec["roleName"],
            "privileges": privileges,
            "roles": [{"role": r["roleName"], "db": r["databaseName"]} for r in spec.get("inheritedRoles", [])],
        }

    def from_atlas(self, payload: Dict[str, Any]) -> ObservedResource:
        privileges = []
        for privilege in payload.get("privileges") or []:
            target = privilege.get("resource") or {}
            if target.get("cluster"):
                resource: Dict[str, Any] = {"cluster": True}
            else:
                resource = {"database": target.get("db", "")}
                if target.get("collection"):
                    resource["collection"] = target["collection"]
            privileges.append({"actions": privilege.get("actions", []), "resource": resource})
        spec: Dict[str, Any] = {
            "roleName": payload.get("role"),
            "databaseName": payload.get("db"),
            "privileges": privileges,
            "inheritedRoles": [
                {"roleName": r.get("role"), "databaseName": r.get("db")} for r in payload.get("roles") or []
            ],
        }
        if payload.get("_cluster"):
            spec["clusterName"] = payload["_cluster"]
        atlas_id = f"{spec['roleName']}@{spec['databaseName']}"
        return self.observed(spec["roleName"], spec, atlas_id, payload)

    def atlas_id(self, payload: Dict[str, Any]) -> Optional[str]:
        if not payload.get("role"):
            return None
        return f"{payload['role']}@{payload.get('db', 'admin')}"

    # -- connection resolution ------------------------------------------------

    def connection_string(self, env: RunEnv, cluster: Optional[str]) -> str:
        """
        Connection string with user-admin rights on `cluster`.

        Raises:
            FatalServiceError: When no connection string can be resolved
        """
        explicit = env.annotations.get(ANNOTATION_CONNECTION_STRING) or os.environ.get(CONNECTION_STRING_ENV)
        if explicit:
            return explicit
        if env.temp_users is None:
            raise FatalServiceError(
                "DatabaseRole operations need a MongoDB connection string",
                suggestion=f"Set {CONNECTION_STRING_ENV} or the {ANNOTATION_CONNECTION_STRING} annotation",
            )
        if not cluster:
            cluster = self._only_cluster(env)

        try:
            cluster_payload = env.services.clusters.get(env.ctx, env.project_id, cluster)
        except NotFoundError:
            raise FatalServiceError(f"Cluster '{cluster}' not found for DatabaseRole access")
        srv = (cluster_payload.get("connectionStrings") or {}).get("standardSrv")
        if not srv:
            raise FatalServiceError(
                f"Cluster '{cluster}' has no SRV connection string yet",
                suggestion="Wait for the cluster to finish provisioning",
            )

        reused = env.temp_users.shared(
            env.ctx, f"role-admin:{cluster}", [cluster], tier=Tier.CUSTOM.value,
            purpose="role-admin", roles=ROLE_ADMIN_ROLES,
        )
        connection = reused.connection_string(srv)
        self._await_propagation(env, connection)
        return connection

    def _only_cluster(self, env: RunEnv) -> str:
        names = sorted(c.get("name") for c in env.services.clusters.list(env.ctx, env.project_id) if c.get("name"))
        if len(names) != 1:
            raise FatalServiceError(
                f"Cannot choose a cluster for DatabaseRole access among {len(names)} clusters",
                suggestion="Set spec.clusterName on the DatabaseRole",
            )
        return names[0]

    def _await_propagation(self, env: RunEnv, connection: str) -> None:
        ctx = env.ctx.child(timeout=PROPAGATION_TIMEOUT)
        while True:
            try:
                self.service(env).list_databases(ctx, connection)
                return
            except AuthError:
                if not ctx.sleep(PROPAGATION_INTERVAL):
                    ctx.check()
                logger.debug("Waiting for temporary user to propagate")

    def _cluster_targets(self, env: RunEnv, document) -> List[Optional[str]]:
        if env.annotations.get(ANNOTATION_CONNECTION_STRING) or os.environ.get(CONNECTION_STRING_ENV):
            return [None]
        named = set()
        if document is not None:
            for resource in document.resources_of(self.kind):
                cluster = resource.spec.get("clusterName")
                if cluster:
                    named.add(str(cluster))
        if named:
            return sorted(named)
        if env.temp_users is None:
            return [None]
        return sorted(c.get("name") for c in env.services.clusters.list(env.ctx, env.project_id) if c.get("name"))

    # -- dispatch -------------------------------------------------------------

    def discover(self, env: RunEnv, page_size: int = 500, document=None) -> List[ObservedResource]:
        admin = self.service(env)
        found: Dict[str, ObservedResource] = {}
        for cluster in self._cluster_targets(env, document):
            env.ctx.check()
            connection = self.connection_string(env, cluster)
            for role in admin.list_roles(env.ctx, connection):
                if role.get("isBuiltin"):
                    continue
                payload = dict(role, _cluster=cluster) if cluster else role
                observed = self.from_atlas(payload)
                found.setdefault(observed.key, observed)
        return [found[k] for k in sorted(found)]

    def create(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        spec = self.normalized(op.desired)
        role = self.to_atlas(op.desired)
        connection = self.connection_string(env, spec.get("clusterName"))
        self.service(env).create_role(env.ctx, connection, spec["databaseName"], role)
        return Outcome(op.key, role)

    def update(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        spec = self.normalized(op.desired)
        role = self.to_atlas(op.desired)
        connection = self.connection_string(env, spec.get("clusterName") or op.observed.spec.get("clusterName"))
        self.service(env).update_role(env.ctx, connection, spec["databaseName"], role)
        return Outcome(op.observed.atlas_id, role)

    def delete(self, env: RunEnv, op: PlannedOperation) -> Outcome:
        spec = op.observed.spec
        connection = self.connection_string(env, spec.get("clusterName"))
        self.service(env).drop_role(env.ctx, connection, spec["databaseName"], spec["roleName"])
        return Outcome(op.observed.atlas_id, None)

    def is_gone(self, env: RunEnv, atlas_id: str) -> bool:
        role_name, _, database = atlas_id.partition("@")
        for observed in self.discover(env):
            if observed.key == f"{role_name}@{database}":
                return False
        return True
