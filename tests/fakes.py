"""In-memory Services used across the test suite."""

import threading
from typing import Any, Callable, Dict, List, Optional
from matlas.config.settings import EngineSettings, RetrySettings
from matlas.services.base import (
    AlertConfigSvc,
    AlertsSvc,
    ClusterSvc,
    DatabaseUserSvc,
    MongoAdminSvc,
    NetworkAccessSvc,
    NetworkContainerSvc,
    NetworkPeeringSvc,
    ProjectSvc,
    SearchSvc,
    VPCEndpointSvc,
)
from matlas.services.container import Services
from matlas.utils.errors import ConflictError, NotFoundError

WRITE_METHODS = ("create", "update", "delete")

ORG_ID = "5f1b2c3d4e5f6a7b8c9d0e1f"
PROJECT_ID = "64a0000000000000000000aa"


def fast_settings(**overrides) -> EngineSettings:
    """Engine settings with no backoff and sub-second polling."""
    values: Dict[str, Any] = {
        "poll_interval": 0.01,
        "retry": RetrySettings(max_retries=3, initial_delay=0.0, max_delay=0.0, jitter=0.0,
                               rate_limit_initial_delay=0.0),
    }
    values.update(overrides)
    return EngineSettings(**values)


class _Failure:
    def __init__(self, error: Exception, times: Optional[int], match: Optional[Callable[[Any], bool]]):
        self.error = error
        self.times = times
        self.match = match


class FakeResourceService:
    """
    Dict-backed CRUD keyed by `id_of(payload)`.

    Every call is recorded in `calls`; writes also in `writes`. Set
    `read_only` to fail the test on any write, or use fail() to inject
    errors into specific methods.
    """

    def __init__(self, id_of: Callable[[Dict[str, Any]], str], read_only: bool = False):
        self.items: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.writes: List[tuple] = []
        self.read_only = read_only
        self.on_create: Optional[Callable[[Dict[str, Any]], None]] = None
        self._id_of = id_of
        self._failures: Dict[str, List[_Failure]] = {}
        self._lock = threading.Lock()

    def fail(self, method: str, error: Exception, times: Optional[int] = None,
             match: Optional[Callable[[Any], bool]] = None) -> None:
        """Raise `error` from `method` (optionally only `times` times, or when `match(arg)`)."""
        self._failures.setdefault(method, []).append(_Failure(error, times, match))

    def seed(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        item = dict(payload)
        self.items[self._id_of(item)] = item
        return item

    def _enter(self, method: str, arg: Any = None) -> None:
        with self._lock:
            self.calls.append((method, arg))
            if method in WRITE_METHODS:
                self.writes.append((method, arg))
                if self.read_only:
                    raise AssertionError(f"unexpected write: {method}({arg!r})")
            for failure in self._failures.get(method, []):
                if failure.match is not None and not failure.match(arg):
                    continue
                if failure.times is not None:
                    if failure.times <= 0:
                        continue
                    failure.times -= 1
                raise failure.error

    supports_list_all = True

    def list(self, ctx, project_id):
        self._enter("list", project_id)
        with self._lock:
            return [dict(v) for _, v in sorted(self.items.items())]

    def list_page(self, ctx, project_id, page_num, items_per_page):
        items = self.list(ctx, project_id)
        start = (page_num - 1) * items_per_page
        return items[start:start + items_per_page]

    def get(self, ctx, project_id, resource_id):
        self._enter("get", resource_id)
        with self._lock:
            if resource_id not in self.items:
                raise NotFoundError(f"{resource_id} not found")
            return dict(self.items[resource_id])

    def create(self, ctx, project_id, payload):
        self._enter("create", payload)
        item = self._prepare(dict(payload))
        item_id = self._id_of(item)
        with self._lock:
            if item_id in self.items:
                raise ConflictError(f"{item_id} already exists")
            self.items[item_id] = item
        if self.on_create is not None:
            self.on_create(item)
        return dict(item)

    def update(self, ctx, project_id, resource_id, payload):
        self._enter("update", resource_id)
        with self._lock:
            if resource_id not in self.items:
                raise NotFoundError(f"{resource_id} not found")
            self.items[resource_id].update(payload)
            return dict(self.items[resource_id])

    def delete(self, ctx, project_id, resource_id):
        self._enter("delete", resource_id)
        with self._lock:
            if resource_id not in self.items:
                raise NotFoundError(f"{resource_id} not found")
            del self.items[resource_id]

    def _prepare(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return item


class FakeProjects(FakeResourceService, ProjectSvc):
    def __init__(self, read_only: bool = False):
        super().__init__(lambda p: p["id"], read_only)
        self._next = 1

    def _prepare(self, item):
        with self._lock:
            item.setdefault("id", f"{self._next:024x}")
            self._next += 1
        return item

    def list(self, ctx, project_id):
        self._enter("list", project_id)
        with self._lock:
            return [dict(v) for k, v in self.items.items() if k == project_id]

    def get_by_name(self, ctx, name):
        self._enter("get_by_name", name)
        with self._lock:
            for item in self.items.values():
                if item.get("name") == name:
                    return dict(item)
        return None


class FakeClusters(FakeResourceService, ClusterSvc):
    """New clusters start in `create_state` and become IDLE after `ready_after` status polls."""

    def __init__(self, read_only: bool = False, create_state: str = "IDLE", ready_after: Optional[int] = None):
        super().__init__(lambda c: c["name"], read_only)
        self.create_state = create_state
        self.ready_after = ready_after
        self.status_polls: Dict[str, int] = {}

    def _prepare(self, item):
        item["stateName"] = self.create_state
        return item

    def get_status(self, ctx, project_id, resource_id):
        self._enter("get_status", resource_id)
        with self._lock:
            polls = self.status_polls.get(resource_id, 0) + 1
            self.status_polls[resource_id] = polls
            item = self.items.get(resource_id)
            if item is None:
                raise NotFoundError(f"{resource_id} not found")
            if self.ready_after is not None and polls >= self.ready_after:
                item["stateName"] = "IDLE"
            return item["stateName"]


class FakeDatabaseUsers(FakeResourceService, DatabaseUserSvc):
    def __init__(self, read_only: bool = False):
        super().__init__(lambda u: f"{u.get('databaseName', 'admin')}/{u['username']}", read_only)

    def _prepare(self, item):
        item.setdefault("databaseName", "admin")
        item.pop("password", None)
        return item


class FakeNetworkAccess(FakeResourceService, NetworkAccessSvc):
    def __init__(self, read_only: bool = False):
        super().__init__(lambda e: e.get("awsSecurityGroup") or e.get("ipAddress") or e.get("cidrBlock"), read_only)


class _IdAssigning(FakeResourceService):
    """Atlas assigns ids on create; items are keyed by `id_of` over the prepared payload."""

    id_field = "id"

    def __init__(self, id_of: Callable[[Dict[str, Any]], str], read_only: bool = False):
        super().__init__(id_of, read_only)
        self._next = 1

    def _prepare(self, item):
        with self._lock:
            item.setdefault(self.id_field, f"{self._next:024x}")
            self._next += 1
        return item


class FakeNetworkContainers(_IdAssigning, NetworkContainerSvc):
    def __init__(self, read_only: bool = False):
        super().__init__(lambda c: c["id"], read_only)


class FakeNetworkPeering(_IdAssigning, NetworkPeeringSvc):
    """New peers report `create_state` until `ready_after` status polls, then AVAILABLE."""

    def __init__(self, read_only: bool = False, create_state: str = "PENDING_ACCEPTANCE",
                 ready_after: Optional[int] = None):
        super().__init__(lambda p: p["id"], read_only)
        self.create_state = create_state
        self.ready_after = ready_after
        self.status_polls: Dict[str, int] = {}

    def _prepare(self, item):
        item["statusName"] = self.create_state
        return super()._prepare(item)

    def get_status(self, ctx, project_id, resource_id):
        self._enter("get_status", resource_id)
        with self._lock:
            polls = self.status_polls.get(resource_id, 0) + 1
            self.status_polls[resource_id] = polls
            item = self.items.get(resource_id)
            if item is None:
                raise NotFoundError(f"{resource_id} not found")
            if self.ready_after is not None and polls >= self.ready_after:
                item["statusName"] = "AVAILABLE"
            return item["statusName"]


class FakeVPCEndpoints(_IdAssigning, VPCEndpointSvc):
    """Endpoint services addressed as '<provider>/<id>'."""

    def __init__(self, read_only: bool = False):
        super().__init__(lambda e: f"{e['cloudProvider']}/{e['id']}", read_only)

    def _prepare(self, item):
        item["cloudProvider"] = item.pop("providerName", item.get("cloudProvider"))
        item.setdefault("regionName", item.get("region"))
        item.setdefault("status", "AVAILABLE")
        return super()._prepare(item)


class FakeSearchIndexes(_IdAssigning, SearchSvc):
    """Search indexes addressed as '<cluster>/<indexID>'."""

    id_field = "indexID"

    def __init__(self, read_only: bool = False):
        super().__init__(lambda i: f"{i['clusterName']}/{i['indexID']}", read_only)

    def _prepare(self, item):
        item.setdefault("status", "READY")
        return super()._prepare(item)


class FakeAlertConfigs(_IdAssigning, AlertConfigSvc):
    def __init__(self, read_only: bool = False):
        super().__init__(lambda a: a["id"], read_only)


class FakeAlerts(AlertsSvc):
    def __init__(self, alerts: Optional[List[Dict[str, Any]]] = None):
        self.alerts = alerts or []

    def list(self, ctx, project_id):
        return list(self.alerts)


class FakeMongoAdmin(MongoAdminSvc):
    """Custom roles per (connection string host part, database)."""

    def __init__(self, read_only: bool = False, databases: Optional[List[str]] = None):
        self.roles: Dict[str, Dict[str, Any]] = {}
        self.connections: List[str] = []
        self.writes: List[tuple] = []
        self.read_only = read_only
        self.databases = databases or ["admin", "app"]
        self._lock = threading.Lock()

    def _write(self, method: str, arg: Any) -> None:
        self.writes.append((method, arg))
        if self.read_only:
            raise AssertionError(f"unexpected write: {method}({arg!r})")

    def list_roles(self, ctx, connection_string, database=None):
        with self._lock:
            self.connections.append(connection_string)
            return [dict(r) for k, r in sorted(self.roles.items())
                    if database is None or r["db"] == database]

    def create_role(self, ctx, connection_string, database, role):
        with self._lock:
            self.connections.append(connection_string)
            self._write("create_role", role.get("role"))
            key = f"{role['role']}@{database}"
            if key in self.roles:
                raise ConflictError(f"role {key} already exists")
            self.roles[key] = dict(role, db=database)

    def update_role(self, ctx, connection_string, database, role):
        with self._lock:
            self._write("update_role", role.get("role"))
            key = f"{role['role']}@{database}"
            if key not in self.roles:
                raise NotFoundError(f"role {key} not found")
            self.roles[key] = dict(role, db=database)

    def drop_role(self, ctx, connection_string, database, role_name):
        with self._lock:
            self._write("drop_role", role_name)
            key = f"{role_name}@{database}"
            if key not in self.roles:
                raise NotFoundError(f"role {key} not found")
            del self.roles[key]

    def list_databases(self, ctx, connection_string):
        return list(self.databases)

    def list_collections(self, ctx, connection_string, database):
        return []


class FakeAtlas:
    """A bundle of fakes plus the Services container wrapping them."""

    def __init__(self, read_only: bool = False, create_state: str = "IDLE", ready_after: Optional[int] = None):
        self.projects = FakeProjects(read_only)
        self.clusters = FakeClusters(read_only, create_state, ready_after)
        self.database_users = FakeDatabaseUsers(read_only)
        self.network_access = FakeNetworkAccess(read_only)
        self.network_containers = FakeNetworkContainers(read_only)
        self.network_peering = FakeNetworkPeering(read_only)
        self.vpc_endpoints = FakeVPCEndpoints(read_only)
        self.search = FakeSearchIndexes(read_only)
        self.alert_configs = FakeAlertConfigs(read_only)
        self.mongo_admin = FakeMongoAdmin(read_only)
        self.alerts = FakeAlerts()
        self.services = Services(
            projects=self.projects,
            clusters=self.clusters,
            database_users=self.database_users,
            network_access=self.network_access,
            network_containers=self.network_containers,
            network_peering=self.network_peering,
            vpc_endpoints=self.vpc_endpoints,
            search=self.search,
            alert_configs=self.alert_configs,
            mongo_admin=self.mongo_admin,
            alerts=self.alerts,
        )

    @property
    def writes(self) -> List[tuple]:
        return (self.projects.writes + self.clusters.writes + self.database_users.writes
                + self.network_access.writes + self.network_containers.writes + self.network_peering.writes
                + self.vpc_endpoints.writes + self.search.writes + self.alert_configs.writes + self.mongo_admin.writes)

    def add_project(self, name: str = "p1", project_id: str = PROJECT_ID) -> Dict[str, Any]:
        return self.projects.seed({"id": project_id, "name": name, "orgId": ORG_ID})

    def add_cluster(self, name: str = "c1", provider: str = "AWS", region: str = "US_EAST_1",
                    size: str = "M10") -> Dict[str, Any]:
        return self.clusters.seed({
            "name": name,
            "clusterType": "REPLICASET",
            "stateName": "IDLE",
            "replicationSpecs": [{"regionConfigs": [{
                "providerName": provider,
                "regionName": region,
                "priority": 7,
                "electableSpecs": {"instanceSize": size, "nodeCount": 3},
            }]}],
        })

    def add_user(self, username: str = "u1", cluster: str = "c1") -> Dict[str, Any]:
        return self.database_users.seed({
            "username": username,
            "databaseName": "admin",
            "roles": [{"roleName": "readWrite", "databaseName": "admin"}],
            "scopes": [{"name": cluster, "type": "CLUSTER"}],
        })

    def add_access(self, cidr: str) -> Dict[str, Any]:
        return self.network_access.seed({"cidrBlock": cidr})


class RecordingTempUsers:
    """Stands in for TempUserManager where only release_all() matters."""

    def __init__(self):
        self.release_calls = 0

    def release_all(self) -> List[str]:
        self.release_calls += 1
        return []


S1_MANIFEST = f"""
apiVersion: matlas.mongodb.com/v1
kind: ApplyDocument
metadata:
  name: s1
resources:
  - apiVersion: matlas.mongodb.com/v1
    kind: Project
    metadata:
      name: p1
    spec:
      name: p1
      organizationId: "{ORG_ID}"
  - apiVersion: matlas.mongodb.com/v1
    kind: Cluster
    metadata:
      name: c1
    spec:
      provider: AWS
      region: US_EAST_1
      instanceSize: M10
  - apiVersion: matlas.mongodb.com/v1
    kind: DatabaseUser
    metadata:
      name: u1
    spec:
      username: u1
      authDatabase: admin
      password: "s3cret-Password"
      roles:
        - roleName: readWrite
          databaseName: admin
      scopes:
        - name: c1
          type: CLUSTER
"""
