"""MongoDB administration through pymongo, with a bounded client cache."""

import threading
from collections import OrderedDict
from typing import Callable, Dict, Any, List, Optional
from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
    ConnectionFailure,
)
from .base import MongoAdminSvc
from ..utils.context import Context
from ..utils.errors import (
    AuthError,
    ConflictError,
    ExecutionError,
    NotFoundError,
    TransientError,
    AtlasValidationError,
)
from ..utils.logging import get_logger, mask_secrets

logger = get_logger("services.mongo")

# Server error codes returned by role commands.
_CODE_UNAUTHORIZED = 13
_CODE_AUTH_FAILED = 18
_CODE_ROLE_NOT_FOUND = 31
_CODE_DUPLICATE = 51002
_CODE_BAD_VALUE = 2


class MongoClientCache:
    """
    Bounded LRU of MongoClient instances keyed by connection string.

    Evicted clients are closed. Safe for concurrent use.
    """

    def __init__(self, max_size: int = 8, factory: Optional[Callable[[str], Any]] = None):
        self.max_size = max_size
        self._factory = factory or _default_client
        self._clients: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, connection_string: str):
        evicted = None
        with self._lock:
            client = self._clients.get(connection_string)
            if client is not None:
                self._clients.move_to_end(connection_string)
                return client
            client = self._factory(connection_string)
            self._clients[connection_string] = client
            if len(self._clients) > self.max_size:
                _, evicted = self._clients.popitem(last=False)
        if evicted is not None:
            logger.debug("Evicting least recently used MongoDB client")
            evicted.close()
        return client

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()


def _default_client(connection_string: str):
    return MongoClient(connection_string, serverSelectionTimeoutMS=10000, appname="matlas")


class PyMongoAdmin(MongoAdminSvc):
    """MongoAdminSvc backed by pymongo."""

    def __init__(self, clients: MongoClientCache, call_timeout: float = 30.0):
        self.clients = clients
        self.call_timeout = call_timeout

    def list_roles(self, ctx: Context, connection_string: str, database: Optional[str] = None) -> List[Dict[str, Any]]:
        client = self._client(connection_string)
        databases = [database] if database else self._role_databases(ctx, client)
        roles: List[Dict[str, Any]] = []
        for db_name in databases:
            result = self._command(ctx, client, db_name, {"rolesInfo": 1, "showPrivileges": True, "showBuiltinRoles": False})
            roles.extend(result.get("roles", []))
        return roles

    def create_role(self, ctx: Context, connection_string: str, database: str, role: Dict[str, Any]) -> None:
        command = {
            "createRole": role["role"],
            "privileges": role.get("privileges", []),
            "roles": role.get("roles", []),
        }
        self._command(ctx, self._client(connection_string), database, command)
        logger.info(f"Created role {role['role']}@{database}")

    def update_role(self, ctx: Context, connection_string: str, database: str, role: Dict[str, Any]) -> None:
        command = {
            "updateRole": role["role"],
            "privileges": role.get("privileges", []),
            "roles": role.get("roles", []),
        }
        self._command(ctx, self._client(connection_string), database, command)
        logger.info(f"Updated role {role['role']}@{database}")

    def drop_role(self, ctx: Context, connection_string: str, database: str, role_name: str) -> None:
        self._command(ctx, self._client(connection_string), database, {"dropRole": role_name})
        logger.info(f"Dropped role {role_name}@{database}")

    def list_databases(self, ctx: Context, connection_string: str) -> List[str]:
        result = self._command(ctx, self._client(connection_string), "admin", {"listDatabases": 1, "nameOnly": True})
        return sorted(d["name"] for d in result.get("databases", []))

    def list_collections(self, ctx: Context, connection_string: str, database: str) -> List[str]:
        client = self._client(connection_string)
        ctx.check()
        try:
            return sorted(client[database].list_collection_names(maxTimeMS=self._max_time_ms(ctx)))
        except PyMongoError as e:
            raise _classify(e, connection_string)

    def _client(self, connection_string: str):
        try:
            return self.clients.get(connection_string)
        except PyMongoError as e:
            raise _classify(e, connection_string)

    def _role_databases(self, ctx: Context, client) -> List[str]:
        result = self._command(ctx, client, "admin", {"listDatabases": 1, "nameOnly": True})
        names = [d["name"] for d in result.get("databases", [])]
        return sorted((set(names) | {"admin"}) - {"local", "config"})

    def _command(self, ctx: Context, client, database: str, command: Dict[str, Any]) -> Dict[str, Any]:
        ctx.check()
        command = dict(command, maxTimeMS=self._max_time_ms(ctx))
        try:
            return client[database].command(command)
        except PyMongoError as e:
            raise _classify(e, "")

    def _max_time_ms(self, ctx: Context) -> int:
        return int(ctx.bound(self.call_timeout) * 1000)


def _classify(error: Exception, connection_string: str) -> ExecutionError:
    """Map pymongo exceptions onto the service error taxonomy."""
    message = mask_secrets(str(error))
    if isinstance(error, DuplicateKeyError):
        return ConflictError(message)
    if isinstance(error, OperationFailure):
        code = error.code
        if code in (_CODE_UNAUTHORIZED, _CODE_AUTH_FAILED):
            return AuthError(message)
        if code == _CODE_ROLE_NOT_FOUND:
            return NotFoundError(message)
        if code == _CODE_DUPLICATE or "already exists" in message:
            return ConflictError(message)
        if code == _CODE_BAD_VALUE:
            return AtlasValidationError(message)
        return ExecutionError(message)
    if isinstance(error, (ServerSelectionTimeoutError, ConnectionFailure)):
        return TransientError(message)
    if isinstance(error, ConfigurationError):
        return AtlasValidationError(
            f"Invalid MongoDB connection string: {message}",
            suggestion="Check the connection-string annotation or MATLAS_ROLE_CONN_STRING",
        )
    return ExecutionError(message)
