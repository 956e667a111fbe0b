"""Short-lived, least-privilege database users with guaranteed cleanup."""

import secrets
import string
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Any, Iterator, List, Optional, Sequence
from urllib.parse import quote_plus
from ..config.settings import TempUserSettings
from ..utils.tags import TEMP_USER_LABEL, tags_from_atlas
from ..utils.context import Context
from ..utils.errors import ExecutionError, NotFoundError, TempUserError
from ..utils.logging import get_logger

logger = get_logger("tempuser.manager")

PASSWORD_LENGTH = 32
_ALPHABET = string.ascii_letters + string.digits
RELEASE_TIMEOUT = 30.0


class Tier(str, Enum):
    DISCOVERY = "discovery"
    MAINTENANCE = "maintenance"
    CUSTOM = "custom"


ROLE_ADMIN_ROLES = [{"roleName": "userAdminAnyDatabase", "databaseName": "admin"}]


def tier_roles(tier: str, database: Optional[str] = None) -> List[Dict[str, str]]:
    """Least-privilege roles for a tier."""
    if tier == Tier.DISCOVERY.value:
        if database and database != "admin":
            return [{"roleName": "readAnyDatabase", "databaseName": "admin"}]
        return [{"roleName": "read", "databaseName": "admin"}]
    if tier == Tier.MAINTENANCE.value:
        return [
            {"roleName": "readWriteAnyDatabase", "databaseName": "admin"},
            {"roleName": "dbAdminAnyDatabase", "databaseName": "admin"},
        ]
    raise TempUserError(f"Tier '{tier}' has no predefined roles; pass roles explicitly")


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """
    Alphanumeric password from the OS CSPRNG.

    Raises:
        TempUserError: If no entropy source is available
    """
    try:
        return "".join(secrets.choice(_ALPHABET) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise TempUserError(f"Cannot generate a secure password: {e}")


def build_connection_string(srv: str, username: str, password: str, auth_database: str = "admin") -> str:
    """mongodb+srv URI with URL-encoded credentials."""
    host = srv.replace("mongodb+srv://", "").rstrip("/")
    return f"mongodb+srv://{quote_plus(username)}:{quote_plus(password)}@{host}/?authSource={auth_database}"


class TempUser:
    """A provisioned temporary user; release() is idempotent."""

    def __init__(self, username: str, password: str, roles: List[Dict[str, str]], scopes: List[Dict[str, str]],
                 expires_at: datetime, purpose: str, release: Callable[["TempUser"], None],
                 auth_database: str = "admin"):
        self.username = username
        self.password = password
        self.roles = roles
        self.scopes = scopes
        self.expires_at = expires_at
        self.purpose = purpose
        self.auth_database = auth_database
        self._release = release
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._release(self)

    def connection_string(self, srv: str) -> str:
        return build_connection_string(srv, self.username, self.password, self.auth_database)

    def __repr__(self) -> str:
        return f"TempUser(username={self.username!r}, expires_at={self.expires_at.isoformat()})"


class TempUserManager:
    """
    Mints temporary database users through DatabaseUserSvc and tracks every
    outstanding one so release_all() can guarantee deletion on any exit path.
    """

    def __init__(self, services, project_id: str, settings: Optional[TempUserSettings] = None,
                 clock: Callable[[], float] = time.time):
        self.services = services
        self.project_id = project_id
        self.settings = settings or TempUserSettings()
        self._clock = clock
        self._outstanding: Dict[str, TempUser] = {}
        self._shared: Dict[str, TempUser] = {}
        self._lock = threading.Lock()
        self._create_lock = threading.Lock()
        self.release_errors: List[str] = []

    @property
    def outstanding(self) -> List[TempUser]:
        with self._lock:
            return list(self._outstanding.values())

    def default_ttl(self, tier: str) -> int:
        if tier == Tier.DISCOVERY.value:
            return self.settings.discovery_ttl
        if tier == Tier.MAINTENANCE.value:
            return self.settings.maintenance_ttl
        return self.settings.default_ttl

    def create(
        self,
        ctx: Context,
        clusters: Sequence[str],
        auth_database: str = "admin",
        tier: str = Tier.DISCOVERY.value,
        ttl: Optional[int] = None,
        purpose: str = "discovery",
        roles: Optional[List[Dict[str, str]]] = None,
        database: Optional[str] = None,
    ) -> TempUser:
        """
        Provision a temporary user scoped to `clusters`.

        Prefer acquire(), which guarantees release.

        Raises:
            TempUserError: If the user cannot be created
        """
        if tier == Tier.CUSTOM.value and not roles:
            raise TempUserError("Custom tier requires explicit roles")
        roles = roles or tier_roles(tier, database)
        ttl = ttl if ttl is not None else self.default_ttl(tier)
        if ttl <= 0:
            raise TempUserError(f"TTL must be positive, got {ttl}")

        now = self._clock()
        username = f"matlas-{purpose}-{int(now)}-{secrets.token_hex(4)}"
        password = generate_password()
        expires_at = datetime.fromtimestamp(now, timezone.utc) + timedelta(seconds=ttl)
        scopes = [{"name": name, "type": "CLUSTER"} for name in sorted(set(clusters))]

        payload: Dict[str, Any] = {
            "username": username,
            "password": password,
            "databaseName": auth_database,
            "roles": roles,
            "scopes": scopes,
            "labels": [
                {"key": TEMP_USER_LABEL, "value": "true"},
                {"key": "purpose", "value": purpose},
            ],
            "deleteAfterDate": expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        try:
            self.services.database_users.create(ctx, self.project_id, payload)
        except ExecutionError as e:
            raise TempUserError(f"Failed to create temporary user for {purpose}: {e.message}")

        user = TempUser(username, password, roles, scopes, expires_at, purpose, self._delete, auth_database)
        with self._lock:
            self._outstanding[username] = user
        logger.info(f"Created temporary user {username} ({tier}, ttl {ttl}s) for {purpose}")
        return user

    @contextmanager
    def acquire(self, ctx: Context, clusters: Sequence[str], auth_database: str = "admin",
                tier: str = Tier.DISCOVERY.value, ttl: Optional[int] = None, purpose: str = "discovery",
                roles: Optional[List[Dict[str, str]]] = None, database: Optional[str] = None) -> Iterator[TempUser]:
        """Scoped temporary user; released on every exit from the block."""
        user = self.create(ctx, clusters, auth_database, tier, ttl, purpose, roles, database)
        try:
            yield user
        finally:
            self._release_quietly(user)

    def shared(self, ctx: Context, key: str, clusters: Sequence[str], tier: str = Tier.CUSTOM.value,
               purpose: str = "role-admin", roles: Optional[List[Dict[str, str]]] = None) -> TempUser:
        """
        A temporary user reused for every caller passing the same `key`
        until it is released or expires. Released by release_all().
        """
        with self._create_lock:
            user = self._shared.get(key)
            now = datetime.fromtimestamp(self._clock(), timezone.utc)
            if user is not None and not user.released and user.expires_at > now:
                return user
            user = self.create(ctx, clusters, tier=tier, purpose=purpose, roles=roles)
            self._shared[key] = user
            return user

    def release_all(self) -> List[str]:
        """Release every outstanding user; returns failure messages."""
        failures = []
        for user in self.outstanding:
            error = self._release_quietly(user)
            if error:
                failures.append(error)
        return failures

    def _release_quietly(self, user: TempUser) -> Optional[str]:
        try:
            user.release()
        except TempUserError as e:
            logger.error(str(e))
            self.release_errors.append(e.message)
            return e.message
        return None

    def _delete(self, user: TempUser) -> None:
        # Runs under a fresh context so release still happens after cancellation.
        ctx = Context(timeout=RELEASE_TIMEOUT)
        try:
            self.services.database_users.delete(ctx, self.project_id, f"{user.auth_database}/{user.username}")
        except NotFoundError:
            logger.debug(f"Temporary user {user.username} already gone")
        except ExecutionError as e:
            raise TempUserError(
                f"Failed to delete temporary user {user.username}: {e.message}",
                suggestion=f"Delete it manually; Atlas removes it after {user.expires_at.isoformat()}",
            )
        finally:
            with self._lock:
                self._outstanding.pop(user.username, None)
        logger.info(f"Released temporary user {user.username}")

    def cleanup_expired_users(self, ctx: Context) -> List[str]:
        """
        Delete temporary users whose deleteAfterDate has passed.

        Returns:
            Usernames deleted

        Raises:
            TempUserError: Listing every user that could not be deleted
        """
        now = datetime.fromtimestamp(self._clock(), timezone.utc)
        deleted: List[str] = []
        failures: List[str] = []
        for payload in self.services.database_users.list(ctx, self.project_id):
            if tags_from_atlas(payload.get("labels")).get(TEMP_USER_LABEL) != "true":
                continue
            expiry = _parse(payload.get("deleteAfterDate"))
            if expiry is None or expiry > now:
                continue
            username = payload.get("username")
            database = payload.get("databaseName", "admin")
            try:
                self.services.database_users.delete(ctx, self.project_id, f"{database}/{username}")
                deleted.append(username)
            except NotFoundError:
                deleted.append(username)
            except ExecutionError as e:
                failures.append(f"{username}: {e.message}")

        if deleted:
            logger.info(f"Cleaned up {len(deleted)} expired temporary user(s)")
        if failures:
            raise TempUserError(f"Failed to delete {len(failures)} expired temporary user(s): " + "; ".join(failures))
        return deleted


def _parse(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
