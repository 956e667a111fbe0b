"""Thin Atlas Admin API v2 HTTP client (digest auth, versioned media type)."""

import threading
from typing import Dict, Any, List, Optional
from urllib.parse import quote
import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPDigestAuth
from ...utils.context import Context
from ...utils.errors import (
    AtlasValidationError,
    AuthError,
    ConflictError,
    ExecutionError,
    FatalServiceError,
    NotFoundError,
    RateLimitError,
    TransientError,
)
from ...utils.logging import get_logger

logger = get_logger("services.atlas.client")

BASE_URL = "https://cloud.mongodb.com/api/atlas/v2"
JSON_ACCEPT = "application/vnd.atlas.2023-02-01+json"
MAX_PAGE_SIZE = 500


class AtlasClient:
    """
    Atlas Admin API client shared by all adapters.

    Each thread gets its own requests.Session (with a pooled adapter) so the
    client can be called concurrently from discovery and execution workers.
    """

    def __init__(
        self,
        public_key: str,
        private_key: str,
        base_url: str = BASE_URL,
        call_timeout: float = 30.0,
        pool_size: int = 16,
    ):
        self.base_url = base_url.rstrip("/")
        self.call_timeout = call_timeout
        self.pool_size = pool_size
        self._auth = (public_key, private_key)
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.auth = HTTPDigestAuth(*self._auth)
            session.headers.update({"Accept": JSON_ACCEPT, "Content-Type": "application/json"})
            adapter = HTTPAdapter(pool_connections=self.pool_size, pool_maxsize=self.pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        for session in sessions:
            session.close()

    def request(
        self,
        ctx: Context,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body (None when empty).

        Raises:
            ExecutionError subclasses classified from the HTTP status
        """
        ctx.check()
        url = f"{self.base_url}{path}"
        timeout = ctx.bound(self.call_timeout)
        logger.debug(f"{method} {path}")
        try:
            headers = {"Accept": accept} if accept else None
            resp = self._session().request(method, url, json=body, params=params, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            raise TransientError(f"{method} {path} timed out after {timeout:.0f}s: {e}")
        except requests.ConnectionError as e:
            raise TransientError(f"{method} {path} connection failed: {e}")
        except requests.RequestException as e:
            raise FatalServiceError(f"{method} {path} failed: {e}")

        if resp.status_code >= 400:
            raise classify_response(method, path, resp)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def get(self, ctx: Context, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return self.request(ctx, "GET", path, params=params, **kwargs)

    def post(self, ctx: Context, path: str, body: Any, **kwargs) -> Any:
        return self.request(ctx, "POST", path, body=body, **kwargs)

    def patch(self, ctx: Context, path: str, body: Any, **kwargs) -> Any:
        return self.request(ctx, "PATCH", path, body=body, **kwargs)

    def put(self, ctx: Context, path: str, body: Any, **kwargs) -> Any:
        return self.request(ctx, "PUT", path, body=body, **kwargs)

    def delete(self, ctx: Context, path: str, **kwargs) -> None:
        self.request(ctx, "DELETE", path, **kwargs)

    def get_page(self, ctx: Context, path: str, page_num: int, items_per_page: int,
                 params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """One page of a paginated listing ("results" envelope)."""
        query = dict(params or {})
        query.update({"pageNum": page_num, "itemsPerPage": min(items_per_page, MAX_PAGE_SIZE)})
        data = self.get(ctx, path, params=query) or {}
        if isinstance(data, list):
            return data
        return data.get("results", [])

    def get_all(self, ctx: Context, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Every page of a paginated listing."""
        results: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = self.get_page(ctx, path, page, MAX_PAGE_SIZE, params=params)
            results.extend(batch)
            if len(batch) < MAX_PAGE_SIZE:
                return results
            page += 1


def classify_response(method: str, path: str, resp) -> ExecutionError:
    """Map an Atlas error response onto the service error taxonomy."""
    status = resp.status_code
    error_code = None
    detail = resp.text
    try:
        payload = resp.json()
        error_code = payload.get("errorCode")
        detail = payload.get("detail") or payload.get("reason") or detail
    except ValueError:
        pass

    message = f"{method} {path} returned {status}: {detail}"
    kwargs = {"status_code": status, "error_code": error_code}
    if status == 404:
        return NotFoundError(message, **kwargs)
    if status == 409:
        return ConflictError(message, **kwargs)
    if status in (401, 403):
        return AuthError(message, **kwargs)
    if status == 429:
        return RateLimitError(message, **kwargs)
    if status in (408, 504):
        return TransientError(message, **kwargs)
    if status >= 500:
        return TransientError(message, **kwargs)
    if error_code and error_code.endswith("ALREADY_EXISTS"):
        return ConflictError(message, **kwargs)
    if status == 400 and error_code and "NOT_FOUND" in error_code:
        return NotFoundError(message, **kwargs)
    if status in (400, 422):
        return AtlasValidationError(message, **kwargs)
    return FatalServiceError(message, **kwargs)


def segment(value: str) -> str:
    """URL-encode a single path segment."""
    return quote(str(value), safe="")



