"""Tests for the Atlas Admin API client."""

from unittest.mock import Mock, patch
import pytest
import requests
from matlas.services.atlas.client import MAX_PAGE_SIZE, AtlasClient, classify_response, segment
from matlas.utils.context import Context
from matlas.utils.errors import (
    AtlasValidationError,
    AuthError,
    ConflictError,
    FatalServiceError,
    NotFoundError,
    RateLimitError,
    TransientError,
)


def error_response(status_code, error_code=None, detail="boom"):
    """Atlas-style JSON error body."""
    resp = Mock(status_code=status_code, text=detail)
    resp.json.return_value = {"error": status_code, "errorCode": error_code, "detail": detail}
    return resp


def ok_response(payload):
    resp = Mock(status_code=200, content=b"{...}")
    resp.json.return_value = payload
    return resp


@pytest.fixture
def client():
    return AtlasClient("public", "private", base_url="https://atlas.test/api/atlas/v2")


class TestClassifyResponse:
    """Test HTTP status to error type mapping."""

    @pytest.mark.parametrize("status_code,error_type", [
        (404, NotFoundError),
        (409, ConflictError),
        (401, AuthError),
        (403, AuthError),
        (429, RateLimitError),
        (500, TransientError),
        (503, TransientError),
        (504, TransientError),
        (400, AtlasValidationError),
        (422, AtlasValidationError),
        (418, FatalServiceError),
    ])
    def test_status_codes(self, status_code, error_type):
        """Test each status maps to its error type."""
        error = classify_response("GET", "/groups/p1/clusters", error_response(status_code))

        assert type(error) is error_type
        assert error.status_code == status_code

    def test_retryable_flags(self):
        """Test only throttling and server errors are retried."""
        assert classify_response("GET", "/x", error_response(429)).retryable
        assert classify_response("GET", "/x", error_response(502)).retryable
        assert not classify_response("GET", "/x", error_response(400)).retryable

    def test_already_exists_error_code(self):
        """Test a 400 with an ALREADY_EXISTS code is a conflict."""
        error = classify_response("POST", "/groups/p1/peers", error_response(400, "PEER_ALREADY_EXISTS"))

        assert isinstance(error, ConflictError)
        assert error.error_code == "PEER_ALREADY_EXISTS"

    def test_not_found_error_code(self):
        """Test a 400 with a NOT_FOUND code is a missing resource."""
        error = classify_response("GET", "/groups/p1/clusters/c9", error_response(400, "CLUSTER_NOT_FOUND"))

        assert isinstance(error, NotFoundError)

    def test_message_carries_detail(self):
        """Test the Atlas detail text is part of the message."""
        error = classify_response("DELETE", "/groups/p1/accessList/x", error_response(404, detail="No entry"))

        assert error.message == "DELETE /groups/p1/accessList/x returned 404: No entry"

    def test_non_json_body(self):
        """Test a plain-text body is used as the detail."""
        resp = Mock(status_code=502, text="Bad Gateway")
        resp.json.side_effect = ValueError("not json")

        error = classify_response("GET", "/x", resp)

        assert isinstance(error, TransientError)
        assert error.message.endswith("Bad Gateway")
        assert error.error_code is None


class TestRequests:
    """Test request dispatch through a stubbed session."""

    def test_error_status_raises(self, client):
        """Test a 4xx response raises the classified error."""
        session = Mock()
        session.request.return_value = error_response(404, "RESOURCE_NOT_FOUND")

        with patch.object(client, "_session", return_value=session):
            with pytest.raises(NotFoundError):
                client.get(Context.background(), "/groups/p1/clusters/c1")

        method, url = session.request.call_args[0]
        assert method == "GET"
        assert url == "https://atlas.test/api/atlas/v2/groups/p1/clusters/c1"

    def test_connection_error_is_transient(self, client):
        """Test network failures are retryable."""
        session = Mock()
        session.request.side_effect = requests.ConnectionError("reset by peer")

        with patch.object(client, "_session", return_value=session):
            with pytest.raises(TransientError):
                client.get(Context.background(), "/groups/p1")

    def test_empty_body(self, client):
        """Test a 204 with no content returns None."""
        session = Mock()
        session.request.return_value = Mock(status_code=204, content=b"")

        with patch.object(client, "_session", return_value=session):
            assert client.delete(Context.background(), "/groups/p1/alertConfigs/a1") is None


class TestPagination:
    """Test get_all page walking."""

    def test_stops_on_short_page(self, client):
        """Test pages are requested until one comes back short."""
        full = [{"id": str(i)} for i in range(MAX_PAGE_SIZE)]
        session = Mock()
        session.request.side_effect = [
            ok_response({"results": full, "totalCount": MAX_PAGE_SIZE + 2}),
            ok_response({"results": [{"id": "a"}, {"id": "b"}], "totalCount": MAX_PAGE_SIZE + 2}),
        ]

        with patch.object(client, "_session", return_value=session):
            items = client.get_all(Context.background(), "/groups/p1/clusters")

        assert len(items) == MAX_PAGE_SIZE + 2
        pages = [call.kwargs["params"]["pageNum"] for call in session.request.call_args_list]
        assert pages == [1, 2]

    def test_single_short_page(self, client):
        """Test a first page smaller than the page size is the only request."""
        session = Mock()
        session.request.return_value = ok_response({"results": [{"id": "a"}]})

        with patch.object(client, "_session", return_value=session):
            items = client.get_all(Context.background(), "/groups/p1/alerts", params={"status": "OPEN"})

        assert items == [{"id": "a"}]
        assert session.request.call_count == 1
        assert session.request.call_args.kwargs["params"]["status"] == "OPEN"

    def test_bare_list_response(self, client):
        """Test endpoints that return a JSON array instead of an envelope."""
        session = Mock()
        session.request.return_value = ok_response([{"id": "a"}, {"id": "b"}])

        with patch.object(client, "_session", return_value=session):
            items = client.get_page(Context.background(), "/groups/p1/privateEndpoint/AWS/endpointService", 1, 100)

        assert items == [{"id": "a"}, {"id": "b"}]


class TestSegment:
    """Test path segment encoding."""

    def test_cidr_is_escaped(self):
        assert segment("10.0.0.0/24") == "10.0.0.0%2F24"
