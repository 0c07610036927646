"""
Tests for RestGateway with a mocked requests.Session.
"""
from unittest.mock import MagicMock

import pytest
import requests

from collabzy.cache import ResourceKind
from collabzy.errors import GatewayError
from collabzy.gateway import Operation, RestGateway
from collabzy.schemas import ApplicationStatus, Campaign, Collaboration


BASE_URL = "http://api.test/api"


def _response(status_code=200, body=None, invalid_json=False):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if invalid_json:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def rest(http):
    return RestGateway(base_url=BASE_URL + "/", token_provider=lambda: "tok-123", timeout=3, session=http)


# =============================================================================
# Reads
# =============================================================================

def test_fetch_parses_records_from_envelope(rest, http):
    http.request.return_value = _response(body={
        "success": True,
        "data": [{"_id": "c1", "title": "Summer Launch", "status": "active", "applicationCount": 4}],
    })

    records = rest.fetch(ResourceKind.CAMPAIGNS, {"status": "active", "page": None})

    assert len(records) == 1
    assert isinstance(records[0], Campaign)
    assert records[0].id == "c1"
    assert records[0].application_count == 4

    method, url = http.request.call_args.args
    kwargs = http.request.call_args.kwargs
    assert method == "GET"
    assert url == "http://api.test/api/campaigns"
    assert kwargs["params"] == {"status": "active"}
    assert kwargs["headers"]["Authorization"] == "Bearer tok-123"
    assert kwargs["timeout"] == 3


def test_fetch_collaborations_shape(rest, http):
    http.request.return_value = _response(body={
        "success": True,
        "data": [{
            "application": {"_id": "a1", "status": "shortlisted"},
            "campaign": {"_id": "c1", "title": "Launch"},
            "otherUser": {"_id": "u2", "name": "Sarah", "role": "influencer"},
            "lastMessage": {"content": "Hi", "isFromMe": True},
            "unreadCount": 2,
        }],
    })

    records = rest.fetch(ResourceKind.CONVERSATIONS, {})

    assert isinstance(records[0], Collaboration)
    assert records[0].application.status == ApplicationStatus.SHORTLISTED
    assert records[0].last_message.is_from_me is True
    assert records[0].unread_count == 2


def test_fetch_missing_data_is_empty(rest, http):
    http.request.return_value = _response(body={"success": True})
    assert rest.fetch(ResourceKind.DEALS, {}) == []


def test_fetch_non_list_data_raises(rest, http):
    http.request.return_value = _response(body={"success": True, "data": {"title": "x"}})
    with pytest.raises(GatewayError):
        rest.fetch(ResourceKind.CAMPAIGNS, {})


def test_schema_drift_raises_gateway_error(rest, http):
    http.request.return_value = _response(body={"success": True, "data": [{"description": "no title"}]})

    with pytest.raises(GatewayError) as exc_info:
        rest.fetch(ResourceKind.CAMPAIGNS, {})

    assert exc_info.value.message == "Unexpected response from server"


def test_no_token_sends_no_authorization(http):
    rest = RestGateway(base_url=BASE_URL, session=http)
    http.request.return_value = _response(body={"success": True, "data": []})

    rest.fetch(ResourceKind.INFLUENCERS, {})

    assert "Authorization" not in http.request.call_args.kwargs["headers"]


# =============================================================================
# Errors
# =============================================================================

def test_error_status_uses_server_message(rest, http):
    http.request.return_value = _response(401, {"success": False, "message": "Not authorized, token failed"})

    with pytest.raises(GatewayError) as exc_info:
        rest.fetch(ResourceKind.DEALS, {})

    assert exc_info.value.message == "Not authorized, token failed"
    assert exc_info.value.status_code == 401
    assert exc_info.value.payload == {"success": False, "message": "Not authorized, token failed"}


def test_error_status_without_body_uses_status_message(rest, http):
    http.request.return_value = _response(502, invalid_json=True)

    with pytest.raises(GatewayError) as exc_info:
        rest.fetch(ResourceKind.DEALS, {})

    assert exc_info.value.message == "Request failed with status 502"


def test_success_false_envelope_raises(rest, http):
    http.request.return_value = _response(200, {"success": False, "message": "Campaign is closed"})

    with pytest.raises(GatewayError) as exc_info:
        rest.mutate(Operation.SUBMIT_APPLICATION, {"campaign": "c1"})

    assert exc_info.value.message == "Campaign is closed"


def test_network_error_becomes_gateway_error(rest, http):
    http.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(GatewayError) as exc_info:
        rest.fetch(ResourceKind.CAMPAIGNS, {})

    assert exc_info.value.message == "Unable to reach the Collabzy API"
    assert exc_info.value.status_code is None


def test_reads_are_retried_on_connection_errors(http):
    rest = RestGateway(base_url=BASE_URL, session=http, read_retry_attempts=2)
    http.request.side_effect = [
        requests.ConnectionError("blip"),
        _response(body={"success": True, "data": []}),
    ]

    assert rest.fetch(ResourceKind.INFLUENCERS, {}) == []
    assert http.request.call_count == 2


def test_writes_are_never_retried(http):
    rest = RestGateway(base_url=BASE_URL, session=http, read_retry_attempts=3)
    http.request.side_effect = requests.ConnectionError("blip")

    with pytest.raises(GatewayError):
        rest.mutate(Operation.CREATE_CAMPAIGN, {"title": "x"})

    assert http.request.call_count == 1


# =============================================================================
# Writes
# =============================================================================

def test_mutate_formats_and_quotes_path(rest, http):
    http.request.return_value = _response(body={"success": True, "data": {"agreedRate": 500, "status": "active"}})

    deal = rest.mutate(
        Operation.UPDATE_DELIVERABLE,
        {"status": "submitted"},
        {"deal_id": "d 1", "deliverable_index": 0},
    )

    method, url = http.request.call_args.args
    assert method == "PUT"
    assert url == "http://api.test/api/deals/d%201/deliverables/0"
    assert http.request.call_args.kwargs["json"] == {"status": "submitted"}
    assert deal.agreed_rate == 500


def test_mutate_serializes_enums(rest, http):
    http.request.return_value = _response(body={"success": True, "data": {"campaign": "c1", "status": "accepted"}})

    rest.mutate(
        Operation.UPDATE_APPLICATION_STATUS,
        {"status": ApplicationStatus.ACCEPTED, "message": ""},
        {"application_id": "a1"},
    )

    assert http.request.call_args.kwargs["json"] == {"status": "accepted", "message": ""}


def test_delete_returns_raw_data(rest, http):
    http.request.return_value = _response(body={"success": True, "message": "Campaign deleted"})

    assert rest.mutate(Operation.DELETE_CAMPAIGN, path_params={"campaign_id": "c1"}) is None
    assert http.request.call_args.args == ("DELETE", "http://api.test/api/campaigns/c1")
    assert http.request.call_args.kwargs["json"] is None


def test_get_single_record(rest, http):
    http.request.return_value = _response(body={"success": True, "data": {"_id": "c1", "title": "One"}})

    campaign = rest.get("/campaigns/c1", record_type=Campaign)

    assert campaign.title == "One"
    assert http.request.call_args.kwargs["params"] is None
