import json

import pytest
import requests
import responses
from responses import matchers

from di_mcp_server.Configuration import Configuration
from di_mcp_server.Credentials import Credentials
from di_mcp_server.DecisionRuntimeClient import DecisionRuntimeClient, encode_uri_component
from di_mcp_server.DiscoveryErrors import DecisionRuntimeError, DecisionServiceIncidentError

URL = "https://di.example.com/ads/runtime/api/v1"
DECISION_SERVICE_ID = "test/Loan Approval"
DECISION_ID = "test/loan_approval/loanApprovalDecisionService/3-2025-06-18T13:00:39.447Z"
OPENAPI_URL = URL + "/selectors/lastDeployedDecisionService/deploymentSpaces/development/openapi"

EXPECTED_HEADERS = {
    "User-Agent": "IBM-DI-MCP-Server/1.0.0",
    "accept": "application/json",
    "apikey": "test_key",
}


@pytest.fixture
def client():
    configuration = Configuration(Credentials.create_di_apikey_credentials("test_key"), URL, "1.0.0")
    client = DecisionRuntimeClient(configuration)
    yield client
    client.close()


def test_encode_uri_component():
    assert encode_uri_component("test/Loan Approval") == "test%2FLoan%20Approval"
    assert encode_uri_component("a-b_c.d!e~f*g'h(i)") == "a-b_c.d!e~f*g'h(i)"
    assert encode_uri_component("12:00") == "12%3A00"


def test_get_headers(client):
    assert client.get_headers() == EXPECTED_HEADERS


@responses.activate
def test_get_space_metadata(client):
    responses.add(
        responses.GET,
        URL + "/deploymentSpaces/development/metadata",
        json=[
            {"decisionServiceId": {"name": "decisionServiceId", "kind": "PLAIN", "readOnly": True, "value": "svc1"}},
            {"decisionServiceId": {"name": "decisionServiceId", "kind": "PLAIN", "readOnly": True, "value": "svc2"}},
            {"decisionServiceId": {"name": "decisionServiceId", "kind": "PLAIN", "readOnly": True, "value": "svc1"}},
        ],
        match=[
            matchers.query_param_matcher({"names": "decisionServiceId"}),
            matchers.header_matcher(EXPECTED_HEADERS),
        ],
        status=200,
    )
    metadata = client.get_space_metadata("development")
    assert client.get_decision_service_ids(metadata) == ["svc1", "svc2"]


@pytest.mark.asyncio
async def test_list_deployed_service_ids_encodes_deployment_space(client):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            URL + "/deploymentSpaces/my%20space/metadata",
            json=[{"decisionServiceId": {"value": DECISION_SERVICE_ID}}],
            status=200,
        )
        assert await client.list_deployed_service_ids("my space") == [DECISION_SERVICE_ID]


@pytest.mark.asyncio
async def test_fetch_service_descriptor(client):
    openapi = {"openapi": "3.0.1", "info": {"title": "Loan Approval"}, "paths": {}}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            OPENAPI_URL,
            json=openapi,
            match=[
                matchers.query_param_matcher({"decisionServiceId": DECISION_SERVICE_ID,
                                              "outputFormat": "JSON/openapi"}),
                matchers.header_matcher(EXPECTED_HEADERS),
            ],
            status=200,
        )
        assert await client.fetch_service_descriptor("development", DECISION_SERVICE_ID) == openapi


@pytest.mark.asyncio
async def test_fetch_service_descriptor_incident(client):
    incident = {"incident": {"incidentCategory": "Decision service not found", "stackTrace": "at line 1"}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, OPENAPI_URL, json=incident, status=200)
        with pytest.raises(DecisionServiceIncidentError,
                           match="Failed to get OpenAPI for decision service 'test/Loan Approval' in deployment "
                                 "space 'development': Decision service not found - at line 1"):
            await client.fetch_service_descriptor("development", DECISION_SERVICE_ID)


def test_incident_without_category():
    error = DecisionServiceIncidentError("development", "svc", {})
    assert str(error) == "Failed to get OpenAPI for decision service 'svc' in deployment space 'development': Unknown error"


@responses.activate
def test_error_status_raises(client):
    responses.add(responses.GET, OPENAPI_URL, body="Forbidden", status=403)
    with pytest.raises(DecisionRuntimeError, match="Request error, status: 403, error: Forbidden") as exc_info:
        client.get_decision_service_openapi("development", DECISION_SERVICE_ID)
    assert exc_info.value.status_code == 403
    assert exc_info.value.body == "Forbidden"


@responses.activate
def test_connection_error_propagates(client):
    responses.add(responses.GET, OPENAPI_URL, body=requests.exceptions.ConnectionError("Connection refused"))
    with pytest.raises(requests.exceptions.ConnectionError):
        client.get_decision_service_openapi("development", DECISION_SERVICE_ID)


@pytest.mark.asyncio
async def test_fetch_operation_metadata_override(client):
    metadata_url = URL + "/deploymentSpaces/development/decisions/" + encode_uri_component(DECISION_ID) + "/metadata"
    metadata = {
        "map": {
            "mcpToolName.approval": {"name": "mcpToolName.approval", "kind": "PLAIN", "readOnly": False,
                                     "value": "approve_loan"}
        }
    }
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, metadata_url, json=metadata, status=200)
        rsps.add(responses.GET, metadata_url, json=metadata, status=200)
        assert await client.fetch_operation_metadata_override("development", DECISION_ID, "approval") == "approve_loan"
        assert await client.fetch_operation_metadata_override("development", DECISION_ID, "validation") is None


@pytest.mark.asyncio
async def test_execute(client):
    output = {
        "insurance": {"rate": 2.5, "required": True},
        "approval": {"approved": True, "message": "Loan approved based on income and credit score"},
    }
    decision_input = {"loan": {"amount": 1000}, "borrower": {"firstName": "Alice"}}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            URL + "/selectors/lastDeployedDecisionService/deploymentSpaces/development/operations/approval/execute",
            json=output,
            match=[
                matchers.query_param_matcher({"decisionServiceId": DECISION_SERVICE_ID}),
                matchers.json_params_matcher(decision_input),
                matchers.header_matcher(EXPECTED_HEADERS),
            ],
            status=200,
        )
        text = await client.execute("development", DECISION_SERVICE_ID, "approval", decision_input)
    assert json.loads(text) == output
    assert text == json.dumps(output, separators=(",", ":"))
