import pytest
import requests

from di_mcp_server.DiscoveryErrors import DecisionServiceIncidentError, ToolNameConflictError
from di_mcp_server.ToolName import tool_name_metadata_key
from di_mcp_server.ToolSetBuilder import build_snapshot

from conftest import DECISION_ID, DECISION_SERVICE_ID, FakeRuntimeClient, make_openapi


class FailingEnumerationClient(FakeRuntimeClient):
    def __init__(self, failing_space, **kwargs):
        super().__init__(**kwargs)
        self.failing_space = failing_space

    async def list_deployed_service_ids(self, deployment_space):
        if deployment_space == self.failing_space:
            raise requests.exceptions.ConnectionError("Connection refused")
        return await super().list_deployed_service_ids(deployment_space)


@pytest.mark.asyncio
async def test_build_snapshot(loan_runtime, issues):
    tools = await build_snapshot(loan_runtime, ["development"], on_issue=issues)
    assert [tool.tool_name for tool in tools] == ["Loan_Approval_approval"]
    assert tools[0].decision_service_id == DECISION_SERVICE_ID
    assert issues.issues == []


@pytest.mark.asyncio
async def test_build_snapshot_isolates_failing_service(issues):
    client = FakeRuntimeClient(
        services={"development": {
            "broken": make_openapi("Broken"),
            "pricing": make_openapi("Pricing"),
        }},
        failures={"broken": requests.exceptions.ConnectionError("Connection refused")},
    )

    tools = await build_snapshot(client, ["development"], on_issue=issues)

    assert [(tool.decision_service_id, tool.tool_name) for tool in tools] == [("pricing", "Pricing_approval")]
    assert issues.kinds() == ["descriptor-fetch"]
    issue = issues.issues[0]
    assert issue.decision_service_id == "broken"
    assert issue.deployment_space == "development"
    assert isinstance(issue.error, requests.exceptions.ConnectionError)
    assert "Error registering tools for decision service 'broken' in deployment space 'development'" in issue.message


@pytest.mark.asyncio
async def test_build_snapshot_skips_incident(issues):
    incident = DecisionServiceIncidentError("development", "broken", {"incidentCategory": "Not found"})
    client = FakeRuntimeClient(
        services={"development": {"broken": {}, "pricing": make_openapi("Pricing")}},
        failures={"broken": incident},
    )
    tools = await build_snapshot(client, ["development"], on_issue=issues)
    assert [tool.tool_name for tool in tools] == ["Pricing_approval"]
    assert issues.issues[0].error is incident


@pytest.mark.asyncio
async def test_build_snapshot_skips_failing_deployment_space(issues):
    client = FailingEnumerationClient(
        "staging",
        services={"development": {"pricing": make_openapi("Pricing")}},
    )
    tools = await build_snapshot(client, ["staging", "development"], on_issue=issues)
    assert [tool.tool_name for tool in tools] == ["Pricing_approval"]
    assert issues.kinds() == ["space-enumeration"]
    assert issues.issues[0].deployment_space == "staging"


@pytest.mark.asyncio
async def test_build_snapshot_uses_explicit_service_ids(issues):
    client = FakeRuntimeClient(services={"development": {
        "pricing": make_openapi("Pricing"),
        "hidden": make_openapi("Hidden"),
    }})
    tools = await build_snapshot(client, ["development"], decision_service_ids=["pricing"], on_issue=issues)
    assert [tool.tool_name for tool in tools] == ["Pricing_approval"]
    assert client.descriptor_fetches == [("development", "pricing")]


@pytest.mark.asyncio
async def test_build_snapshot_name_collision_across_services(issues):
    client = FakeRuntimeClient(services={"development": {
        "svc1": make_openapi("Loan Approval"),
        "svc2": make_openapi("Loan Approval"),
    }})
    tools = await build_snapshot(client, ["development"], on_issue=issues)
    assert [tool.tool_name for tool in tools] == ["Loan_Approval_approval", "svc2_approval"]


@pytest.mark.asyncio
async def test_build_snapshot_names_are_unique_across_deployment_spaces(issues):
    client = FakeRuntimeClient(services={
        "development": {"svc": make_openapi("Loan Approval")},
        "production": {"svc": make_openapi("Loan Approval")},
    })
    tools = await build_snapshot(client, ["development", "production"], on_issue=issues)
    assert [(tool.deployment_space, tool.tool_name) for tool in tools] == [
        ("development", "Loan_Approval_approval"),
        ("production", "svc_approval"),
    ]


@pytest.mark.asyncio
async def test_build_snapshot_naming_conflict_propagates(issues):
    key = tool_name_metadata_key("approval")
    client = FakeRuntimeClient(
        services={"development": {
            "first": make_openapi("Loan Approval"),
            "svc": make_openapi("Loan Approval", DECISION_ID),
            "last": make_openapi("Loan Approval"),
        }},
        # The override of 'svc' takes the fallback name of 'last'
        metadata={DECISION_ID: {"map": {key: {"value": "last_approval"}}}},
    )
    with pytest.raises(ToolNameConflictError):
        await build_snapshot(client, ["development"], on_issue=issues)


@pytest.mark.asyncio
async def test_build_snapshot_deployment_space_without_services(issues):
    assert await build_snapshot(FakeRuntimeClient(), ["development"], on_issue=issues) == []
    assert issues.issues == []
