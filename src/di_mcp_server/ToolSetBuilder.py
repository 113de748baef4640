import logging
from typing import Optional

from di_mcp_server.DecisionServiceDescription import DecisionServiceDescription
from di_mcp_server.DiscoveryErrors import DiscoveryIssue, IssueReporter, ToolNameConflictError, log_discovery_issue
from di_mcp_server.OpenAPITranslator import translate_descriptor
from di_mcp_server.ToolName import ToolNameAllocator

logger = logging.getLogger(__name__)


async def build_snapshot(client, deployment_spaces: list[str], decision_service_ids: Optional[list[str]] = None,
                         on_issue: IssueReporter = log_discovery_issue) -> list[DecisionServiceDescription]:
    """
    Discovers the tools of every decision service of the deployment spaces.

    Args:
        client (DecisionRuntimeClient): Client of the decision runtime.
        deployment_spaces (list[str]): Deployment spaces to scan.
        decision_service_ids (list[str], optional): When set, used verbatim instead of enumerating
            the decision services of each deployment space.
        on_issue (callable): Receives a DiscoveryIssue for every failure that was skipped.

    Returns:
        list[DecisionServiceDescription]: The tools of the decision services that could be processed.
        Tool names are unique across the whole list.

    Raises:
        ToolNameConflictError: when an operation cannot get a unique tool name.
    """
    allocator = ToolNameAllocator(client)
    tools: list[DecisionServiceDescription] = []

    for deployment_space in deployment_spaces:
        logger.debug("deploymentSpace %s", deployment_space)
        service_ids = decision_service_ids
        if not service_ids:
            try:
                service_ids = await client.list_deployed_service_ids(deployment_space)
            except Exception as e:
                on_issue(DiscoveryIssue(
                    kind="space-enumeration",
                    message=f"Error listing the decision services of deployment space '{deployment_space}': {e}",
                    deployment_space=deployment_space, error=e))
                continue
        logger.debug("serviceIds %s", service_ids)

        for service_id in service_ids:
            try:
                openapi = await client.fetch_service_descriptor(deployment_space, service_id)
                service_tools = await translate_descriptor(openapi, deployment_space, service_id, allocator, on_issue)
            except ToolNameConflictError:
                raise
            except Exception as e:
                # The failing service contributes no tool, the other services are still processed
                on_issue(DiscoveryIssue(
                    kind="descriptor-fetch",
                    message=(f"Error registering tools for decision service '{service_id}' "
                             f"in deployment space '{deployment_space}': {e}"),
                    deployment_space=deployment_space, decision_service_id=service_id, error=e))
                continue
            tools.extend(service_tools)

    logger.info("Discovered %d tool(s) in %d deployment space(s)", len(tools), len(deployment_spaces))
    return tools
