import logging
import re
from typing import Optional

from di_mcp_server.DiscoveryErrors import ToolNameConflictError

DECISION_SERVICE_NAME_KEY = "x-ibm-ads-decision-service-name"
DECISION_ID_KEY = "x-ibm-ads-decision-id"

TOOL_NAME_METADATA_PREFIX = "mcpToolName."

# Some MCP hosts reject white spaces in tool names, others reject '/'
_INVALID_TOOL_NAME_CHARS = re.compile(r"[\s/]")


def tool_name_metadata_key(operation_id: str) -> str:
    """
    Returns the name of the decision metadata entry whose value, when present,
    overrides the tool name of the operation.
    """
    return TOOL_NAME_METADATA_PREFIX + operation_id


def metadata_override(metadata: Optional[dict], operation_id: str) -> Optional[str]:
    """Returns the tool name override stored in a decision metadata map ({"map": {...}}), if any."""
    entry = ((metadata or {}).get("map") or {}).get(tool_name_metadata_key(operation_id))
    if not entry:
        return None
    return entry.get("value") or None


def sanitize_tool_name(name: str) -> str:
    return _INVALID_TOOL_NAME_CHARS.sub("_", name)


def generate_tool_name(operation_id: str, decision_service_name: str, decision_service_id: str, tool_names) -> str:
    """
    Generates a unique tool name for an operation of a decision service.

    Args:
        operation_id (str): The operation identifier.
        decision_service_name (str): The display name of the decision service.
        decision_service_id (str): The unique id of the decision service.
        tool_names (Container[str]): The tool names already allocated.

    Returns:
        str: '<decision service name>_<operation id>', or '<decision service id>_<operation id>'
        when the former is already taken.

    Raises:
        ToolNameConflictError: when both names are already taken.
    """
    tool_name = sanitize_tool_name(f"{decision_service_name} {operation_id}")
    if tool_name in tool_names:
        tool_name = sanitize_tool_name(f"{decision_service_id} {operation_id}")
        if tool_name in tool_names:
            raise ToolNameConflictError(tool_name)
    return tool_name


class ToolNameAllocator:
    """
    Allocates tool names for one discovery pass.

    Every allocated name is remembered, so that names stay unique across all the decision
    services processed during the pass: the first operation processed wins the default name.
    A name found in the decision metadata (see tool_name_metadata_key) is used verbatim.
    """

    def __init__(self, client):
        self.logger = logging.getLogger(__name__)
        self.client = client
        self.tool_names: set[str] = set()
        self._metadata: dict[tuple[str, str], dict] = {}

    async def _decision_metadata(self, deployment_space: str, decision_id: Optional[str]) -> Optional[dict]:
        if decision_id is None:
            return None
        key = (deployment_space, decision_id)
        if key not in self._metadata:
            self._metadata[key] = await self.client.fetch_decision_metadata(deployment_space, decision_id)
        return self._metadata[key]

    async def allocate(self, deployment_space: str, info: dict, operation_id: str, decision_service_id: str) -> str:
        decision_service_name = info.get(DECISION_SERVICE_NAME_KEY) or decision_service_id
        metadata = await self._decision_metadata(deployment_space, info.get(DECISION_ID_KEY))
        tool_name = metadata_override(metadata, operation_id)
        if tool_name:
            self.logger.debug("Using tool name '%s' from metadata for operation '%s'", tool_name, operation_id)
        else:
            tool_name = generate_tool_name(operation_id, decision_service_name, decision_service_id, self.tool_names)
        self.tool_names.add(tool_name)
        return tool_name
