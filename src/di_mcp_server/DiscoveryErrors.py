import logging
from dataclasses import dataclass
from typing import Callable, Optional


class DecisionRuntimeError(Exception):
    """Raised when the decision runtime answers with an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DecisionServiceIncidentError(DecisionRuntimeError):
    """
    Raised when the decision runtime answers 200 with an incident payload
    instead of the requested document.
    """

    def __init__(self, deployment_space: str, decision_service_id: str, incident: dict):
        category = incident.get("incidentCategory") or "Unknown error"
        stack_trace = incident.get("stackTrace")
        message = (f"Failed to get OpenAPI for decision service '{decision_service_id}' "
                   f"in deployment space '{deployment_space}': {category}")
        if stack_trace:
            message += f" - {stack_trace}"
        super().__init__(message, status_code=200)
        self.deployment_space = deployment_space
        self.decision_service_id = decision_service_id
        self.incident = incident


class ToolNameConflictError(Exception):
    """Both the default and the fallback tool names are already taken."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool name {tool_name} already exist")
        self.tool_name = tool_name


class ToolAlreadyRegisteredError(ValueError):
    def __init__(self, tool_name: str):
        super().__init__(f"Tool {tool_name} is already registered")
        self.tool_name = tool_name


class ToolNotRegisteredError(KeyError):
    def __init__(self, tool_name: str):
        super().__init__(tool_name)
        self.tool_name = tool_name

    def __str__(self):
        return f"Tool {self.tool_name} is not registered"


@dataclass
class DiscoveryIssue:
    """
    Something that went wrong during discovery and was not allowed to stop it.

    Attributes:
        kind (str): One of 'space-enumeration', 'descriptor-fetch', 'invalid-operation',
            'schema-cycle', 'duplicate-tool-name', 'poll-failure'.
        message (str): Human readable description.
        deployment_space (str, optional): Deployment space being processed.
        decision_service_id (str, optional): Decision service being processed.
        operation_id (str, optional): Operation being processed.
        error (Exception, optional): The exception that was swallowed, if any.
    """
    kind: str
    message: str
    deployment_space: Optional[str] = None
    decision_service_id: Optional[str] = None
    operation_id: Optional[str] = None
    error: Optional[BaseException] = None


IssueReporter = Callable[[DiscoveryIssue], None]

logger = logging.getLogger(__name__)


def log_discovery_issue(issue: DiscoveryIssue) -> None:
    """Default reporter: schema cycles are anomalies, everything else is an error."""
    level = logging.WARNING if issue.kind in ("schema-cycle", "invalid-operation") else logging.ERROR
    logger.log(level, "[%s] %s", issue.kind, issue.message)
