import hashlib
import json
import logging
from typing import Any, Callable, Optional

import jsonref

from di_mcp_server.DecisionServiceDescription import DecisionServiceDescription
from di_mcp_server.DiscoveryErrors import DiscoveryIssue, IssueReporter, log_discovery_issue

logger = logging.getLogger(__name__)


class InvalidOperationError(ValueError):
    """An operation of an OpenAPI description cannot be turned into a tool."""


def expand_schema(schema: Any, on_cycle: Optional[Callable[[str], None]] = None) -> Any:
    """
    Recursively converts a jsonref structure to a plain JSON-serializable structure.

    Every reference is replaced by a copy of its target. A reference met again while its
    own target is being expanded is a cycle: it is replaced by an empty (permissive)
    schema and on_cycle is called with the reference.

    Raises:
        jsonref.JsonRefError: when a reference cannot be resolved.
    """
    def expand(node, active_refs):
        if isinstance(node, jsonref.JsonRef):
            ref = node.__reference__["$ref"]
            if ref in active_refs:
                if on_cycle is not None:
                    on_cycle(ref)
                return {}
            return expand(node.__subject__, active_refs + (ref,))
        if isinstance(node, dict):
            return {k: expand(v, active_refs) for k, v in node.items()}
        if isinstance(node, list):
            return [expand(v, active_refs) for v in node]
        return node

    return expand(schema, ())


def to_input_schema(expanded_schema: dict) -> dict:
    """Builds the tool input schema: one entry per top level property, each keeping its own nested schema."""
    properties = expanded_schema.get("properties") or {}
    if not isinstance(properties, dict):
        raise InvalidOperationError("'properties' must be an object")
    input_schema = {"type": "object", "properties": dict(properties)}
    required = expanded_schema.get("required")
    if isinstance(required, list) and required:
        input_schema["required"] = [name for name in required if name in properties]
    return input_schema


def schema_fingerprint(input_schema: dict) -> str:
    canonical = json.dumps(input_schema, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def get_tool_definition(operation: dict, on_cycle: Optional[Callable[[str], None]] = None) -> dict:
    """
    Extracts the tool definition of a POST operation.

    Args:
        operation (dict): The 'post' object of an OpenAPI path item, references already replaced by jsonref.

    Returns:
        dict: 'title', 'description' and 'input_schema' of the tool.

    Raises:
        InvalidOperationError: when the operation has no JSON request body schema.
        jsonref.JsonRefError: when the schema holds a reference that cannot be resolved.
    """
    request_body = operation.get("requestBody")
    if not isinstance(request_body, dict):
        raise InvalidOperationError("no request body")
    content = request_body.get("content")
    media_type = content.get("application/json") if isinstance(content, dict) else None
    schema = media_type.get("schema") if isinstance(media_type, dict) else None
    if not isinstance(schema, dict):
        raise InvalidOperationError("no 'application/json' request body schema")

    expanded = expand_schema(schema, on_cycle)
    logger.debug("Input schema after expand: %s", json.dumps(expanded))
    return {
        "title": operation.get("summary"),
        "description": operation.get("description"),
        "input_schema": to_input_schema(expanded),
    }


async def translate_descriptor(openapi: dict, deployment_space: str, decision_service_id: str, allocator,
                               on_issue: IssueReporter = log_discovery_issue) -> list[DecisionServiceDescription]:
    """
    Turns the OpenAPI description of a decision service into one tool description per operation.

    Operations that cannot be translated are reported and skipped, their siblings are still
    translated. Tool names are requested from allocator only for valid operations, in the
    order of the paths of the description.
    """
    def report(kind, message, operation_id=None, error=None):
        on_issue(DiscoveryIssue(kind=kind, message=message, deployment_space=deployment_space,
                                decision_service_id=decision_service_id, operation_id=operation_id, error=error))

    document = jsonref.replace_refs(openapi)
    info = document.get("info") or {}
    paths = document.get("paths") or {}
    tools = []

    for path, path_item in paths.items():
        try:
            operation = path_item.get("post") if isinstance(path_item, dict) else None
        except jsonref.JsonRefError as e:
            report("invalid-operation", f"Invalid openapi for path '{path}' of '{decision_service_id}': {e}", error=e)
            continue
        if not isinstance(operation, dict):
            report("invalid-operation", f"Invalid openapi for path '{path}' of '{decision_service_id}': no POST operation")
            continue

        operation_id = operation.get("operationId")
        if not operation_id:
            report("invalid-operation", f"No operationId for path '{path}' of '{decision_service_id}'")
            continue

        def on_cycle(ref, operation_id=operation_id):
            report("schema-cycle",
                   f"Circular reference '{ref}' in the input schema of '{operation_id}' replaced by an empty schema",
                   operation_id=operation_id)

        try:
            definition = get_tool_definition(operation, on_cycle)
        except (InvalidOperationError, jsonref.JsonRefError) as e:
            report("invalid-operation", f"No tool definition for operation '{operation_id}' of '{decision_service_id}': {e}",
                   operation_id=operation_id, error=e)
            continue

        tool_name = await allocator.allocate(deployment_space, info, operation_id, decision_service_id)
        tools.append(DecisionServiceDescription(
            tool_name=tool_name,
            title=definition["title"],
            description=definition["description"],
            input_schema=definition["input_schema"],
            input_schema_hash=schema_fingerprint(definition["input_schema"]),
            deployment_space=deployment_space,
            decision_service_id=decision_service_id,
            operation_id=operation_id,
        ))

    return tools
