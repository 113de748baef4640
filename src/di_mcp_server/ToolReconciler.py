import logging
from dataclasses import dataclass
from typing import Callable

import mcp.types as types

from di_mcp_server.DecisionServiceDescription import DecisionServiceDescription
from di_mcp_server.DiscoveryErrors import DiscoveryIssue, IssueReporter, ToolNotRegisteredError, log_discovery_issue
from di_mcp_server.ToolRegistry import RegisteredTool, ToolCallback, ToolRegistry

CallbackFactory = Callable[[DecisionServiceDescription], ToolCallback]


def make_execution_callback(client, deployment_space: str, decision_service_id: str, operation_id: str) -> ToolCallback:
    """Returns the tool callback executing the operation on the last deployed version of the decision service."""
    logger = logging.getLogger(__name__)

    async def execute_decision(arguments: dict) -> list[types.TextContent]:
        logger.info("Invoking operation '%s' of decision service '%s' with arguments: %s",
                    operation_id, decision_service_id, arguments)
        output = await client.execute(deployment_space, decision_service_id, operation_id, arguments)
        return [types.TextContent(type="text", text=output)]

    return execute_decision


def execution_callback_factory(client) -> CallbackFactory:
    def factory(tool: DecisionServiceDescription) -> ToolCallback:
        return make_execution_callback(client, tool.deployment_space, tool.decision_service_id, tool.operation_id)
    return factory


@dataclass
class TrackedTool:
    definition: DecisionServiceDescription
    handle: RegisteredTool


class ToolReconciler:
    """
    Keeps a ToolRegistry in line with the latest discovered tool set.

    The reconciler is the only component that mutates the registry. It remembers, for every
    tool it registered, the description it was registered from and the registry handle.

    Usage:
        reconciler = ToolReconciler(registry, execution_callback_factory(client))
        changed = reconciler.reconcile(await build_snapshot(client, ["development"]))
    """

    def __init__(self, registry: ToolRegistry, callback_factory: CallbackFactory,
                 on_issue: IssueReporter = log_discovery_issue):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self.callback_factory = callback_factory
        self.on_issue = on_issue
        self._tracked: dict[str, TrackedTool] = {}

    @property
    def tool_names(self) -> list[str]:
        return list(self._tracked)

    def tracked(self, name: str) -> TrackedTool:
        return self._tracked[name]

    def _index_candidates(self, candidates: list[DecisionServiceDescription]) -> dict[str, DecisionServiceDescription]:
        indexed: dict[str, DecisionServiceDescription] = {}
        for candidate in candidates:
            if candidate.tool_name in indexed:
                # Only names coming from metadata overrides can collide, the first one wins
                self.on_issue(DiscoveryIssue(
                    kind="duplicate-tool-name",
                    message=f"Tool name '{candidate.tool_name}' is used by more than one operation, "
                            f"ignoring operation '{candidate.operation_id}' of '{candidate.decision_service_id}'",
                    deployment_space=candidate.deployment_space,
                    decision_service_id=candidate.decision_service_id,
                    operation_id=candidate.operation_id))
                continue
            indexed[candidate.tool_name] = candidate
        return indexed

    def _remove(self, name: str):
        tracked = self._tracked.get(name)
        if tracked is None:
            raise ToolNotRegisteredError(name)
        tracked.handle.remove()
        del self._tracked[name]
        self.logger.info("The existing tool '%s' was removed from the server.", name)

    def _add(self, candidate: DecisionServiceDescription):
        handle = self.registry.register_tool(
            candidate.tool_name,
            title=candidate.title,
            description=candidate.description,
            input_schema=candidate.input_schema,
            callback=self.callback_factory(candidate),
        )
        self._tracked[candidate.tool_name] = TrackedTool(candidate, handle)
        self.logger.info("A new tool '%s' was added to the server.", candidate.tool_name)

    def _update(self, candidate: DecisionServiceDescription):
        tracked = self._tracked.get(candidate.tool_name)
        if tracked is None:
            raise ToolNotRegisteredError(candidate.tool_name)
        tracked.handle.update(
            title=candidate.title,
            description=candidate.description,
            input_schema=candidate.input_schema,
            callback=self.callback_factory(candidate),
        )
        tracked.definition = candidate
        self.logger.info("The existing tool '%s' was updated.", candidate.tool_name)

    def reconcile(self, candidates: list[DecisionServiceDescription]) -> bool:
        """
        Applies the difference between the registered tools and candidates to the registry.

        Removals run first, then additions, then updates.
        A tool whose input schema fingerprint and backing operation did not change is left
        untouched, even when its title or description changed.

        The method never suspends: clients see the registry either before or after the pass.

        Returns:
            bool: True when at least one tool was added, removed or updated.
        """
        new_tools = self._index_candidates(candidates)
        changed = False

        for name in [name for name in self._tracked if name not in new_tools]:
            self._remove(name)
            changed = True

        for name, candidate in new_tools.items():
            tracked = self._tracked.get(name)
            if tracked is None:
                self._add(candidate)
                changed = True
            elif not (tracked.definition.same_schema(candidate) and tracked.definition.same_operation(candidate)):
                self._update(candidate)
                changed = True

        return changed
