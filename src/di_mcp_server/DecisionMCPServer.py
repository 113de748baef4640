import logging
import weakref
from typing import Any, Callable, Optional

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.session import ServerSession

from di_mcp_server.config import INSTRUCTIONS, SERVER_NAME, SERVER_VERSION
from di_mcp_server.Configuration import Configuration, create_configuration, parse_arguments
from di_mcp_server.DecisionRuntimeClient import DecisionRuntimeClient
from di_mcp_server.DiscoveryErrors import IssueReporter, log_discovery_issue
from di_mcp_server.PollScheduler import PollScheduler
from di_mcp_server.ToolReconciler import ToolReconciler, execution_callback_factory
from di_mcp_server.ToolRegistry import ToolRegistry
from di_mcp_server.ToolSetBuilder import build_snapshot


class DecisionServer(Server):
    """
    Low level MCP server advertising tool list change notifications on every transport.

    on_session is called with the session of every incoming message, starting with the
    client's initialized notification, so that connected clients are known before they list tools.
    """

    def __init__(self, *args, on_session: Optional[Callable[[ServerSession], None]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_session = on_session

    async def _handle_message(self, message, session: ServerSession, *args, **kwargs):
        if self.on_session is not None:
            self.on_session(session)
        await super()._handle_message(message, session, *args, **kwargs)

    def create_initialization_options(
        self,
        notification_options: Optional[NotificationOptions] = None,
        experimental_capabilities: Optional[dict[str, dict[str, Any]]] = None,
    ) -> InitializationOptions:
        return InitializationOptions(
            server_name=self.name,
            server_version=self.version or SERVER_VERSION,
            instructions=self.instructions,
            capabilities=self.get_capabilities(
                notification_options=notification_options or NotificationOptions(tools_changed=True),
                experimental_capabilities=experimental_capabilities or {},
            ),
        )


class DecisionMCPServer:
    """
    Exposes the operations of the decision services deployed on a decision runtime as MCP tools.

    The tool set is built once at startup, then kept up to date by polling the decision runtime.
    Connected clients are notified whenever a poll changes the tool set.
    """

    def __init__(self, configuration: Configuration, client=None, on_issue: IssueReporter = log_discovery_issue):
        # Get logger for this class
        self.logger = logging.getLogger(__name__)

        self.configuration = configuration
        self.client = client if client is not None else DecisionRuntimeClient(configuration)
        self.on_issue = on_issue

        self.registry = ToolRegistry()
        self.reconciler = ToolReconciler(self.registry, execution_callback_factory(self.client), on_issue)
        self.scheduler = PollScheduler(self.run_discovery_pass, configuration.poll_interval_ms,
                                       on_changed=self.notify_tool_list_changed, on_issue=on_issue)

        self._sessions = weakref.WeakSet()
        self.server = DecisionServer(SERVER_NAME, version=configuration.version, instructions=INSTRUCTIONS,
                                     on_session=self._sessions.add)

        # Register handlers before any tool exists so that tools/list always answers
        self.server.list_tools()(self.list_tools)
        # Input is validated by the registry, against the schema registered at call time
        self.server.call_tool(validate_input=False)(self.call_tool)

    async def list_tools(self) -> list[types.Tool]:
        self.logger.debug("Listing %d tool(s)", len(self.registry))
        return self.registry.list_tools()

    async def call_tool(self, name: str, arguments: dict | None) -> list[types.TextContent]:
        self.logger.info("Invoking decision service for tool: %s", name)
        # this call may throw an exception, handled by Server.call_tool.handler
        return await self.registry.call_tool(name, arguments)

    async def run_discovery_pass(self) -> bool:
        """Builds a snapshot of the deployed decision services and applies it to the registry."""
        snapshot = await build_snapshot(
            self.client,
            self.configuration.deployment_spaces,
            self.configuration.decision_service_ids,
            on_issue=self.on_issue,
        )
        return self.reconciler.reconcile(snapshot)

    async def initialize(self):
        """
        Registers the initial tool set, then starts polling.

        Raises:
            ToolNameConflictError: when the initial tool set cannot get unique tool names.
        """
        await self.run_discovery_pass()
        self.logger.info("Registered %d tool(s), polling for changes every %s",
                         len(self.registry), self.configuration.formatted_poll_interval())
        self.scheduler.start()

    async def notify_tool_list_changed(self):
        sessions = list(self._sessions)
        self.logger.info("Tool list changed, notifying %d client(s)", len(sessions))
        for session in sessions:
            try:
                await session.send_tool_list_changed()
            except Exception as e:
                self.logger.warning("Failed to notify a client of the tool list change: %s", e)
                self._sessions.discard(session)

    def initialization_options(self) -> InitializationOptions:
        return self.server.create_initialization_options()

    async def run(self, read_stream, write_stream):
        await self.server.run(read_stream, write_stream, self.initialization_options())

    async def start(self):
        try:
            await self.initialize()
            if self.configuration.is_http_transport():
                from di_mcp_server.HttpServer import serve_http
                await serve_http(self.server, self.configuration.host, self.configuration.port)
            else:
                # Run the server using stdin/stdout streams
                async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
                    await self.run(read_stream, write_stream)
        finally:
            await self.stop()

    async def stop(self):
        # The poll timer must not fire once the client is closed
        await self.scheduler.stop()
        self.client.close()
        self.logger.info("Server stopped")


def configure_logging(log_level: str):
    try:
        logging_level = getattr(logging, log_level)
    except AttributeError:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.warning(f"Invalid log level '{log_level}' specified. Falling back to INFO.")
        logging_level = logging.INFO
    else:
        logging.basicConfig(
            level=logging_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    logging.info(f"Logging level set to: {logging.getLevelName(logging_level)}")


async def main():
    """Main entry point for the Decision Intelligence MCP Server."""
    args = parse_arguments()
    configure_logging("DEBUG" if args.debug else args.log_level)

    try:
        configuration = create_configuration(SERVER_VERSION, args)
    except ValueError as e:
        logging.error("Invalid configuration: %s", e)
        raise SystemExit(1)

    server = DecisionMCPServer(configuration)
    await server.start()
