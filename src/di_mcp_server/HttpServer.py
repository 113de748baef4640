import contextlib
import logging

import uvicorn
from mcp.server import Server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

MCP_PATH = "/mcp"

logger = logging.getLogger(__name__)


class StreamableHTTPEndpoint:
    """ASGI endpoint handing every request on the MCP path to the session manager."""

    def __init__(self, session_manager: StreamableHTTPSessionManager):
        self.session_manager = session_manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.session_manager.handle_request(scope, receive, send)


def create_http_app(server: Server) -> Starlette:
    """
    Builds the Starlette application serving the MCP server over streamable HTTP on /mcp.

    Sessions are stateful, so that tool list change notifications reach the clients
    listening on their session stream.
    """
    session_manager = StreamableHTTPSessionManager(app=server, json_response=False, stateless=False)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with session_manager.run():
            logger.info("Streamable HTTP session manager started")
            yield
        logger.info("Streamable HTTP session manager stopped")

    return Starlette(
        routes=[Route(MCP_PATH, endpoint=StreamableHTTPEndpoint(session_manager))],
        lifespan=lifespan,
    )


async def serve_http(server: Server, host: str, port: int, log_level: str = "info"):
    app = create_http_app(server)
    logger.info("MCP server listening on http://%s:%d%s", host, port, MCP_PATH)
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level)
    await uvicorn.Server(config).serve()
