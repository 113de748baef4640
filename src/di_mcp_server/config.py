"""Configuration settings for the Decision Intelligence MCP Server.

This module contains the constants shared by the command line parsing and the server.
"""

SERVER_NAME = "di-mcp-server"
SERVER_VERSION = "0.1.0"
USER_AGENT_PREFIX = "IBM-DI-MCP-Server"

# Transport protocol
STDIO = "stdio"
HTTP = "http"
TRANSPORTS = (STDIO, HTTP)
DEFAULT_TRANSPORT = STDIO
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

# Deployment spaces scanned when none is configured
DEFAULT_DEPLOYMENT_SPACES = ("development",)

# Poll interval: the public contract (CLI/env) is in seconds, stored in milliseconds
MIN_POLL_INTERVAL_S = 1
DEFAULT_POLL_INTERVAL_S = 30
MS_IN_ONE_SECOND = 1000
MS_IN_ONE_MINUTE = 60_000

# Environment variable names
ENV_DEBUG = "DEBUG"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_URL = "URL"
ENV_TRANSPORT = "TRANSPORT"
ENV_HOST = "HOST"
ENV_PORT = "PORT"
ENV_AUTHENTICATION_MODE = "AUTHENTICATION_MODE"
ENV_DI_APIKEY = "DI_APIKEY"
ENV_ZEN_APIKEY = "ZEN_APIKEY"
ENV_ZEN_USERNAME = "ZEN_USERNAME"
ENV_BASIC_USERNAME = "BASIC_USERNAME"
ENV_BASIC_PASSWORD = "BASIC_PASSWORD"
ENV_DEPLOYMENT_SPACES = "DEPLOYMENT_SPACES"
ENV_DECISION_SERVICE_IDS = "DECISION_SERVICE_IDS"
ENV_DECISIONS_POLL_INTERVAL = "DECISIONS_POLL_INTERVAL"
ENV_VERIFY_SSL = "VERIFY_SSL"
ENV_SSL_CERT_PATH = "SSL_CERT_PATH"

# Instructions displayed to client during initialization
INSTRUCTIONS = """
Welcome to the IBM Decision Intelligence MCP Server!
This server exposes the operations of the decision services deployed on the decision runtime as tools.
The tool list is refreshed periodically: listen to tool list changes to stay up to date.
"""
