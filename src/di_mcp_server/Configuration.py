import argparse
import logging
import os
from typing import Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from di_mcp_server import config
from di_mcp_server.Credentials import AuthenticationMode, Credentials

logger = logging.getLogger(__name__)

_http_url_adapter = TypeAdapter(AnyHttpUrl)


class Configuration:
    """
    Validated settings of one server instance.

    Attributes:
        credentials (Credentials): Credentials used for every call to the decision runtime.
        url (str): Base URL of the decision runtime REST API, without trailing slash.
        version (str): Server version, sent in the User-Agent header.
        transport (str): 'stdio' or 'http'.
        deployment_spaces (list[str]): Deployment spaces scanned for decision services.
        decision_service_ids (list[str] | None): Explicit decision services; None means enumerate them.
        poll_interval_ms (int): Interval between two discovery passes, in milliseconds.
    """
    def __init__(self, credentials: Credentials, url: str, version: str,
                 transport: str = config.DEFAULT_TRANSPORT,
                 deployment_spaces: Optional[list[str]] = None,
                 decision_service_ids: Optional[list[str]] = None,
                 poll_interval_ms: Optional[int] = None,
                 host: str = config.DEFAULT_HOST,
                 port: int = config.DEFAULT_PORT,
                 log_level: str = "INFO"):
        self.credentials = credentials
        self.url = url.rstrip('/')
        self.version = version
        self.transport = transport
        self.deployment_spaces = list(deployment_spaces or config.DEFAULT_DEPLOYMENT_SPACES)
        self.decision_service_ids = decision_service_ids
        self.poll_interval_ms = poll_interval_ms if poll_interval_ms is not None else default_poll_interval_ms()
        self.host = host
        self.port = port
        self.log_level = log_level

    def is_stdio_transport(self) -> bool:
        return self.transport == config.STDIO

    def is_http_transport(self) -> bool:
        return self.transport == config.HTTP

    def formatted_poll_interval(self) -> str:
        ms = self.poll_interval_ms
        if ms < config.MS_IN_ONE_SECOND:
            return f"{ms}ms"

        minutes, remaining_ms = divmod(ms, config.MS_IN_ONE_MINUTE)
        if minutes > 0:
            if remaining_ms == 0:
                return f"{minutes}min"
            if remaining_ms % config.MS_IN_ONE_SECOND == 0:
                return f"{minutes}min {remaining_ms // config.MS_IN_ONE_SECOND}s"
            return f"{minutes}min {remaining_ms / config.MS_IN_ONE_SECOND:.3f}s"

        if ms % config.MS_IN_ONE_SECOND == 0:
            return f"{ms // config.MS_IN_ONE_SECOND}s"
        return f"{ms / config.MS_IN_ONE_SECOND:.3f}s"


def default_poll_interval_ms() -> int:
    return config.DEFAULT_POLL_INTERVAL_S * config.MS_IN_ONE_SECOND


def validate_url(url):
    logger.debug("URL=%s", url)
    if url is None:
        raise ValueError("The decision runtime REST API URL is not defined")
    try:
        _http_url_adapter.validate_python(url)
    except ValidationError:
        raise ValueError(f"Invalid URL format: '{url}'")
    return url.rstrip('/')


def validate_transport(transport):
    logger.debug("TRANSPORT=%s", transport)
    if transport is None:
        logger.debug("The transport protocol is not defined. Using '%s'", config.DEFAULT_TRANSPORT)
        return config.DEFAULT_TRANSPORT
    normalized = transport.strip().lower()
    if normalized not in config.TRANSPORTS:
        raise ValueError(f"Invalid transport protocol: '{transport}'. Must be one of: '"
                         + "', '".join(config.TRANSPORTS) + "'")
    return normalized


def validate_poll_interval(poll_interval) -> int:
    """
    Validates the poll interval provided via CLI or environment.

    The user-facing contract is in seconds, the returned value is in milliseconds.
    """
    logger.debug("DECISIONS_POLL_INTERVAL=%s", poll_interval)
    if poll_interval is None:
        logger.debug("The poll interval is not defined. Using '%s' seconds.", config.DEFAULT_POLL_INTERVAL_S)
        return default_poll_interval_ms()
    try:
        seconds = int(str(poll_interval).strip())
    except ValueError:
        raise ValueError(f"Invalid poll interval: '{poll_interval}'. Must be a valid number in seconds.")
    if seconds < config.MIN_POLL_INTERVAL_S:
        raise ValueError(f"Invalid poll interval: '{poll_interval}'. "
                         f"Must be at least {config.MIN_POLL_INTERVAL_S} second.")
    return seconds * config.MS_IN_ONE_SECOND


def validate_ssl_cert_path(ssl_cert_path):
    logger.debug("SSL_CERT_PATH=%s", ssl_cert_path)
    if ssl_cert_path is not None and not os.path.isfile(ssl_cert_path):
        raise ValueError(f"The SSL certificate file does not exist: '{ssl_cert_path}'")
    return ssl_cert_path


def parse_deployment_spaces(deployment_spaces) -> list[str]:
    logger.debug("DEPLOYMENT_SPACES=%s", deployment_spaces)
    if deployment_spaces is not None:
        parsed = [space.strip() for space in deployment_spaces.split(',')]
        parsed = [space for space in parsed if space]
        if parsed:
            return parsed
    return list(config.DEFAULT_DEPLOYMENT_SPACES)


def split_comma_ignoring_escaped(value: str) -> list[str]:
    """Splits on ',' except when escaped as '\\,' (the escape yields a literal comma)."""
    items = []
    current = ''
    i = 0
    while i < len(value):
        if value[i] == '\\' and i + 1 < len(value) and value[i + 1] == ',':
            current += ','
            i += 2
        elif value[i] == ',':
            items.append(current.strip())
            current = ''
            i += 1
        else:
            current += value[i]
            i += 1
    if current:
        items.append(current.strip())
    return [item for item in items if item]


def parse_decision_service_ids(decision_service_ids) -> Optional[list[str]]:
    logger.debug("DECISION_SERVICE_IDS=%s", decision_service_ids)
    if decision_service_ids is None:
        return None
    return split_comma_ignoring_escaped(decision_service_ids) or None


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(prog=config.SERVER_NAME, description="MCP Server for IBM Decision Intelligence")
    parser.add_argument("--debug",                                                 action="store_true", default=os.getenv(config.ENV_DEBUG, "false").lower() == "true", help="Enable debug output")
    parser.add_argument("--url",                                                   type=str, default=os.getenv(config.ENV_URL), help="Base URL for the decision runtime API, required")
    parser.add_argument("--authentication-mode",      "--authentication_mode",     type=str, default=os.getenv(config.ENV_AUTHENTICATION_MODE), help="Authentication mode to access the decision runtime: 'diapikey', 'zenapikey' or 'basic'. Default is 'diapikey'")
    parser.add_argument("--di-apikey",                "--di_apikey",               type=str, default=os.getenv(config.ENV_DI_APIKEY), help="API key for the Decision Intelligence API key authentication")
    parser.add_argument("--zen-apikey",               "--zen_apikey",              type=str, default=os.getenv(config.ENV_ZEN_APIKEY), help="API key for the Zen API key authentication")
    parser.add_argument("--zen-username",             "--zen_username",            type=str, default=os.getenv(config.ENV_ZEN_USERNAME), help="Username for the Zen API key authentication")
    parser.add_argument("--basic-username",           "--basic_username",          type=str, default=os.getenv(config.ENV_BASIC_USERNAME), help="Username for the basic authentication")
    parser.add_argument("--basic-password",           "--basic_password",          type=str, default=os.getenv(config.ENV_BASIC_PASSWORD), help="Password for the basic authentication")
    parser.add_argument("--transport",                                             type=str, default=os.getenv(config.ENV_TRANSPORT), help="Transport mode: 'stdio' or 'http'")
    parser.add_argument("--host",                                                  type=str, default=os.getenv(config.ENV_HOST, config.DEFAULT_HOST), help="Host the HTTP transport listens on")
    parser.add_argument("--port",                                                  type=int, default=int(os.getenv(config.ENV_PORT, str(config.DEFAULT_PORT))), help="Port the HTTP transport listens on (default: 3000)")
    parser.add_argument("--deployment-spaces",        "--deployment_spaces",       type=str, default=os.getenv(config.ENV_DEPLOYMENT_SPACES), help="Comma-separated list of deployment spaces to scan (default: 'development')")
    parser.add_argument("--decision-service-ids",     "--decision_service_ids",    type=str, default=os.getenv(config.ENV_DECISION_SERVICE_IDS), help="If defined, comma-separated list of decision service ids to be exposed as tools")
    parser.add_argument("--decisions-poll-interval",  "--decisions_poll_interval", type=str, default=os.getenv(config.ENV_DECISIONS_POLL_INTERVAL), help="Interval in seconds for polling tool changes (default: 30, minimum: 1)")
    parser.add_argument("--verifyssl",                                             type=str, default=os.getenv(config.ENV_VERIFY_SSL, "True"), choices=["True", "False"], help="Disable SSL check. Default is True (SSL verification enabled).")
    parser.add_argument("--ssl-cert-path",            "--ssl_cert_path",           type=str, default=os.getenv(config.ENV_SSL_CERT_PATH), help="Path to the SSL certificate file. If not provided, defaults to system certificates.")
    parser.add_argument("--log-level",                "--log_level",               type=str, default=os.getenv(config.ENV_LOG_LEVEL, "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Set the logging level (default: INFO)")
    return parser.parse_args(argv)


def create_credentials(args):
    mode = AuthenticationMode.parse(args.authentication_mode)
    tls = {"verify_ssl": args.verifyssl != "False", "ssl_cert_path": validate_ssl_cert_path(args.ssl_cert_path)}
    if mode == AuthenticationMode.DI_API_KEY:
        return Credentials.create_di_apikey_credentials(args.di_apikey, **tls)
    if mode == AuthenticationMode.ZEN_API_KEY:
        return Credentials.create_zen_apikey_credentials(args.zen_username, args.zen_apikey, **tls)
    return Credentials.create_basic_credentials(args.basic_username, args.basic_password, **tls)


def create_configuration(version: str, args=None) -> Configuration:
    """Validates the parsed arguments (parsing sys.argv when args is None) into a Configuration."""
    if args is None:
        args = parse_arguments()
    credentials = create_credentials(args)
    return Configuration(
        credentials=credentials,
        url=validate_url(args.url),
        version=version,
        transport=validate_transport(args.transport),
        deployment_spaces=parse_deployment_spaces(args.deployment_spaces),
        decision_service_ids=parse_decision_service_ids(args.decision_service_ids),
        poll_interval_ms=validate_poll_interval(args.decisions_poll_interval),
        host=args.host,
        port=args.port,
        log_level="DEBUG" if args.debug else args.log_level,
    )
