import base64
import logging
import ssl

import certifi
import requests
import urllib3
from requests.adapters import HTTPAdapter


class CustomHTTPAdapter(HTTPAdapter):
    """
    A class that modifies the default behaviour with regards to certificates in order to
        - accept self-signed certificates
        - skip hostname verification
    """
    def __init__(self, certfile=None):
        self.certfile = certfile
        HTTPAdapter.__init__(self)

    def init_poolmanager(self, *args, **kwargs):
        context = ssl.create_default_context(cafile=self.certfile or certifi.where())
        context.verify_flags = ssl.VERIFY_ALLOW_PROXY_CERTS | ssl.VERIFY_X509_TRUSTED_FIRST | ssl.VERIFY_X509_PARTIAL_CHAIN
        kwargs['ssl_context'] = context
        kwargs['assert_hostname'] = False
        return super().init_poolmanager(*args, **kwargs)


class AuthenticationMode:
    DI_API_KEY = "diapikey"
    ZEN_API_KEY = "zenapikey"
    BASIC = "basic"

    ALL = (DI_API_KEY, ZEN_API_KEY, BASIC)

    @classmethod
    def default(cls):
        return cls.DI_API_KEY

    @classmethod
    def parse(cls, value):
        """
        Returns the authentication mode matching value (case-insensitive).

        Raises:
            ValueError: if value does not name a supported mode.
        """
        logger = logging.getLogger(__name__)
        logger.debug("AUTHENTICATION_MODE=%s", value)
        if value is None:
            logger.debug("The authentication mode is not defined. Using '%s'", cls.default())
            return cls.default()
        normalized = value.strip().lower()
        if normalized not in cls.ALL:
            raise ValueError(f"Invalid authentication mode: '{value}'. Must be one of: '"
                             + "', '".join(cls.ALL) + "'")
        return normalized


class Credentials:
    """
    A class to handle credentials for accessing the Decision Intelligence runtime.

    Attributes:
    -----------
    authentication_mode : str
        One of 'diapikey', 'zenapikey' or 'basic'.
    apikey : str, optional
        The Decision Intelligence API key or the Zen API key.
    username : str, optional
        The username for Zen API key or basic authentication.
    password : str, optional
        The password for basic authentication.
    verify_ssl : bool, optional
        Whether to verify SSL certificates. Defaults to True.
    ssl_cert_path : str, optional
        Path to the SSL certificate file. If not provided, defaults to the certifi bundle.

    Methods:
    --------
    get_auth():
        Returns the authorization header matching the authentication mode.
    get_session():
        Creates and returns a requests Session object configured with SSL settings.
    """
    def __init__(self, authentication_mode, apikey=None, username=None, password=None,
                 verify_ssl=True, ssl_cert_path=None):
        self.logger = logging.getLogger(__name__)
        self.authentication_mode = authentication_mode
        self.apikey = apikey
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.ssl_cert_path = ssl_cert_path
        self.logger.debug(str(self))

    @classmethod
    def create_di_apikey_credentials(cls, apikey, **kwargs):
        cls.check_non_empty_string(apikey, "DI API key")
        return cls(AuthenticationMode.DI_API_KEY, apikey=apikey, **kwargs)

    @classmethod
    def create_zen_apikey_credentials(cls, username, apikey, **kwargs):
        cls.check_non_empty_string(apikey, "Zen API key")
        cls.check_non_empty_string(username, "Zen username")
        return cls(AuthenticationMode.ZEN_API_KEY, apikey=apikey, username=username, **kwargs)

    @classmethod
    def create_basic_credentials(cls, username, password, **kwargs):
        cls.check_non_empty_string(username, "username for basic authentication")
        cls.check_non_empty_string(password, "password for basic authentication")
        return cls(AuthenticationMode.BASIC, username=username, password=password, **kwargs)

    @staticmethod
    def check_non_empty_string(value, label):
        if value is None:
            raise ValueError(f"The {label} must be defined")
        if not value.strip():
            raise ValueError(f"The {label} cannot be empty")

    def __str__(self):
        if self.authentication_mode == AuthenticationMode.DI_API_KEY:
            return "DI API Key(API key: ***)"
        if self.authentication_mode == AuthenticationMode.ZEN_API_KEY:
            return f"Zen API Key(username: {self.username}, API key: ***)"
        return f"Basic Authentication(username: {self.username}, password: ***)"

    __repr__ = __str__

    def get_auth(self):
        if self.authentication_mode == AuthenticationMode.DI_API_KEY:
            return {'apikey': self.apikey}
        if self.authentication_mode == AuthenticationMode.ZEN_API_KEY:
            concatenated_key = f"{self.username}:{self.apikey}"
            encoded_zen_key = base64.b64encode(concatenated_key.encode()).decode()
            return {'Authorization': f'ZenApiKey {encoded_zen_key}'}
        concatenated_key = f"{self.username}:{self.password}"
        encoded_user_cred = base64.b64encode(concatenated_key.encode()).decode()
        return {'Authorization': f'Basic {encoded_user_cred}'}

    def get_session(self, url):
        """
        Creates and returns a requests Session object configured with SSL settings
        """
        session = requests.Session()
        if url.startswith('https') and self.verify_ssl:
            session.verify = self.ssl_cert_path or certifi.where()
            session.mount('https://', CustomHTTPAdapter(certfile=self.ssl_cert_path))
        else:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            session.verify = False
        session.headers.update(self.get_auth())
        return session
