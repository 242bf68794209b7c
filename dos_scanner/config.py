"""Configuration for the DOS scanner."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from .exceptions import ConfigurationError
from .logging_config import logger

DEFAULT_SERVER_URL = "http://localhost:5000/api/"
DEFAULT_FRONTEND_URL = "http://localhost:3000"

# Lower bounds keep clients from hammering the backend
DEFAULT_POLL_INTERVAL = 5
DEFAULT_REST_TIMEOUT = 60
DEFAULT_FETCH_CONCLUDED = False

LOCALHOST_PATTERNS = ["127.0.0.1", "localhost", "0.0.0.0"]

# Option names as used in host configuration files
URL_PROPERTY = "url"
LEGACY_URL_PROPERTY = "serverUrl"
TOKEN_PROPERTY = "token"
LEGACY_TOKEN_PROPERTY = "serverToken"
POLL_INTERVAL_PROPERTY = "pollInterval"
REST_TIMEOUT_PROPERTY = "restTimeout"
FETCH_CONCLUDED_PROPERTY = "fetchConcluded"
FRONTEND_URL_PROPERTY = "frontendUrl"
POLL_TIMEOUT_PROPERTY = "pollTimeout"

ENV_PREFIX = "DOS"


def evaluate_boolean(value: str) -> bool:
    """
    Evaluate string values as boolean.

    Args:
        value: String value to evaluate

    Returns:
        Boolean result
    """
    return value.strip().lower() in ["true", "yes", "yeah", "1", "on"]


def _parse_int(name: str, value: Optional[str], default: Optional[int]) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, current value is '{value}'")


@dataclass(frozen=True)
class DosScannerConfig:
    """
    Settings shared by the DOS client and the scanner.

    Attributes:
        url: Base URL of the DOS API, always ending in a slash
        token: Secret bearer token for the DOS API
        poll_interval: Seconds to wait between two job state requests
        timeout: Timeout in seconds for DOS API requests
        fetch_concluded: Use license conclusions as detected licenses where they exist
        frontend_url: URL of the DOS package curation front-end
        poll_timeout: Optional seconds after which polling a job gives up
    """

    url: str
    token: str
    poll_interval: int = DEFAULT_POLL_INTERVAL
    timeout: int = DEFAULT_REST_TIMEOUT
    fetch_concluded: bool = DEFAULT_FETCH_CONCLUDED
    frontend_url: str = DEFAULT_FRONTEND_URL
    poll_timeout: Optional[int] = None

    def __post_init__(self) -> None:
        self.validate()
        # Relative API paths are resolved against the URL, so it must end in a slash
        object.__setattr__(self, "url", self.url.rstrip("/") + "/")

    def validate(self) -> None:
        """
        Validate configuration settings.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.token:
            raise ConfigurationError("DOS API token is not defined")

        if self.poll_interval < DEFAULT_POLL_INTERVAL:
            raise ConfigurationError(
                f"Polling interval must be >= {DEFAULT_POLL_INTERVAL}, current value is {self.poll_interval}"
            )

        if self.timeout < DEFAULT_REST_TIMEOUT:
            raise ConfigurationError(
                f"REST timeout must be >= {DEFAULT_REST_TIMEOUT}, current value is {self.timeout}"
            )

        if self.poll_timeout is not None and self.poll_timeout <= 0:
            raise ConfigurationError(f"Polling timeout must be positive, current value is {self.poll_timeout}")

        self._validate_url(self.url)

    @staticmethod
    def _validate_url(url: str) -> None:
        """
        Validate the DOS API URL.

        Raises:
            ConfigurationError: If URL format is invalid
        """
        try:
            parsed = urlparse(url)
        except Exception as e:
            raise ConfigurationError(f"Invalid DOS API URL format: {e}")

        if not parsed.scheme or parsed.scheme not in ("http", "https"):
            raise ConfigurationError("DOS API URL must start with http:// or https://")

        if not parsed.netloc:
            raise ConfigurationError("DOS API URL must include a valid hostname")

        if parsed.scheme == "http" and not any(localhost in parsed.netloc for localhost in LOCALHOST_PATTERNS):
            logger.warning("Using HTTP (not HTTPS) for DOS API communication - consider using HTTPS in production")

    @classmethod
    def create(cls, options: Mapping[str, str], secrets: Mapping[str, str]) -> "DosScannerConfig":
        """
        Create a configuration from host-style option and secret maps.

        Args:
            options: Plain options (url, pollInterval, restTimeout, fetchConcluded, frontendUrl, pollTimeout)
            secrets: Secret options (token)

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: If required values are missing or invalid
        """
        if not options and not secrets:
            raise ConfigurationError("No DOS scanner configuration found.")

        token = secrets.get(TOKEN_PROPERTY) or secrets.get(LEGACY_TOKEN_PROPERTY)
        if not token:
            raise ConfigurationError("DOS API token not set!")

        fetch_concluded = options.get(FETCH_CONCLUDED_PROPERTY)

        return cls(
            url=options.get(URL_PROPERTY) or options.get(LEGACY_URL_PROPERTY) or DEFAULT_SERVER_URL,
            token=token,
            poll_interval=_parse_int(
                POLL_INTERVAL_PROPERTY, options.get(POLL_INTERVAL_PROPERTY), DEFAULT_POLL_INTERVAL
            ),
            timeout=_parse_int(REST_TIMEOUT_PROPERTY, options.get(REST_TIMEOUT_PROPERTY), DEFAULT_REST_TIMEOUT),
            fetch_concluded=(
                evaluate_boolean(fetch_concluded) if fetch_concluded is not None else DEFAULT_FETCH_CONCLUDED
            ),
            frontend_url=options.get(FRONTEND_URL_PROPERTY) or DEFAULT_FRONTEND_URL,
            poll_timeout=_parse_int(POLL_TIMEOUT_PROPERTY, options.get(POLL_TIMEOUT_PROPERTY), None),
        )

    @classmethod
    def from_env(cls) -> "DosScannerConfig":
        """
        Load configuration from DOS_* environment variables.

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: If required variables are missing or invalid
        """

        def env(key: str) -> Optional[str]:
            return os.getenv(f"{ENV_PREFIX}_{key}")

        return cls(
            url=env("URL") or DEFAULT_SERVER_URL,
            token=env("TOKEN") or "",
            poll_interval=_parse_int("DOS_POLL_INTERVAL", env("POLL_INTERVAL"), DEFAULT_POLL_INTERVAL),
            timeout=_parse_int("DOS_TIMEOUT", env("TIMEOUT"), DEFAULT_REST_TIMEOUT),
            fetch_concluded=evaluate_boolean(env("FETCH_CONCLUDED") or "false"),
            frontend_url=env("FRONTEND_URL") or DEFAULT_FRONTEND_URL,
            poll_timeout=_parse_int("DOS_POLL_TIMEOUT", env("POLL_TIMEOUT"), None),
        )
