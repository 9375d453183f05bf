import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY_LIMIT = 20
DEFAULT_PORT = 80
DEFAULT_KEEP_ALIVE_TIMEOUT = 120


def parse_int_setting(name: str, raw: Optional[str], default: int) -> int:
    """
    Parse a positive integer setting, logging a warning and using ``default``
    when it is malformed.
    """
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value > 0:
        return value
    logger.warning(f"Invalid {name} '{raw}', using default {default}")
    return default


class Config:
    """
    Raw environment variables and default settings for the probe service.
    """

    API_KEY = os.environ.get("API_KEY", "")
    CONCURRENCY_LIMIT = os.environ.get("CONCURRENCY_LIMIT", "")
    LISTEN_HOST = os.environ.get("LISTEN_HOST", "0.0.0.0")
    PORT = parse_int_setting("PORT", os.environ.get("PORT"), DEFAULT_PORT)
    # Idle keep-alive connections are closed after this many seconds
    KEEP_ALIVE_TIMEOUT = parse_int_setting(
        "KEEP_ALIVE_TIMEOUT", os.environ.get("KEEP_ALIVE_TIMEOUT"), DEFAULT_KEEP_ALIVE_TIMEOUT
    )
    PING_BINARY = os.environ.get("PING_BINARY", "ping")


def parse_concurrency_limit(raw: Optional[str]) -> int:
    """
    Parse the concurrency limit, falling back to the default on anything that is
    not a positive integer.
    """
    if not raw:
        return DEFAULT_CONCURRENCY_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        limit = 0
    if limit > 0:
        return limit
    logger.warning(
        f"Invalid CONCURRENCY_LIMIT '{raw}', using default {DEFAULT_CONCURRENCY_LIMIT}"
    )
    return DEFAULT_CONCURRENCY_LIMIT


class ServiceConfig(BaseModel):
    """
    Immutable settings read once at startup and passed to the gate, dispatcher
    and probers.
    """

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT
    listen_host: str = "0.0.0.0"
    port: int = 80
    keep_alive_timeout: int = 120
    ping_binary: str = "ping"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceConfig":
        """
        Build the service configuration from environment variables.

        Args:
            environ (Optional[Mapping[str, str]]): Mapping to read from. Defaults to
                the values captured on ``Config``.

        Returns:
            ServiceConfig: The parsed configuration.
        """
        if environ is None:
            api_key = Config.API_KEY
            raw_limit = Config.CONCURRENCY_LIMIT
            listen_host = Config.LISTEN_HOST
            port = Config.PORT
            keep_alive_timeout = Config.KEEP_ALIVE_TIMEOUT
            ping_binary = Config.PING_BINARY
        else:
            api_key = environ.get("API_KEY", "")
            raw_limit = environ.get("CONCURRENCY_LIMIT", "")
            listen_host = environ.get("LISTEN_HOST", "0.0.0.0")
            port = parse_int_setting("PORT", environ.get("PORT"), DEFAULT_PORT)
            keep_alive_timeout = parse_int_setting(
                "KEEP_ALIVE_TIMEOUT", environ.get("KEEP_ALIVE_TIMEOUT"), DEFAULT_KEEP_ALIVE_TIMEOUT
            )
            ping_binary = environ.get("PING_BINARY", "ping")

        if not api_key:
            logger.warning("API_KEY not set! All probe requests are authorized.")

        limit = parse_concurrency_limit(raw_limit)
        logger.info(f"Concurrency limit set to {limit}")

        return cls(
            api_key=api_key,
            concurrency_limit=limit,
            listen_host=listen_host,
            port=port,
            keep_alive_timeout=keep_alive_timeout,
            ping_binary=ping_binary,
        )
