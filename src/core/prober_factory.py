"""
Factory for the method -> prober table used by the dispatcher.
"""
import logging
from typing import Dict

import httpx

from abstractions.prober import Prober
from config.config import ServiceConfig
from contracts.probe_request import ProbeMethod
from core.http_prober import HttpProber
from core.ping_prober import PingProber

logger = logging.getLogger(__name__)


class ProberFactory:
    """
    Factory class for creating the probers for each probe method.
    """

    @staticmethod
    def create_probers(config: ServiceConfig, client: httpx.AsyncClient) -> Dict[ProbeMethod, Prober]:
        """
        Create one prober per probe method.

        Args:
            config (ServiceConfig): Service configuration.
            client (httpx.AsyncClient): Shared client for HTTP and HTTPS probes.

        Returns:
            Dict[ProbeMethod, Prober]: Prober for every ``ProbeMethod``.
        """
        logger.info(f"Creating probers with ping binary '{config.ping_binary}'")
        return {
            ProbeMethod.PING: PingProber(binary=config.ping_binary),
            ProbeMethod.HTTP: HttpProber(client, scheme="http"),
            ProbeMethod.HTTPS: HttpProber(client, scheme="https"),
        }
