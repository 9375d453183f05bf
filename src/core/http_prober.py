import logging

import httpx

from abstractions.prober import Prober
from core.errors import ProbeError
from core.profiler import Profiler

logger = logging.getLogger(__name__)

HTTP_PROBE_TIMEOUT = 5.0


def strip_scheme(host: str) -> str:
    """Remove a leading ``http://`` and then a leading ``https://`` from ``host``."""
    host = host.removeprefix("http://")
    return host.removeprefix("https://")


class HttpProber(Prober):
    """
    Sends a HEAD request to ``scheme://host`` and reports the raw status code.
    Redirects are followed and the final status is reported. Certificates are
    verified with the client defaults.
    """

    def __init__(self, client: httpx.AsyncClient, scheme: str = "https", timeout: float = HTTP_PROBE_TIMEOUT):
        if scheme not in ("http", "https"):
            raise ValueError(f"Unsupported scheme: {scheme}")
        self.client = client
        self.scheme = scheme
        self.timeout = timeout

    def url_for(self, host: str) -> str:
        return f"{self.scheme}://{strip_scheme(host)}"

    @Profiler.profile
    async def probe(self, host: str) -> int:
        url = self.url_for(host)
        try:
            resp = await self.client.head(url, timeout=self.timeout, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info(f"HEAD {url} failed: {e!r}")
            raise ProbeError(str(e) or e.__class__.__name__) from e
        logger.debug(f"HEAD {url} returned {resp.status_code}")
        return resp.status_code
