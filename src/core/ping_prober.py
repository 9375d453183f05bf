"""
ICMP latency probe backed by the system ``ping`` utility.

The average round-trip time is scraped from the utility's summary line
(``rtt min/avg/max/mdev = 0.041/0.052/0.063/0.009 ms``). This couples the
probe to the human-readable output of iputils/busybox ping; a different
utility or locale can break the extraction, in which case the probe fails
with a parse error rather than returning a wrong number.
"""

import asyncio
import contextlib
import logging
import re

from abstractions.prober import Prober
from core.errors import ProbeError
from core.profiler import Profiler

logger = logging.getLogger(__name__)

# min/avg/max triad after the "=" of the summary line; mdev may follow
RTT_SUMMARY_RE = re.compile(r"=\s*(\d+\.\d+)/(\d+\.\d+)/(\d+\.\d+)")

UNREACHABLE_MESSAGE = "ping failed: host unreachable or timeout"


def parse_average_rtt(output: str) -> float:
    """
    Extract the average round-trip time in milliseconds from ping's summary.

    Raises:
        ProbeError: If the summary is missing or the average is not positive.
    """
    match = RTT_SUMMARY_RE.search(output)
    if not match:
        raise ProbeError("could not parse ping output")
    try:
        value = float(match.group(2))
    except ValueError as e:
        raise ProbeError(f"parse error: {e}") from e
    if value <= 0:
        raise ProbeError(f"invalid ping result: {value}")
    return value


class PingProber(Prober):
    """
    Runs ``ping -c <count> -W <timeout> -q <host>`` and reports the average RTT.
    """

    def __init__(self, binary: str = "ping", count: int = 3, per_echo_timeout: int = 2):
        self.binary = binary
        self.count = count
        self.per_echo_timeout = per_echo_timeout
        # Hard bound on the whole run: every echo timing out in turn
        self.deadline = count * per_echo_timeout

    def command(self, host: str) -> list[str]:
        return [
            self.binary,
            "-c",
            str(self.count),
            "-W",
            str(self.per_echo_timeout),
            "-q",
            host,
        ]

    @Profiler.profile
    async def probe(self, host: str) -> float:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(host),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            logger.error(f"Could not start {self.binary}: {e}")
            raise ProbeError(UNREACHABLE_MESSAGE) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.deadline)
        except asyncio.TimeoutError:
            logger.warning(f"Ping to {host} exceeded {self.deadline}s, killing it")
            await self._kill(proc)
            raise ProbeError(UNREACHABLE_MESSAGE)
        except asyncio.CancelledError:
            logger.info(f"Ping to {host} cancelled, killing it")
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            logger.debug(f"Ping to {host} exited with {proc.returncode}")
            raise ProbeError(UNREACHABLE_MESSAGE)

        return parse_average_rtt(stdout.decode(errors="replace"))

    @staticmethod
    async def _kill(proc):
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
