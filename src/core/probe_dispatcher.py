import asyncio
import logging
import secrets
import time
from typing import Dict, Optional, Union

from abstractions.prober import Prober
from config.config import ServiceConfig
from contracts.probe_outcome import ProbeOutcome
from contracts.probe_request import ProbeMethod, ProbeRequest
from contracts.probe_response import ProbeResponse
from core.admission_gate import AdmissionGate, CallerGone, CancellationCheck
from core.errors import AuthorizationError, InvalidRequestError, OverloadError, ProbeError
from core.metrics_manager import MetricsManager

logger = logging.getLogger(__name__)

# How often the disconnect watcher polls the caller while a probe runs
DISCONNECT_POLL_INTERVAL = 0.1


class ProbeDispatcher:
    """
    Runs one probe request end to end: authorization, validation, admission,
    execution and response shaping.
    """

    def __init__(
        self,
        config: ServiceConfig,
        gate: AdmissionGate,
        probers: Dict[ProbeMethod, Prober],
        metrics_manager: Optional[MetricsManager] = None,
        disconnect_poll_interval: float = DISCONNECT_POLL_INTERVAL,
    ):
        self.config = config
        self.gate = gate
        self.probers = probers
        self.metrics_manager = metrics_manager
        self.disconnect_poll_interval = disconnect_poll_interval

    def authorize(self, request: ProbeRequest):
        """
        Check the request credential against the configured API key. With no
        key configured every request is authorized.

        Raises:
            AuthorizationError: If a key is configured and the credential differs.
        """
        if not self.config.auth_enabled:
            return
        credential = request.credential or ""
        if not secrets.compare_digest(credential.encode(), self.config.api_key.encode()):
            logger.warning(f"Rejected probe for '{request.host}': bad credential")
            raise AuthorizationError("Auth failed")

    @staticmethod
    def validate(request: ProbeRequest):
        """
        Raises:
            InvalidRequestError: If the host is missing or could be mistaken for
                a command-line option.
        """
        if not request.host:
            raise InvalidRequestError("host required")
        if request.host.startswith("-") or any(c.isspace() for c in request.host):
            raise InvalidRequestError("invalid host")

    async def dispatch(
        self,
        request: ProbeRequest,
        is_disconnected: Optional[CancellationCheck] = None,
    ) -> Optional[ProbeResponse]:
        """
        Handle one probe request.

        Args:
            request (ProbeRequest): The parsed request.
            is_disconnected (Optional[CancellationCheck]): Async callable that
                reports whether the caller has gone away.

        Returns:
            Optional[ProbeResponse]: The response envelope, or None when the
            caller disconnected and no response should be sent.

        Raises:
            AuthorizationError: Credential mismatch.
            InvalidRequestError: Missing or invalid host.
            OverloadError: No admission slot free.
        """
        self.authorize(request)
        self.validate(request)

        try:
            async with self.gate.slot(is_disconnected):
                self._update_slots()
                outcome = await self._execute(request, is_disconnected)
        except OverloadError:
            logger.warning(
                f"Rejected probe for '{request.host}': all {self.gate.capacity} slots busy"
            )
            if self.metrics_manager:
                self.metrics_manager.record_rejection()
            raise
        except CallerGone:
            logger.info(f"Caller for '{request.host}' went away, dropping request")
            return None
        finally:
            self._update_slots()

        return ProbeResponse.from_outcome(request.host, request.method.value, outcome)

    async def _execute(
        self, request: ProbeRequest, is_disconnected: Optional[CancellationCheck]
    ) -> ProbeOutcome:
        prober = self.probers[request.method]
        start = time.perf_counter()
        try:
            value = await self._run_until_disconnect(prober.probe(request.host), is_disconnected)
        except ProbeError as e:
            outcome = ProbeOutcome.failure(e.message)
        else:
            outcome = ProbeOutcome.success(value)
        elapsed = time.perf_counter() - start

        if self.metrics_manager:
            self.metrics_manager.record_probe(request.method.value, outcome.ok, elapsed)
        if outcome.ok:
            logger.info(
                f"Probe {request.method.value} {request.host}: result={outcome.value} ({elapsed:.3f}s)"
            )
        else:
            logger.info(
                f"Probe {request.method.value} {request.host} failed: {outcome.error} ({elapsed:.3f}s)"
            )
        return outcome

    async def _run_until_disconnect(
        self, coro, is_disconnected: Optional[CancellationCheck]
    ) -> Union[int, float]:
        """
        Await ``coro`` unless the caller disconnects first, in which case the
        probe is cancelled, waited for, and ``CallerGone`` is raised.
        """
        if is_disconnected is None:
            return await coro

        probe_task = asyncio.ensure_future(coro)
        stop = asyncio.Event()
        watcher = asyncio.ensure_future(self._wait_for_disconnect(is_disconnected, stop))
        try:
            done, _ = await asyncio.wait(
                {probe_task, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            stop.set()
            probe_task.cancel()
            watcher.cancel()
            await asyncio.gather(probe_task, watcher, return_exceptions=True)
            raise

        stop.set()
        if probe_task in done:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            return probe_task.result()

        if watcher.exception() is not None:
            logger.error(
                f"Disconnect check failed, finishing probe without it: {watcher.exception()!r}"
            )
            return await probe_task

        probe_task.cancel()
        await asyncio.gather(probe_task, return_exceptions=True)
        raise CallerGone()

    async def _wait_for_disconnect(self, is_disconnected: CancellationCheck, stop: asyncio.Event):
        while not stop.is_set():
            if await is_disconnected():
                return
            await asyncio.sleep(self.disconnect_poll_interval)

    def _update_slots(self):
        if self.metrics_manager:
            self.metrics_manager.set_slots_in_use(self.gate.in_use)
