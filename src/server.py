import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import orjson
from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from abstractions.prober import Prober
from config.config import ServiceConfig
from config.logging_config import setup_logging
from contracts.probe_request import ProbeMethod, ProbeRequest
from contracts.probe_response import ProbeResponse
from core.admission_gate import AdmissionGate
from core.errors import ProbeServiceError
from core.metrics_manager import MetricsManager
from core.probe_dispatcher import ProbeDispatcher
from core.prober_factory import ProberFactory

setup_logging()
logger = logging.getLogger(__name__)

PROBE_HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Non-standard status handed to the server when the caller has already gone
CLIENT_CLOSED_REQUEST = 499


class EnvelopeResponse(Response):
    """
    JSON response encoded with orjson. Failures to encode or write the body are
    logged and dropped, since the caller can no longer be told about them.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        try:
            return orjson.dumps(content)
        except TypeError as e:
            logger.error(f"JSON encode error: {e}")
            return b""

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        except OSError as e:
            logger.error(f"Failed to write response: {e}")


def create_app(
    config: Optional[ServiceConfig] = None,
    probers: Optional[Dict[ProbeMethod, Prober]] = None,
    metrics_manager: Optional[MetricsManager] = None,
) -> FastAPI:
    """
    Build the probe service application.

    Args:
        config (Optional[ServiceConfig]): Service settings. Read from the
            environment when omitted.
        probers (Optional[Dict[ProbeMethod, Prober]]): Prober per method. The
            default probers share one ``httpx.AsyncClient`` closed on shutdown.
        metrics_manager (Optional[MetricsManager]): Metrics sink, registered on
            the global Prometheus registry when omitted.

    Returns:
        FastAPI: The application.
    """
    config = config or ServiceConfig.from_env()
    metrics_manager = metrics_manager or MetricsManager()

    client = None
    if probers is None:
        client = httpx.AsyncClient()
        probers = ProberFactory.create_probers(config, client)

    gate = AdmissionGate(config.concurrency_limit)
    dispatcher = ProbeDispatcher(config, gate, probers, metrics_manager)

    @asynccontextmanager
    async def lifespan(app):
        logger.info(f"Probe service ready with {gate.capacity} slots")
        yield
        if client is not None:
            await client.aclose()

    app = FastAPI(lifespan=lifespan, default_response_class=EnvelopeResponse)
    app.state.config = config
    app.state.gate = gate
    app.state.dispatcher = dispatcher
    app.state.metrics_manager = metrics_manager

    @app.exception_handler(ProbeServiceError)
    async def probe_service_error_handler(request: Request, exc: ProbeServiceError):
        probe_request = ProbeRequest.from_query(request.query_params)
        envelope = ProbeResponse(
            host=probe_request.host,
            type=probe_request.method.value,
            result=0,
            error=exc.message,
        )
        return EnvelopeResponse(envelope.to_body(), status_code=exc.status_code)

    @app.get("/metrics")
    def metrics():
        return Response(
            generate_latest(metrics_manager.registry), media_type=CONTENT_TYPE_LATEST
        )

    @app.api_route("/{path:path}", methods=PROBE_HTTP_METHODS)
    async def probe(request: Request, path: str):
        probe_request = ProbeRequest.from_query(request.query_params)
        envelope = await dispatcher.dispatch(probe_request, request.is_disconnected)
        if envelope is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return EnvelopeResponse(envelope.to_body())

    return app


app = create_app()
