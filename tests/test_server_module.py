import asyncio
import unittest
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

import server as server_mod
from abstractions.prober import Prober
from config.config import ServiceConfig
from contracts.probe_request import ProbeMethod
from core.errors import ProbeError
from core.metrics_manager import MetricsManager


class CountingProber(Prober):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def probe(self, host):
        self.calls += 1
        if self.error:
            raise ProbeError(self.error)
        return self.result


class TestServerModule(unittest.TestCase):
    def setUp(self):
        self.ping = CountingProber(result=12.5)
        self.http = CountingProber(result=301)
        self.https = CountingProber(result=204)
        self.metrics = MetricsManager(registry=CollectorRegistry())
        self.app = server_mod.create_app(
            ServiceConfig(api_key="secret", concurrency_limit=2),
            {
                ProbeMethod.PING: self.ping,
                ProbeMethod.HTTP: self.http,
                ProbeMethod.HTTPS: self.https,
            },
            self.metrics,
        )
        self.client = TestClient(self.app)

    def probe_calls(self):
        return self.ping.calls + self.http.calls + self.https.calls

    def test_module_app_is_built(self):
        self.assertIsNotNone(server_mod.app.state.dispatcher)
        self.assertGreater(server_mod.app.state.gate.capacity, 0)

    def test_ping_probe(self):
        response = self.client.get("/", params={"key": "secret", "host": "example.com"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "application/json")
        self.assertEqual(
            response.json(), {"host": "example.com", "type": "ping", "result": 12.5}
        )

    def test_https_probe(self):
        response = self.client.get(
            "/", params={"key": "secret", "host": "example.com", "method": "https"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["result"], 204)
        self.assertEqual(response.json()["type"], "https")

    def test_any_path_and_method(self):
        for verb in ("get", "post", "put", "delete", "patch"):
            with self.subTest(verb=verb):
                response = getattr(self.client, verb)(
                    "/some/where", params={"key": "secret", "host": "h", "method": "http"}
                )
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.json()["result"], 301)

    def test_bad_key_is_forbidden(self):
        for params in ({"host": "h"}, {"host": "h", "key": "wrong"}):
            with self.subTest(params=params):
                response = self.client.get("/", params=params)
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.json()["error"], "Auth failed")
                self.assertEqual(response.json()["result"], 0)
        self.assertEqual(self.probe_calls(), 0)

    def test_missing_host_is_bad_request(self):
        for method in ("ping", "http", "https", "other"):
            with self.subTest(method=method):
                response = self.client.get("/", params={"key": "secret", "method": method})
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["error"], "host required")
        self.assertEqual(self.probe_calls(), 0)

    def test_probe_failure_is_ok_status(self):
        self.ping.error = "ping failed: host unreachable or timeout"
        response = self.client.get("/", params={"key": "secret", "host": "192.0.2.1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "host": "192.0.2.1",
                "type": "ping",
                "result": 0,
                "error": "ping failed: host unreachable or timeout",
            },
        )

    def test_full_gate_is_service_unavailable(self):
        gate = self.app.state.gate
        for _ in range(gate.capacity):
            asyncio.run(gate.try_acquire())
        response = self.client.get("/", params={"key": "secret", "host": "h"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "Server is too busy, try again later")
        self.assertEqual(self.probe_calls(), 0)
        for _ in range(gate.capacity):
            gate.release()

    def test_metrics_endpoint(self):
        self.client.get("/", params={"key": "secret", "host": "h"})
        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn("text/plain", response.headers["content-type"])
        self.assertIn("probes_total", response.text)


class TestUnauthenticatedServer(unittest.TestCase):
    def test_no_key_configured_allows_requests(self):
        prober = CountingProber(result=3.0)
        app = server_mod.create_app(
            ServiceConfig(api_key=""),
            {method: prober for method in ProbeMethod},
            MetricsManager(registry=CollectorRegistry()),
        )
        response = TestClient(app).get("/", params={"host": "h"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(prober.calls, 1)


class TestEnvelopeResponse(unittest.IsolatedAsyncioTestCase):
    async def test_write_failure_is_logged_not_raised(self):
        response = server_mod.EnvelopeResponse({"host": "h", "type": "ping", "result": 1.0})
        send = AsyncMock(side_effect=OSError("connection reset"))
        with self.assertLogs("server", level="ERROR") as logs:
            await response({"type": "http"}, AsyncMock(), send)
        self.assertTrue(any("Failed to write response" in line for line in logs.output))

    def test_encode_failure_is_logged(self):
        with self.assertLogs("server", level="ERROR") as logs:
            response = server_mod.EnvelopeResponse({"result": object()})
        self.assertEqual(response.body, b"")
        self.assertTrue(any("JSON encode error" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
