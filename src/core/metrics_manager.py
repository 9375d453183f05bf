import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class MetricsManager:
    """
    Prometheus metrics for probe admission and execution.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the MetricsManager and register its collectors.

        Args:
            registry (Optional[CollectorRegistry]): Registry to register with.
                Defaults to the global registry served on ``/metrics``.
        """
        self.registry = registry if registry is not None else REGISTRY
        self.SLOTS_IN_USE = Gauge(
            "probe_slots_in_use",
            "Number of admission slots currently held",
            registry=self.registry,
        )
        self.REJECTED = Counter(
            "probe_admission_rejected",
            "Probe requests rejected because every slot was busy",
            registry=self.registry,
        )
        self.PROBES = Counter(
            "probes",
            "Completed probes by type and outcome",
            ["type", "outcome"],
            registry=self.registry,
        )
        self.PROBE_LATENCY = Histogram(
            "probe_duration_seconds",
            "Wall time spent executing a probe",
            ["type"],
            registry=self.registry,
        )
        logger.info("MetricsManager initialized.")

    def set_slots_in_use(self, value: int):
        self.SLOTS_IN_USE.set(value)

    def record_rejection(self):
        self.REJECTED.inc()

    def record_probe(self, probe_type: str, ok: bool, elapsed: float):
        self.PROBES.labels(type=probe_type, outcome="ok" if ok else "error").inc()
        self.PROBE_LATENCY.labels(type=probe_type).observe(elapsed)

    def get_slots_in_use(self) -> float:
        return self.registry.get_sample_value("probe_slots_in_use") or 0.0

    def get_rejections(self) -> float:
        return self.registry.get_sample_value("probe_admission_rejected_total") or 0.0

    def get_probe_count(self, probe_type: str, outcome: str) -> float:
        return (
            self.registry.get_sample_value(
                "probes_total", {"type": probe_type, "outcome": outcome}
            )
            or 0.0
        )
