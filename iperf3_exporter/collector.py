"""Prometheus collectors exposing measurement results."""
import logging
from typing import Iterable, List

from prometheus_client import CollectorRegistry, GCCollector, PlatformCollector, ProcessCollector
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.registry import Collector

from .cache import ResultCache
from .models import MeasurementResult

logger = logging.getLogger(__name__)

NAMESPACE = "iperf3"
LABELS = ["target", "port", "protocol", "reverse"]

# Result metric key -> help text; exposed as iperf3_<key>
RESULT_METRICS = {
    "sent_seconds": "Total seconds spent sending packets.",
    "sent_bytes": "Total sent bytes.",
    "sent_bits_per_second": "Average bitrate on the sending side.",
    "received_seconds": "Total seconds spent receiving packets.",
    "received_bytes": "Total received bytes.",
    "received_bits_per_second": "Average bitrate on the receiving side.",
    "retransmits": "Total retransmits for the last test run (TCP).",
    "sent_packets": "Total sent packets (UDP).",
    "sent_jitter_ms": "Jitter in milliseconds on the sending side (UDP).",
    "sent_lost_packets": "Lost packets on the sending side (UDP).",
    "sent_lost_percent": "Percentage of lost packets on the sending side (UDP).",
    "received_packets": "Total received packets (UDP).",
    "received_jitter_ms": "Jitter in milliseconds on the receiving side (UDP).",
    "received_lost_packets": "Lost packets on the receiving side (UDP).",
    "received_lost_percent": "Percentage of lost packets on the receiving side (UDP).",
}


def build_metric_families(results: Iterable[MeasurementResult]) -> List[GaugeMetricFamily]:
    """Turn results into one gauge family per metric, one sample per target."""
    up = GaugeMetricFamily(
        f"{NAMESPACE}_up", "Was the last iperf3 probe successful.", labels=LABELS
    )
    duration = GaugeMetricFamily(
        f"{NAMESPACE}_probe_duration_seconds", "Wall-clock duration of the last iperf3 run.", labels=LABELS
    )
    last_run = GaugeMetricFamily(
        f"{NAMESPACE}_last_run_timestamp_seconds", "Completion time of the last iperf3 run.", labels=LABELS
    )
    families = {
        key: GaugeMetricFamily(f"{NAMESPACE}_{key}", help_text, labels=LABELS)
        for key, help_text in RESULT_METRICS.items()
    }

    for result in results:
        label_values = [result.target.labels[name] for name in LABELS]
        up.add_metric(label_values, 1.0 if result.success else 0.0)
        duration.add_metric(label_values, result.duration_seconds)
        last_run.add_metric(label_values, result.timestamp.timestamp())
        if not result.success:
            continue
        for key, family in families.items():
            value = result.metrics.get(key)
            if value is not None:
                family.add_metric(label_values, value)

    return [up, duration, last_run] + [f for f in families.values() if f.samples]


class CacheCollector(Collector):
    """Exposes the latest cached result of every scheduled target."""

    def __init__(self, cache: ResultCache):
        self.cache = cache

    def collect(self):
        results = self.cache.gather()
        logger.debug(f"Collecting {len(results)} cached results")
        yield from build_metric_families(results)


class ProbeCollector(Collector):
    """Exposes the single result of an on-demand probe."""

    def __init__(self, result: MeasurementResult):
        self.result = result

    def collect(self):
        yield from build_metric_families([self.result])


class SchedulerCollector(Collector):
    """Exporter self-metrics taken from the scheduler statistics."""

    def __init__(self, scheduler):
        self.scheduler = scheduler

    def collect(self):
        stats = self.scheduler.get_stats()
        runs = CounterMetricFamily(
            "iperf3_exporter_runs", "Scheduled iperf3 runs executed, by outcome.", labels=["result"]
        )
        runs.add_metric(["success"], stats["runs_completed"] - stats["runs_failed"])
        runs.add_metric(["failure"], stats["runs_failed"])
        yield runs

        in_flight = GaugeMetricFamily(
            "iperf3_exporter_runs_in_flight", "Scheduled iperf3 runs currently executing."
        )
        in_flight.add_metric([], stats["in_flight"])
        yield in_flight


def create_registry(cache: ResultCache, scheduler=None) -> CollectorRegistry:
    """Registry served on the metrics path: cached results plus process metrics."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    registry.register(CacheCollector(cache))
    if scheduler is not None:
        registry.register(SchedulerCollector(scheduler))
    return registry


def create_probe_registry(result: MeasurementResult) -> CollectorRegistry:
    """Request-scoped registry holding one on-demand result."""
    registry = CollectorRegistry()
    registry.register(ProbeCollector(result))
    return registry
