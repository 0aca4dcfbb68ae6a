"""Unit tests for the Prometheus collectors."""
import time

from prometheus_client import generate_latest

from iperf3_exporter.cache import ResultCache
from iperf3_exporter.collector import build_metric_families, create_probe_registry, create_registry
from iperf3_exporter.models import MeasurementResult, TargetSpec
from iperf3_exporter.scheduler import ProbeScheduler

from conftest import SAMPLE_METRICS, FakeRunner


def sample_value(registry, name, labels):
    return registry.get_sample_value(name, labels)


def test_one_family_per_metric_across_targets():
    results = [
        MeasurementResult.ok(TargetSpec(host=f"host{i}.example"), SAMPLE_METRICS, time.monotonic())
        for i in range(3)
    ]

    families = build_metric_families(results)
    names = [f.name for f in families]

    assert len(names) == len(set(names))
    up = next(f for f in families if f.name == "iperf3_up")
    assert len(up.samples) == 3


def test_cache_collector_exposes_cached_results(tcp_target):
    cache = ResultCache()
    registry = create_registry(cache)
    labels = {"target": "iperf.example.com", "port": "5201", "protocol": "tcp", "reverse": "false"}

    assert sample_value(registry, "iperf3_up", labels) is None

    cache.update(tcp_target.identity, MeasurementResult.ok(tcp_target, SAMPLE_METRICS, time.monotonic()))

    assert sample_value(registry, "iperf3_up", labels) == 1.0
    assert sample_value(registry, "iperf3_sent_bytes", labels) == SAMPLE_METRICS["sent_bytes"]
    assert sample_value(registry, "iperf3_retransmits", labels) == 3.0
    assert sample_value(registry, "iperf3_probe_duration_seconds", labels) is not None


def test_failed_result_reports_down(udp_target):
    cache = ResultCache()
    registry = create_registry(cache)
    cache.update(udp_target.identity, MeasurementResult.failed(udp_target, "timeout after 30s", time.monotonic()))
    labels = {"target": "iperf.example.com", "port": "5202", "protocol": "udp", "reverse": "false"}

    assert sample_value(registry, "iperf3_up", labels) == 0.0
    assert sample_value(registry, "iperf3_sent_bytes", labels) is None
    assert sample_value(registry, "iperf3_last_run_timestamp_seconds", labels) is not None


def test_probe_registry_holds_single_result(udp_target):
    result = MeasurementResult.ok(udp_target, {"received_jitter_ms": 0.5, "received_lost_percent": 1.5}, time.monotonic())
    output = generate_latest(create_probe_registry(result)).decode()

    assert 'iperf3_up{port="5202",protocol="udp",reverse="false",target="iperf.example.com"} 1.0' in output
    assert "iperf3_received_jitter_ms" in output
    assert "iperf3_retransmits" not in output
    assert "process_" not in output


def test_scheduler_self_metrics(tcp_target):
    cache = ResultCache()
    scheduler = ProbeScheduler([tcp_target], FakeRunner(), cache)
    scheduler.runs_completed = 4
    scheduler.runs_failed = 1
    registry = create_registry(cache, scheduler)

    assert sample_value(registry, "iperf3_exporter_runs_total", {"result": "success"}) == 3.0
    assert sample_value(registry, "iperf3_exporter_runs_total", {"result": "failure"}) == 1.0
    assert sample_value(registry, "iperf3_exporter_runs_in_flight", {}) == 0.0
