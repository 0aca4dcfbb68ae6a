"""
Unit tests for API endpoints.
Tests FastAPI routes with test client.
"""
import time

import pytest
from fastapi.testclient import TestClient

from iperf3_exporter.cache import ResultCache
from iperf3_exporter.config import Settings
from iperf3_exporter.main import create_app
from iperf3_exporter.models import MeasurementResult, TargetSpec

from conftest import SAMPLE_METRICS, FakeRunner


@pytest.fixture(name="runner")
def runner_fixture():
    return FakeRunner()


@pytest.fixture(name="cache")
def cache_fixture():
    return ResultCache()


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(targets=[TargetSpec(host="scheduled.example", interval=3600)])


@pytest.fixture(name="client")
def client_fixture(settings, runner, cache):
    """Create test client; the lifespan starts and stops the scheduler"""
    app = create_app(settings, runner=runner, cache=cache)
    with TestClient(app) as client:
        yield client


def test_root_endpoint(client: TestClient):
    """Landing page links metrics and probe paths"""
    response = client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert 'href="/metrics"' in response.text
    assert "/probe?target=example.com" in response.text
    assert "scheduled.example" in response.text


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["scheduler"]["running"] is True
    assert data["scheduler"]["targets"] == 1


def test_metrics_endpoint_serves_cached_results(client: TestClient, cache: ResultCache):
    target = TargetSpec(host="cached.example")
    cache.update(target.identity, MeasurementResult.ok(target, SAMPLE_METRICS, time.monotonic()))

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert 'iperf3_up{port="5201",protocol="tcp",reverse="false",target="cached.example"} 1.0' in response.text
    assert "iperf3_exporter_runs_total" in response.text
    assert "# HELP" in response.text


def test_scheduled_target_reaches_metrics(client: TestClient, runner: FakeRunner):
    """The lifespan scheduler probes configured targets right away"""
    for _ in range(50):
        if runner.count("scheduled.example:5201/tcp"):
            break
        time.sleep(0.02)

    response = client.get("/metrics")
    assert 'target="scheduled.example"' in response.text


def test_probe_missing_target(client: TestClient, runner: FakeRunner):
    response = client.get("/probe")
    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert data["field"] == "target"
    # only the scheduled target was ever run
    assert all(t.interval > 0 for t in runner.calls)


def test_probe_invalid_parameter(client: TestClient):
    response = client.get("/probe", params={"target": "example.com", "protocol": "sctp"})
    assert response.status_code == 400
    assert response.json()["field"] == "protocol"


def test_probe_infinite_period_rejected(client: TestClient, runner: FakeRunner):
    response = client.get("/probe", params={"target": "example.com", "period": "inf"})
    assert response.status_code == 400
    assert response.json()["field"] == "period"
    assert not [t for t in runner.calls if t.host == "example.com"]


def test_probe_success(client: TestClient, runner: FakeRunner, cache: ResultCache):
    response = client.get("/probe", params={"target": "example.com", "port": "5202", "protocol": "udp", "period": "2s"})
    assert response.status_code == 200
    assert 'iperf3_up{port="5202",protocol="udp",reverse="false",target="example.com"} 1.0' in response.text

    probed = [t for t in runner.calls if t.host == "example.com"]
    assert len(probed) == 1
    assert probed[0].period == 2.0
    assert probed[0].timeout == 30.0
    # on-demand results never enter the cache
    assert all(r.target.host != "example.com" for r in cache.gather())


def test_probe_failure_still_answers(settings, cache):
    app = create_app(settings, runner=FakeRunner(fail=True), cache=cache)
    with TestClient(app) as client:
        response = client.get("/probe", params={"target": "down.example"})

    assert response.status_code == 200
    assert 'iperf3_up{port="5201",protocol="tcp",reverse="false",target="down.example"} 0.0' in response.text


def test_probe_honours_scrape_timeout(client: TestClient, runner: FakeRunner):
    client.get(
        "/probe",
        params={"target": "example.com"},
        headers={"X-Prometheus-Scrape-Timeout-Seconds": "10"},
    )
    probed = [t for t in runner.calls if t.host == "example.com"]
    assert probed[0].timeout == 9.5


def test_custom_paths(runner, cache):
    settings = Settings(metrics_path="/m", probe_path="/p")
    app = create_app(settings, runner=runner, cache=cache)
    with TestClient(app) as client:
        assert client.get("/m").status_code == 200
        assert client.get("/p", params={"target": "example.com"}).status_code == 200
        assert client.get("/metrics").status_code == 404


def test_list_targets(client: TestClient, cache: ResultCache, settings: Settings):
    target = settings.targets[0]
    cache.update(target.identity, MeasurementResult.failed(target, "timeout after 30s", time.monotonic()))

    response = client.get("/api/targets")
    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    entry = data["targets"][0]
    assert entry["identity"] == "scheduled.example:5201/tcp"
    assert entry["interval_seconds"] == 3600.0
    # the scheduler may already have replaced the entry with its own run
    assert entry["last_success"] in (True, False)
