"""Shared fixtures: a fake measurement runner and sample targets."""
import asyncio
import time
from typing import Dict, List, Optional

import pytest

from iperf3_exporter.models import MeasurementResult, TargetSpec

SAMPLE_METRICS = {
    "sent_seconds": 5.0,
    "sent_bytes": 62500000.0,
    "sent_bits_per_second": 100000000.0,
    "received_seconds": 5.0,
    "received_bytes": 62000000.0,
    "received_bits_per_second": 99200000.0,
    "retransmits": 3.0,
}


class FakeRunner:
    """Runner double recording every call and the concurrency per target."""

    def __init__(self, delay: float = 0.0, fail: bool = False, error: Optional[Exception] = None):
        self.delay = delay
        self.fail = fail
        self.error = error
        self.calls: List[TargetSpec] = []
        self.active: Dict[str, int] = {}
        self.max_active: Dict[str, int] = {}
        self.start_times: Dict[str, List[float]] = {}

    async def run(self, target: TargetSpec) -> MeasurementResult:
        started = time.monotonic()
        identity = target.identity
        self.calls.append(target)
        self.start_times.setdefault(identity, []).append(started)
        self.active[identity] = self.active.get(identity, 0) + 1
        self.max_active[identity] = max(self.max_active.get(identity, 0), self.active[identity])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if self.fail:
                return MeasurementResult.failed(target, "iperf3 exited with code 1: unable to connect", started)
            return MeasurementResult.ok(target, SAMPLE_METRICS, started)
        finally:
            self.active[identity] -= 1

    def count(self, identity: str) -> int:
        return len(self.start_times.get(identity, []))


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def tcp_target():
    return TargetSpec(host="iperf.example.com", interval=3600)


@pytest.fixture
def udp_target():
    return TargetSpec(host="iperf.example.com", port=5202, protocol="udp", bitrate="100M", interval=3600)
