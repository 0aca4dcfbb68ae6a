"""
Data models for the iperf3 exporter.
Defines probe targets and the results of individual measurements.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional
import time

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_duration, validate_bitrate

DEFAULT_PORT = 5201
DEFAULT_PERIOD = 5.0
DEFAULT_INTERVAL = 3600.0
DEFAULT_TIMEOUT = 30.0


class Protocol(str, Enum):
    """Transport protocol used by iperf3"""
    TCP = "tcp"
    UDP = "udp"


class TargetSpec(BaseModel):
    """A single probe target. Immutable once built."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    host: str = Field(..., min_length=1, description="iperf3 server hostname or IP")
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    protocol: Protocol = Protocol.TCP
    reverse_mode: bool = Field(False, alias="reverseMode")
    bitrate: Optional[str] = Field(None, description="Bitrate limit, format #[KMG][/#]")
    period: float = Field(DEFAULT_PERIOD, gt=0, description="Test duration in seconds")
    interval: float = Field(DEFAULT_INTERVAL, ge=0, description="Seconds between scheduled runs, 0 disables")
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0, description="Hard ceiling on one run in seconds")

    @field_validator("host", mode="before")
    @classmethod
    def _strip_host(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("protocol", mode="before")
    @classmethod
    def _lower_protocol(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("bitrate", mode="before")
    @classmethod
    def _check_bitrate(cls, value):
        if value is None or value == "":
            return None
        value = str(value).strip()
        if not validate_bitrate(value):
            raise ValueError(f"invalid bitrate {value!r}, expected #[KMG][/#]")
        return value

    @field_validator("period", "interval", "timeout", mode="before")
    @classmethod
    def _parse_durations(cls, value):
        if value is None:
            return value
        return parse_duration(value)

    @property
    def identity(self) -> str:
        """Key identifying this target: host, port, protocol and direction."""
        key = f"{self.host}:{self.port}/{self.protocol.value}"
        if self.reverse_mode:
            key += "/reverse"
        return key

    @property
    def labels(self) -> Dict[str, str]:
        """Prometheus label values for this target."""
        return {
            "target": self.host,
            "port": str(self.port),
            "protocol": self.protocol.value,
            "reverse": "true" if self.reverse_mode else "false",
        }


class MeasurementResult(BaseModel):
    """Outcome of one iperf3 run. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    target: TargetSpec
    success: bool
    metrics: Dict[str, float] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0
    error: Optional[str] = None

    @property
    def identity(self) -> str:
        return self.target.identity

    @classmethod
    def ok(cls, target: TargetSpec, metrics: Dict[str, float], started: float) -> "MeasurementResult":
        """Build a successful result; ``started`` is a ``time.monotonic()`` value."""
        return cls(
            target=target,
            success=True,
            metrics=dict(metrics),
            duration_seconds=max(0.0, time.monotonic() - started),
        )

    @classmethod
    def failed(cls, target: TargetSpec, error: str, started: float) -> "MeasurementResult":
        """Build a failed result carrying the failure reason."""
        return cls(
            target=target,
            success=False,
            error=error,
            duration_seconds=max(0.0, time.monotonic() - started),
        )
