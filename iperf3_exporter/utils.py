"""Utility functions for parsing iperf3 output and option values."""
import math
import re
import json
from typing import Any, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)

# iperf3 -b grammar: #[KMG][/#]
BITRATE_PATTERN = re.compile(r'^\d+(\.\d+)?[KMGkmg]?(/\d+)?$')

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)')
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ParseError(ValueError):
    """Raised when iperf3 output cannot be interpreted."""


def validate_bitrate(value: str) -> bool:
    """Check a bitrate limit such as ``100M`` or ``1G/20``."""
    if not value:
        return False
    return BITRATE_PATTERN.match(value) is not None


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds), numeric strings, and duration strings
    made of one or more ``<number><unit>`` parts, e.g. ``5s``, ``500ms``,
    ``1h30m``.

    Raises:
        ValueError: if the value is not a valid, finite duration
    """
    seconds = _duration_seconds(value)
    if not math.isfinite(seconds):
        raise ValueError(f"duration must be finite: {value!r}")
    return seconds


def _duration_seconds(value: Union[str, int, float]) -> float:
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValueError("empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")

    return total


def format_duration(seconds: float) -> str:
    """Render seconds the way they are written in config files (``5s``, ``1h``)."""
    if seconds >= 3600 and seconds % 3600 == 0:
        return f"{int(seconds // 3600)}h"
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds * 1000:g}ms"


def _copy_fields(source: Dict[str, Any], prefix: str, fields: Dict[str, str], result: Dict[str, float]):
    for key, name in fields.items():
        value = source.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            result[f"{prefix}{name}"] = float(value)


_STREAM_FIELDS = {
    "seconds": "seconds",
    "bytes": "bytes",
    "bits_per_second": "bits_per_second",
}

_UDP_FIELDS = {
    "packets": "packets",
    "jitter_ms": "jitter_ms",
    "lost_packets": "lost_packets",
    "lost_percent": "lost_percent",
}


def parse_iperf3_output(output: str) -> Dict[str, float]:
    """
    Parse iperf3 JSON output (``iperf3 -J``).

    Returns a flat dict with sent_* / received_* fields, ``retransmits`` for
    TCP runs and packet/jitter/loss fields for UDP runs.

    Raises:
        ParseError: if the output is not iperf3 JSON or reports an error
    """
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("unexpected JSON document")

    if data.get("error"):
        raise ParseError(str(data["error"]))

    end_data = data.get("end")
    if not isinstance(end_data, dict) or not end_data:
        raise ParseError("missing 'end' section")

    result: Dict[str, float] = {}
    sum_sent = end_data.get("sum_sent")
    sum_received = end_data.get("sum_received")

    if isinstance(sum_sent, dict):
        _copy_fields(sum_sent, "sent_", _STREAM_FIELDS, result)
        _copy_fields(sum_sent, "sent_", _UDP_FIELDS, result)
        retransmits = sum_sent.get("retransmits")
        if isinstance(retransmits, (int, float)):
            result["retransmits"] = float(retransmits)

    if isinstance(sum_received, dict):
        _copy_fields(sum_received, "received_", _STREAM_FIELDS, result)
        _copy_fields(sum_received, "received_", _UDP_FIELDS, result)

    # Older iperf3 releases report UDP totals in a single "sum" block
    udp_sum = end_data.get("sum")
    if isinstance(udp_sum, dict):
        for prefix in ("sent_", "received_"):
            if not any(key.startswith(prefix) for key in result):
                _copy_fields(udp_sum, prefix, _STREAM_FIELDS, result)
                _copy_fields(udp_sum, prefix, _UDP_FIELDS, result)

    if not result:
        raise ParseError("no summary totals in 'end' section")

    return result


def extract_error(output: str) -> Optional[str]:
    """Return the ``error`` field of iperf3 JSON output, if any."""
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None
