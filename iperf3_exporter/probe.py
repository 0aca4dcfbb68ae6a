"""On-demand probes outside the schedule."""
import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from .exceptions import ProbeRequestError
from .models import DEFAULT_PERIOD, DEFAULT_PORT, MeasurementResult, Protocol, TargetSpec
from .scheduler import Runner

logger = logging.getLogger(__name__)

PROBE_PARAMETERS = ("target", "port", "protocol", "reverse_mode", "bitrate", "period")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ProbeRequestError(f"'reverse_mode' must be true or false, got {value!r}", field="reverse_mode")


def build_probe_target(params: Mapping[str, Any], timeout: float) -> TargetSpec:
    """
    Build a transient target from probe request parameters.

    Unset parameters fall back to defaults; the probe is never scheduled
    (interval 0) and is bounded by ``timeout``.

    Raises:
        ProbeRequestError: if ``target`` is missing or a parameter is invalid
    """
    host = params.get("target")
    if host is None or not str(host).strip():
        raise ProbeRequestError("'target' parameter must be specified", field="target")

    fields = {
        "host": str(host).strip(),
        "port": DEFAULT_PORT,
        "protocol": Protocol.TCP,
        "reverse_mode": False,
        "bitrate": None,
        "period": DEFAULT_PERIOD,
        "interval": 0,
        "timeout": timeout,
    }

    if params.get("port") not in (None, ""):
        fields["port"] = params["port"]
    if params.get("protocol") not in (None, ""):
        fields["protocol"] = params["protocol"]
    if params.get("reverse_mode") is not None:
        fields["reverse_mode"] = _parse_bool(params["reverse_mode"])
    if params.get("bitrate") not in (None, ""):
        fields["bitrate"] = params["bitrate"]
    if params.get("period") not in (None, ""):
        fields["period"] = params["period"]

    try:
        return TargetSpec(**fields)
    except (ValidationError, ValueError) as e:
        field = None
        if isinstance(e, ValidationError) and e.errors():
            loc = e.errors()[0].get("loc") or ()
            field = str(loc[0]) if loc else None
            message = e.errors()[0].get("msg", str(e))
        else:
            message = str(e)
        if field == "host":
            field = "target"
        if field is None:
            raise ProbeRequestError(f"invalid probe parameters: {message}") from e
        raise ProbeRequestError(f"invalid '{field}' parameter: {message}", field=field) from e


async def run_probe(params: Mapping[str, Any], runner: Runner, timeout: float) -> MeasurementResult:
    """
    Run a single measurement for a probe request.

    The result goes straight back to the caller; the result cache is not
    touched and the run is not serialized against scheduled runs.

    Raises:
        ProbeRequestError: if the request is invalid (the runner is not invoked)
    """
    target = build_probe_target(params, timeout)
    logger.info(f"On-demand probe for {target.identity} (period {target.period:g}s, timeout {timeout:g}s)")
    return await runner.run(target)


def probe_timeout(default: float, scrape_timeout_header: Optional[str], offset: float = 0.5) -> float:
    """
    Choose the timeout for an on-demand probe.

    Prometheus sends ``X-Prometheus-Scrape-Timeout-Seconds``; when present and
    shorter than the configured timeout, the probe gives up ``offset`` seconds
    before the scrape would.
    """
    if not scrape_timeout_header:
        return default
    try:
        scrape_timeout = float(scrape_timeout_header)
    except ValueError:
        logger.warning(f"Ignoring invalid scrape timeout header {scrape_timeout_header!r}")
        return default
    if scrape_timeout <= 0:
        return default
    bounded = scrape_timeout - offset if scrape_timeout > offset else scrape_timeout
    return min(default, bounded)
