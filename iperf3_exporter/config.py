"""
Configuration loading for the iperf3 exporter.
Merges built-in defaults, a YAML config file, environment variables and
command-line flags (in increasing order of precedence).
"""
import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from . import __version__
from .exceptions import ConfigError
from .models import DEFAULT_TIMEOUT, TargetSpec
from .utils import parse_duration

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"
LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("logfmt", "json")

FILE_KEYS = {
    "listenAddress": "listen_address",
    "metricsPath": "metrics_path",
    "probePath": "probe_path",
    "iperf3Binary": "iperf3_binary",
}


class LoggingSettings(BaseModel):
    """Logging section of the config file"""
    model_config = ConfigDict(extra="forbid")

    level: str = "info"
    format: str = "logfmt"

    @field_validator("level", mode="before")
    @classmethod
    def _check_level(cls, value):
        value = str(value).strip().lower()
        if value == "warning":
            value = "warn"
        if value not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @field_validator("format", mode="before")
    @classmethod
    def _check_format(cls, value):
        value = str(value).strip().lower()
        if value not in LOG_FORMATS:
            raise ValueError(f"log format must be one of {', '.join(LOG_FORMATS)}")
        return value


class Settings(BaseModel):
    """Runtime configuration of the exporter"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    listen_address: str = Field("9579", alias="listenAddress")
    metrics_path: str = Field("/metrics", alias="metricsPath")
    probe_path: str = Field("/probe", alias="probePath")
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0, description="Timeout for on-demand probes and target default")
    iperf3_binary: str = Field("iperf3", alias="iperf3Binary")
    targets: List[TargetSpec] = Field(default_factory=list)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value):
        return parse_duration(value)

    @field_validator("listen_address", mode="before")
    @classmethod
    def _check_listen_address(cls, value):
        value = str(value).strip()
        if not value:
            raise ValueError("listen address cannot be empty")
        _, _, port = value.rpartition(":")
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"invalid listen address {value!r}")
        return value

    @field_validator("metrics_path", "probe_path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if not value:
            raise ValueError("path cannot be empty")
        if not value.startswith("/"):
            raise ValueError("path must start with '/'")
        return value

    @model_validator(mode="after")
    def _check_consistency(self):
        if self.metrics_path == self.probe_path:
            raise ValueError("metrics path and probe path must differ")
        seen = set()
        for target in self.targets:
            if target.identity in seen:
                raise ValueError(f"duplicate target {target.identity}")
            seen.add(target.identity)
        return self

    @property
    def host(self) -> str:
        host, sep, _ = self.listen_address.rpartition(":")
        return host if sep and host else "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.listen_address.rpartition(":")[2])


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags of the exporter."""
    parser = argparse.ArgumentParser(
        prog="iperf3_exporter",
        description="Prometheus exporter running scheduled and on-demand iperf3 probes.",
    )
    parser.add_argument(
        "--config", default=None,
        help=f"Path to the configuration file (env IPERF3_EXPORTER_CONFIG_FILE, default {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--listen-address", default=None,
        help="Port or host:port to listen on (env IPERF3_EXPORTER_PORT, default 9579)",
    )
    parser.add_argument("--metrics-path", default=None, help="Path under which to expose metrics (default /metrics)")
    parser.add_argument("--probe-path", default=None, help="Path under which to expose the probe endpoint (default /probe)")
    parser.add_argument(
        "--iperf3-timeout", default=None,
        help="Timeout for each iperf3 run, e.g. 30s (env IPERF3_EXPORTER_TIMEOUT)",
    )
    parser.add_argument(
        "--iperf3-binary", default=None,
        help="iperf3 executable (env IPERF3_EXPORTER_BINARY, default iperf3)",
    )
    parser.add_argument(
        "--log-level", default=None, choices=LOG_LEVELS,
        help="Only log messages with the given severity or above (env IPERF3_EXPORTER_LOG_LEVEL)",
    )
    parser.add_argument(
        "--log-format", default=None, choices=LOG_FORMATS,
        help="Output format of log messages (env IPERF3_EXPORTER_LOG_FORMAT)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _overrides_from_env(environ) -> Dict[str, Any]:
    overrides = {}
    mapping = {
        "IPERF3_EXPORTER_PORT": "listen_address",
        "IPERF3_EXPORTER_TIMEOUT": "timeout",
        "IPERF3_EXPORTER_BINARY": "iperf3_binary",
    }
    for env_name, key in mapping.items():
        value = environ.get(env_name)
        if value:
            overrides[key] = value
    logging_overrides = {}
    if environ.get("IPERF3_EXPORTER_LOG_LEVEL"):
        logging_overrides["level"] = environ["IPERF3_EXPORTER_LOG_LEVEL"]
    if environ.get("IPERF3_EXPORTER_LOG_FORMAT"):
        logging_overrides["format"] = environ["IPERF3_EXPORTER_LOG_FORMAT"]
    if logging_overrides:
        overrides["logging"] = logging_overrides
    return overrides


def _overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {}
    for key, attr in (
        ("listen_address", "listen_address"),
        ("metrics_path", "metrics_path"),
        ("probe_path", "probe_path"),
        ("timeout", "iperf3_timeout"),
        ("iperf3_binary", "iperf3_binary"),
    ):
        value = getattr(args, attr)
        if value is not None:
            overrides[key] = value
    logging_overrides = {}
    if args.log_level is not None:
        logging_overrides["level"] = args.log_level
    if args.log_format is not None:
        logging_overrides["format"] = args.log_format
    if logging_overrides:
        overrides["logging"] = logging_overrides
    return overrides


def _merge(data: Dict[str, Any], overrides: Dict[str, Any]):
    for key, value in overrides.items():
        if key == "logging":
            data["logging"] = {**(data.get("logging") or {}), **value}
        else:
            data[key] = value


def read_config_file(path: Path) -> Dict[str, Any]:
    """Read the YAML config file into a dict."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"error reading config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return {FILE_KEYS.get(key, key): value for key, value in data.items()}


def _apply_target_defaults(data: Dict[str, Any]):
    """Targets without their own timeout inherit the global one."""
    targets = data.get("targets") or []
    if not isinstance(targets, list):
        raise ConfigError("'targets' must be a list")
    timeout = data.get("timeout", DEFAULT_TIMEOUT)
    for target in targets:
        if isinstance(target, dict) and target.get("timeout") in (None, "", 0):
            target["timeout"] = timeout
    data["targets"] = targets


def build_settings(data: Dict[str, Any]) -> Settings:
    """Validate merged configuration data."""
    _apply_target_defaults(data)
    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e}") from e

    for target in settings.targets:
        if target.timeout < target.period:
            logger.warning(
                f"Target {target.identity}: timeout {target.timeout:.1f}s is shorter than "
                f"period {target.period:.1f}s, runs will be cut short"
            )
    return settings


def load_settings(argv: Optional[Sequence[str]] = None, environ=None) -> Settings:
    """
    Load configuration from flags, environment and the config file.

    Raises:
        ConfigError: if the configuration cannot be read or is invalid
    """
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)

    config_path = args.config or environ.get("IPERF3_EXPORTER_CONFIG_FILE")
    explicit = config_path is not None
    path = Path(config_path or DEFAULT_CONFIG_FILE)

    data: Dict[str, Any] = {}
    if path.exists():
        data = read_config_file(path)
        logger.info(f"Loaded configuration from {path}")
    elif explicit:
        raise ConfigError(f"config file {path} not found")
    else:
        logger.info(f"No config file at {path}, running without scheduled targets")

    _merge(data, _overrides_from_env(environ))
    _merge(data, _overrides_from_args(args))

    return build_settings(data)
