"""Exception hierarchy for the iperf3 exporter."""
from typing import Any, Dict, Optional


class ExporterError(Exception):
    """Base class for exporter errors."""


class ConfigError(ExporterError):
    """Raised when configuration cannot be loaded or fails validation."""


class ProbeRequestError(ExporterError):
    """Raised when an on-demand probe request is invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for API responses."""
        result = {
            "ok": False,
            "error": self.message
        }
        if self.field:
            result["field"] = self.field
        return result
