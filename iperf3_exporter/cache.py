"""Latest measurement result per target."""
import logging
import threading
from typing import Dict, List, Optional

from .models import MeasurementResult

logger = logging.getLogger(__name__)


class ResultCache:
    """Thread-safe map from target identity to its most recent result.

    Writers serialize on a lock and publish a fresh dict; readers grab the
    current dict without locking. A gather racing with an update sees either
    the old or the new result, never a partial one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._storage: Dict[str, MeasurementResult] = {}

    def update(self, identity: str, result: MeasurementResult):
        """Replace the stored result for a target (last write wins)."""
        with self._lock:
            storage = dict(self._storage)
            storage[identity] = result
            self._storage = storage
        logger.debug(f"Cache updated: {identity} (success={result.success})")

    def gather(self) -> List[MeasurementResult]:
        """Snapshot of all stored results, one per target, in no particular order."""
        return list(self._storage.values())

    def get(self, identity: str) -> Optional[MeasurementResult]:
        return self._storage.get(identity)

    def clear(self):
        with self._lock:
            self._storage = {}

    def __len__(self) -> int:
        return len(self._storage)
