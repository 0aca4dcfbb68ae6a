"""Per-target probe scheduling."""
import asyncio
import logging
import time
from typing import Dict, Optional, Protocol, Sequence

from .cache import ResultCache
from .models import MeasurementResult, TargetSpec

logger = logging.getLogger(__name__)


class Runner(Protocol):
    """Interface of a measurement runner."""

    async def run(self, target: TargetSpec) -> MeasurementResult:
        ...


class ProbeScheduler:
    """Runs one perpetual asyncio task per scheduled target.

    Key features:
    - First run of every target fires immediately on start
    - Next run starts ``interval`` seconds after the previous run started,
      or right after it finished when the run outlasted the interval
    - Runs for one target are strictly sequential (one task per target)
    - Every result, failed or not, is written to the cache
    - A failing or slow target never affects the others
    """

    def __init__(self, targets: Sequence[TargetSpec], runner: Runner, cache: ResultCache):
        """
        Initialize scheduler.

        Args:
            targets: Configured targets; those with interval 0 are not scheduled
            runner: Measurement runner used for every run
            cache: Result cache receiving every result
        """
        self.targets = list(targets)
        self.runner = runner
        self.cache = cache

        self._tasks: Dict[str, asyncio.Task] = {}
        self._in_flight: Dict[str, bool] = {}
        self._stop_event: Optional[asyncio.Event] = None

        self.runs_completed = 0
        self.runs_failed = 0
        self.is_running = False

    def start(self):
        """Spawn a task for every scheduled target."""
        if self.is_running:
            return

        self._stop_event = asyncio.Event()
        self.is_running = True

        for target in self.targets:
            if target.interval <= 0:
                logger.info(f"Target {target.identity} has no interval, not scheduled")
                continue
            self._in_flight[target.identity] = False
            self._tasks[target.identity] = asyncio.create_task(
                self._run_target(target), name=f"probe:{target.identity}"
            )

        logger.info(f"Scheduler started: {len(self._tasks)} targets scheduled")

    async def stop(self, cancel_in_flight: bool = False):
        """
        Stop scheduling and wait for all target tasks to exit.

        Args:
            cancel_in_flight: Cancel running measurements instead of letting
                them finish; the runner kills the iperf3 process on cancel.
        """
        if not self.is_running:
            return

        self.is_running = False
        self._stop_event.set()

        tasks = list(self._tasks.values())
        if cancel_in_flight:
            for task in tasks:
                task.cancel()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for identity, outcome in zip(self._tasks, results):
            if isinstance(outcome, Exception):
                logger.error(f"Task for {identity} exited with error: {outcome}")

        self._tasks.clear()
        logger.info(f"Scheduler stopped ({self.runs_completed} runs completed)")

    async def _run_target(self, target: TargetSpec):
        identity = target.identity
        loop = asyncio.get_running_loop()
        logger.debug(f"Task started: {identity}, interval={target.interval}s")

        while not self._stop_event.is_set():
            fired_at = loop.time()
            result = await self._measure(target)
            self.cache.update(identity, result)

            next_fire = fired_at + target.interval
            delay = next_fire - loop.time()
            if delay <= 0:
                logger.debug(f"Run for {identity} overran its interval by {-delay:.3f}s")
                continue

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.debug(f"Task finished: {identity}")

    async def _measure(self, target: TargetSpec) -> MeasurementResult:
        identity = target.identity
        self._in_flight[identity] = True
        started = time.monotonic()
        try:
            result = await self.runner.run(target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Runner error for {identity}")
            result = MeasurementResult.failed(target, f"runner error: {e}", started)
        finally:
            self._in_flight[identity] = False

        self.runs_completed += 1
        if result.success:
            logger.info(f"Probe {identity} succeeded in {result.duration_seconds:.2f}s")
        else:
            self.runs_failed += 1
            logger.warning(f"Probe {identity} failed: {result.error}")
        return result

    def get_stats(self):
        """
        Get scheduler statistics.

        Returns:
            Dict with scheduler state info
        """
        return {
            "targets": len(self.targets),
            "scheduled": len(self._tasks),
            "in_flight": sum(1 for busy in self._in_flight.values() if busy),
            "runs_completed": self.runs_completed,
            "runs_failed": self.runs_failed,
            "running": self.is_running,
        }
