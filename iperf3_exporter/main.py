"""
FastAPI application for the iperf3 exporter.
Serves cached scheduled results on the metrics path and runs on-demand
probes on the probe path.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__
from .cache import ResultCache
from .collector import create_probe_registry, create_registry
from .config import Settings
from .exceptions import ProbeRequestError
from .landing import render_landing_page
from .probe import PROBE_PARAMETERS, probe_timeout, run_probe
from .runner import MeasurementRunner
from .scheduler import ProbeScheduler, Runner
from .schemas import HealthResponse, ProbeErrorResponse, SchedulerStats, TargetStatus, TargetsResponse

logger = logging.getLogger(__name__)

SCRAPE_TIMEOUT_HEADER = "X-Prometheus-Scrape-Timeout-Seconds"


def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[Runner] = None,
    cache: Optional[ResultCache] = None,
) -> FastAPI:
    """
    Build the exporter application.

    Args:
        settings: Exporter configuration (defaults apply when omitted)
        runner: Measurement runner, an iperf3 MeasurementRunner by default
        cache: Result cache shared between the scheduler and the metrics path
    """
    if settings is None:
        settings = Settings()
    if runner is None:
        runner = MeasurementRunner(settings.iperf3_binary)
    if cache is None:
        cache = ResultCache()
    scheduler = ProbeScheduler(settings.targets, runner, cache)
    registry = create_registry(cache, scheduler)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the scheduler with the server, stop it on shutdown"""
        scheduler.start()
        logger.info(
            f"Exporter ready: metrics on {settings.metrics_path}, probes on {settings.probe_path}"
        )
        yield
        logger.info("Shutting down...")
        await scheduler.stop(cancel_in_flight=True)

    app = FastAPI(
        title="iPerf3 Exporter",
        description="Prometheus exporter for scheduled and on-demand iperf3 probes",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache
    app.state.scheduler = scheduler
    app.state.runner = runner

    async def metrics():
        """Latest cached result of every scheduled target"""
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    async def probe(request: Request):
        """Run one iperf3 measurement now and expose its result"""
        params = {name: request.query_params.get(name) for name in PROBE_PARAMETERS}
        timeout = probe_timeout(settings.timeout, request.headers.get(SCRAPE_TIMEOUT_HEADER))

        try:
            result = await run_probe(params, runner, timeout)
        except ProbeRequestError as e:
            logger.info(f"Rejected probe request: {e.message}")
            return JSONResponse(status_code=400, content=e.to_dict())

        if not result.success:
            logger.warning(f"Probe {result.identity} failed: {result.error}")

        return Response(
            content=generate_latest(create_probe_registry(result)),
            media_type=CONTENT_TYPE_LATEST,
        )

    app.add_api_route(settings.metrics_path, metrics, methods=["GET"], response_class=Response)
    app.add_api_route(
        settings.probe_path, probe, methods=["GET"], response_class=Response,
        responses={400: {"model": ProbeErrorResponse}},
    )

    @app.get("/", response_class=HTMLResponse)
    async def root():
        """Landing page"""
        return HTMLResponse(content=render_landing_page(
            settings.metrics_path, settings.probe_path, __version__, settings.targets
        ))

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint"""
        return HealthResponse(
            status="ok",
            version=__version__,
            scheduler=SchedulerStats(**scheduler.get_stats()),
        )

    @app.get("/api/targets", response_model=TargetsResponse)
    async def list_targets():
        """Configured targets with their latest cached outcome"""
        targets = []
        for t in settings.targets:
            latest = cache.get(t.identity)
            targets.append(TargetStatus(
                identity=t.identity,
                host=t.host,
                port=t.port,
                protocol=t.protocol.value,
                reverse_mode=t.reverse_mode,
                interval_seconds=t.interval,
                last_success=latest.success if latest else None,
                last_run=latest.timestamp.isoformat() if latest else None,
                last_error=latest.error if latest else None,
            ))
        return TargetsResponse(count=len(targets), targets=targets)

    return app
