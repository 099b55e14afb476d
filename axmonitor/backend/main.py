from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvicorn

from .api.main import create_app, set_registry
from .api.ws_manager import ws_manager
from .config import settings
from .metrics import METRICS
from .pipeline import CycleReport
from .services import ServiceRegistry

logger = logging.getLogger("axmonitor.main")


# ---------------------------------------------------------------------------
# Periodic metrics log
# ---------------------------------------------------------------------------

async def metrics_logger(shutdown_event: asyncio.Event, interval: float = 60.0) -> None:
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            logger.info("METRICS pipeline=%s ws=%s", METRICS.as_dict(), ws_manager.all_counts())


def _print_report(report: CycleReport) -> None:
    if report.skipped:
        print(f"[{report.environment}] cycle skipped: {report.skipped}", flush=True)
        return
    print(
        f"[{report.environment}] fired={report.fired_rules} "
        f"alerts={len(report.alerts_created)} incidents={len(report.incidents)} "
        f"escalations={len(report.escalations)} remediations={len(report.remediations)} "
        f"({report.duration_seconds:.2f}s)",
        flush=True,
    )


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run_once(registry: ServiceRegistry) -> None:
    """Run a single evaluation cycle for every environment and exit."""
    reports = await asyncio.gather(*(s.pipeline.run_cycle() for s in registry))
    for report in reports:
        _print_report(report)


async def run(registry: ServiceRegistry) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(_signum, _frame) -> None:
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    set_registry(registry)

    # FastAPI + uvicorn
    app = create_app()
    uv_config = uvicorn.Config(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="warning",
        loop="none",
    )
    uv_server = uvicorn.Server(uv_config)

    tasks = [
        asyncio.create_task(services.pipeline.run(shutdown_event), name=f"pipeline:{services.environment}")
        for services in registry
    ]
    tasks.append(asyncio.create_task(metrics_logger(shutdown_event), name="metrics"))
    tasks.append(asyncio.create_task(uv_server.serve(), name="api"))

    logger.info(
        "AX Monitor — environments=%s  interval=%ss  API=http://%s:%d",
        registry.environments, settings.EVALUATION_INTERVAL_SECONDS,
        settings.API_HOST, settings.API_PORT,
    )

    await shutdown_event.wait()

    uv_server.should_exit = True
    # Pipelines finish their current cycle and exit on the shutdown event
    await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("Final metrics — %s", METRICS.as_dict())
    logger.info("AX Monitor stopped cleanly")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AX Monitor — alert correlation, escalation and remediation")
    parser.add_argument(
        "--once", action="store_true",
        help="run one evaluation cycle per environment and exit (no API)",
    )
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args()


def main() -> NoReturn:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not settings.ENVIRONMENTS:
        print("ERROR: no environments configured (set ENVIRONMENTS)", file=sys.stderr)
        sys.exit(1)

    registry = ServiceRegistry.from_settings()
    try:
        asyncio.run(run_once(registry) if args.once else run(registry))
    finally:
        registry.close_all()
    sys.exit(0)


if __name__ == "__main__":
    main()
