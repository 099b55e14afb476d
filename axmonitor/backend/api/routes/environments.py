"""
api/routes/environments.py

GET  /api/environments          — configured environment names
POST /api/{env}/cycle           — run one evaluation cycle immediately
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...pipeline import CycleReport
from ...services import MonitoringServices
from .deps import get_services

router = APIRouter(tags=["environments"])


@router.get("/environments")
async def list_environments() -> list[str]:
    from ..main import get_registry
    return get_registry().environments


@router.post("/{environment}/cycle")
async def run_cycle(
    services: MonitoringServices = Depends(get_services),
) -> dict:
    """Skipped cycles (snapshot failure, maintenance) report the reason in "skipped"."""
    report = await services.pipeline.run_cycle()
    return _report_to_dict(report)


def _report_to_dict(report: CycleReport) -> dict:
    return {
        "environment":      report.environment,
        "started_at":       report.started_at,
        "skipped":          report.skipped,
        "fired_rules":      report.fired_rules,
        "alerts_created":   [a.id for a in report.alerts_created],
        "incidents":        [i.id for i in report.incidents],
        "escalations":      [e.id for e in report.escalations],
        "remediations":     [r.id for r in report.remediations],
        "duration_seconds": report.duration_seconds,
    }
