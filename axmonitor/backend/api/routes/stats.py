"""
api/routes/stats.py

GET /api/{env}/stats — aggregate alert / incident / remediation statistics
                       plus live pipeline counters
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...maintenance import MaintenanceGate
from ...metrics import METRICS
from ...services import MonitoringServices
from ..serializers import StatsResponse
from .deps import get_services

router = APIRouter(prefix="/{environment}/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(
    services: MonitoringServices = Depends(get_services),
) -> StatsResponse:
    summary = services.alerts.get_stats_summary()
    return StatsResponse(
        environment=services.environment,
        **summary,
        rules=services.rules.count_by_kind(),
        remediation_outcomes=services.executions.get_outcome_counts(),
        in_maintenance=MaintenanceGate(services.maintenance).is_suppressed(),
        pipeline_stats=_pipeline_stats(services),
    )


def _pipeline_stats(services: MonitoringServices) -> dict:
    stats = METRICS.as_dict()
    report = services.pipeline.last_report
    if report is not None:
        stats["last_cycle"] = {
            "started_at":       report.started_at,
            "skipped":          report.skipped,
            "fired_rules":      report.fired_rules,
            "alerts_created":   len(report.alerts_created),
            "escalations":      len(report.escalations),
            "remediations":     len(report.remediations),
            "duration_seconds": round(report.duration_seconds, 3),
        }
    return stats
