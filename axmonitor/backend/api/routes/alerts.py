"""
api/routes/alerts.py

GET    /api/{env}/alerts                    — paginated alert list with optional filters
GET    /api/{env}/alerts/{id}               — single alert lookup
POST   /api/{env}/alerts/{id}/acknowledge   — Active → Acknowledged
POST   /api/{env}/alerts/{id}/resolve       — resolve one alert
DELETE /api/{env}/alerts/{id}               — soft delete (admin)
GET    /api/{env}/alerts/{id}/escalations   — escalation history of one alert
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...errors import AlertNotFound
from ...services import MonitoringServices
from ..serializers import (
    ActorRequest,
    AlertResponse,
    EscalationExecutionResponse,
    PaginatedAlertsResponse,
    TransitionResponse,
    alert_to_dict,
    escalation_to_dict,
)
from ..ws_manager import ws_manager
from .deps import get_services

router = APIRouter(prefix="/{environment}/alerts", tags=["alerts"])


@router.get("", response_model=PaginatedAlertsResponse)
async def list_alerts(
    limit:      Annotated[int,          Query(ge=1, le=500)] = 100,
    offset:     Annotated[int,          Query(ge=0)]         = 0,
    status:     Annotated[str | None,   Query()]             = None,
    severity:   Annotated[str | None,   Query()]             = None,
    alert_type: Annotated[str | None,   Query(alias="type")] = None,
    since:      Annotated[float | None, Query()]             = None,
    services:   MonitoringServices = Depends(get_services),
) -> PaginatedAlertsResponse:
    """Return a paginated list of alerts, newest first."""
    filters = dict(status=status, severity=severity, alert_type=alert_type, since=since)
    alerts = services.alerts.get_alerts(limit=limit, offset=offset, **filters)
    total = services.alerts.get_alert_count(**filters)
    return PaginatedAlertsResponse(
        items=[AlertResponse.from_alert(a) for a in alerts],
        total=total,
        limit=limit,
        offset=offset,
        has_more=(offset + limit) < total,
    )


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: str,
    services: MonitoringServices = Depends(get_services),
) -> AlertResponse:
    alert = services.alerts.get_alert(alert_id)
    if alert is None:
        raise AlertNotFound(alert_id)
    return AlertResponse.from_alert(alert)


@router.post("/{alert_id}/acknowledge", response_model=TransitionResponse)
async def acknowledge_alert(
    alert_id: str,
    body: ActorRequest,
    services: MonitoringServices = Depends(get_services),
) -> TransitionResponse:
    """success=False when the alert is Resolved or acknowledged by someone else."""
    ok = await services.correlator.acknowledge(alert_id, body.actor)
    return await _transition(services, alert_id, ok)


@router.post("/{alert_id}/resolve", response_model=TransitionResponse)
async def resolve_alert(
    alert_id: str,
    body: ActorRequest,
    services: MonitoringServices = Depends(get_services),
) -> TransitionResponse:
    ok = await services.correlator.resolve_alert(alert_id, body.actor)
    return await _transition(services, alert_id, ok)


@router.delete("/{alert_id}", status_code=204)
async def delete_alert(
    alert_id: str,
    services: MonitoringServices = Depends(get_services),
) -> None:
    await services.correlator.delete_alert(alert_id)


@router.get("/{alert_id}/escalations", response_model=list[EscalationExecutionResponse])
async def alert_escalations(
    alert_id: str,
    services: MonitoringServices = Depends(get_services),
) -> list[EscalationExecutionResponse]:
    if services.alerts.get_alert(alert_id) is None:
        raise AlertNotFound(alert_id)
    return [
        EscalationExecutionResponse(**escalation_to_dict(r))
        for r in services.escalation.history_for_alert(alert_id)
    ]


async def _transition(services: MonitoringServices, alert_id: str, ok: bool) -> TransitionResponse:
    alert = services.alerts.get_alert(alert_id)
    if alert is None:
        raise AlertNotFound(alert_id)
    if ok:
        await ws_manager.broadcast("alerts", services.environment, alert_to_dict(alert))
    return TransitionResponse(id=alert_id, success=ok, status=alert.status.value)
