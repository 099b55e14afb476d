"""
api/routes/incidents.py

GET  /api/{env}/incidents               — incidents, newest first (?status=Open)
GET  /api/{env}/incidents/{id}          — one incident with its alerts
POST /api/{env}/incidents/{id}/resolve  — resolve incident + cascade to its alerts
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...errors import IncidentNotFound
from ...services import MonitoringServices
from ..serializers import ActorRequest, IncidentResponse, incident_to_dict
from ..ws_manager import ws_manager
from .deps import get_services

router = APIRouter(prefix="/{environment}/incidents", tags=["incidents"])


@router.get("", response_model=list[IncidentResponse])
async def list_incidents(
    limit:    Annotated[int,        Query(ge=1, le=500)] = 100,
    offset:   Annotated[int,        Query(ge=0)]         = 0,
    status:   Annotated[str | None, Query()]             = None,
    services: MonitoringServices = Depends(get_services),
) -> list[IncidentResponse]:
    incidents = services.alerts.get_incidents(limit=limit, offset=offset, status=status)
    return [IncidentResponse.from_incident(i) for i in incidents]


@router.get("/{incident_id}", response_model=IncidentResponse)
async def get_incident(
    incident_id: str,
    services: MonitoringServices = Depends(get_services),
) -> IncidentResponse:
    incident = services.alerts.get_incident(incident_id)
    if incident is None:
        raise IncidentNotFound(incident_id)
    return IncidentResponse.from_incident(incident, services.alerts.alerts_for_incident(incident_id))


@router.post("/{incident_id}/resolve", response_model=IncidentResponse)
async def resolve_incident(
    incident_id: str,
    body: ActorRequest,
    services: MonitoringServices = Depends(get_services),
) -> IncidentResponse:
    """Idempotent: resolving a resolved incident returns it unchanged."""
    incident = await services.correlator.resolve(incident_id, body.actor)
    await ws_manager.broadcast("incidents", services.environment, incident_to_dict(incident))
    return IncidentResponse.from_incident(incident, services.alerts.alerts_for_incident(incident_id))
