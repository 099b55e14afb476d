"""
api/routes/escalations.py

GET  /api/{env}/escalations            — escalation execution log (?alert_id=)
POST /api/{env}/escalations/evaluate   — run one escalation pass now
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...services import MonitoringServices
from ..serializers import EscalationExecutionResponse, escalation_to_dict
from ..ws_manager import ws_manager
from .deps import get_services

router = APIRouter(prefix="/{environment}/escalations", tags=["escalations"])


@router.get("", response_model=list[EscalationExecutionResponse])
async def list_escalations(
    alert_id: Annotated[str | None, Query()]             = None,
    limit:    Annotated[int,        Query(ge=1, le=1000)] = 100,
    services: MonitoringServices = Depends(get_services),
) -> list[EscalationExecutionResponse]:
    """One alert's log is oldest first; the global log is newest first."""
    records = services.executions.get_escalations(alert_id=alert_id, limit=limit)
    return [EscalationExecutionResponse(**escalation_to_dict(r)) for r in records]


@router.post("/evaluate", response_model=list[EscalationExecutionResponse])
async def evaluate_escalations(
    services: MonitoringServices = Depends(get_services),
) -> list[EscalationExecutionResponse]:
    records = await services.escalation.evaluate()
    for record in records:
        await ws_manager.broadcast("escalations", services.environment, escalation_to_dict(record))
    return [EscalationExecutionResponse(**escalation_to_dict(r)) for r in records]
