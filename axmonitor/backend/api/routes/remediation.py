"""
api/routes/remediation.py

POST /api/{env}/remediation/{rule_id}/execute  — run a remediation rule now
GET  /api/{env}/remediation/history            — execution history (?rule_id=&limit=)
GET  /api/{env}/remediation/executions/{id}    — one execution record
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...errors import ExecutionNotFound
from ...services import MonitoringServices
from ..serializers import ExecuteRequest, RemediationExecutionResponse, remediation_to_dict
from ..ws_manager import ws_manager
from .deps import get_services

router = APIRouter(prefix="/{environment}/remediation", tags=["remediation"])


@router.post("/{rule_id}/execute", response_model=RemediationExecutionResponse)
async def execute_remediation(
    rule_id: str,
    body: ExecuteRequest,
    services: MonitoringServices = Depends(get_services),
) -> RemediationExecutionResponse:
    """
    Manual trigger. Cooldown and rate-limit skips are returned as the
    record's outcome (200); only an unknown or disabled rule is a 404.
    """
    record = await services.remediation.execute(rule_id, body.trigger_data)
    payload = remediation_to_dict(record)
    await ws_manager.broadcast("remediations", services.environment, payload)
    return RemediationExecutionResponse(**payload)


@router.get("/history", response_model=list[RemediationExecutionResponse])
async def remediation_history(
    rule_id: Annotated[str | None, Query()]             = None,
    limit:   Annotated[int | None, Query(ge=1, le=1000)] = None,
    services: MonitoringServices = Depends(get_services),
) -> list[RemediationExecutionResponse]:
    records = services.remediation.get_execution_history(rule_id=rule_id, limit=limit)
    return [RemediationExecutionResponse(**remediation_to_dict(r)) for r in records]


@router.get("/executions/{execution_id}", response_model=RemediationExecutionResponse)
async def get_execution(
    execution_id: str,
    services: MonitoringServices = Depends(get_services),
) -> RemediationExecutionResponse:
    record = services.executions.get_remediation(execution_id)
    if record is None:
        raise ExecutionNotFound(execution_id)
    return RemediationExecutionResponse(**remediation_to_dict(record))
