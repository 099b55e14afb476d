"""
api/routes/rules.py

GET    /api/{env}/rules/{kind}                 — all rules of one kind
POST   /api/{env}/rules/{kind}                 — create (id generated when blank)
GET    /api/{env}/rules/{kind}/{id}            — one rule
PUT    /api/{env}/rules/{kind}/{id}            — replace a rule's definition
PUT    /api/{env}/rules/{kind}/{id}/enabled    — enable / disable
DELETE /api/{env}/rules/{kind}/{id}            — delete

{kind} is one of: correlation, escalation, remediation.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ...engine.models import RuleKind
from ...errors import RuleNotFound
from ...services import MonitoringServices
from ..serializers import (
    CorrelationRuleRequest,
    EnabledRequest,
    EscalationRuleRequest,
    RemediationRuleRequest,
    rule_to_dict,
)
from .deps import get_services

router = APIRouter(prefix="/{environment}/rules", tags=["rules"])

_REQUEST_MODELS = {
    RuleKind.CORRELATION: CorrelationRuleRequest,
    RuleKind.ESCALATION:  EscalationRuleRequest,
    RuleKind.REMEDIATION: RemediationRuleRequest,
}


def _parse_request(kind: RuleKind, payload: dict[str, Any]):
    # Validation errors surface as pydantic.ValidationError (a ValueError) → 422
    return _REQUEST_MODELS[kind].model_validate(payload).to_rule()


@router.get("/{kind}")
async def list_rules(
    kind: RuleKind,
    services: MonitoringServices = Depends(get_services),
) -> list[dict]:
    return [rule_to_dict(r) for r in services.rules.list_rules(kind)]


@router.post("/{kind}", status_code=201)
async def create_rule(
    kind: RuleKind,
    payload: dict[str, Any] = Body(...),
    services: MonitoringServices = Depends(get_services),
) -> dict:
    rule = services.rules.create(_parse_request(kind, payload))
    return rule_to_dict(rule)


@router.get("/{kind}/{rule_id}")
async def get_rule(
    kind: RuleKind,
    rule_id: str,
    services: MonitoringServices = Depends(get_services),
) -> dict:
    rule = services.rules.get_by_id(kind, rule_id)
    if rule is None:
        raise RuleNotFound(rule_id)
    return rule_to_dict(rule)


@router.put("/{kind}/{rule_id}")
async def update_rule(
    kind: RuleKind,
    rule_id: str,
    payload: dict[str, Any] = Body(...),
    services: MonitoringServices = Depends(get_services),
) -> dict:
    """The path id wins over any id in the body."""
    rule = _parse_request(kind, {**payload, "id": rule_id})
    return rule_to_dict(services.rules.update(rule))


@router.put("/{kind}/{rule_id}/enabled")
async def set_rule_enabled(
    kind: RuleKind,
    rule_id: str,
    body: EnabledRequest,
    services: MonitoringServices = Depends(get_services),
) -> dict:
    services.rules.set_enabled(kind, rule_id, body.enabled)
    return {"id": rule_id, "enabled": body.enabled}


@router.delete("/{kind}/{rule_id}", status_code=204)
async def delete_rule(
    kind: RuleKind,
    rule_id: str,
    services: MonitoringServices = Depends(get_services),
) -> None:
    services.rules.delete(kind, rule_id)
