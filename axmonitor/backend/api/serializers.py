"""
api/serializers.py

Pydantic request/response models for the REST adapter, plus the plain-dict
converters used for WebSocket broadcasts.

Rule requests accept the condition either as text ("cpu >= 90 AND
blocking_chains >= 2") or in the stored dict form; an unparseable condition
raises ConditionParseError, which the app maps to 422.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..config import settings
from ..engine.conditions import coerce_condition, condition_to_dict
from ..engine.models import (
    CorrelationRule,
    EscalationLevel,
    EscalationRule,
    RemediationAction,
    RemediationRule,
    Rule,
)
from ..escalation.models import EscalationExecution
from ..maintenance import MaintenanceWindow, Recurrence
from ..models import Alert, Incident, Severity
from ..remediation.models import RemediationExecution


# ---------------------------------------------------------------------------
# Dict converters (WebSocket payloads, rule responses)
# ---------------------------------------------------------------------------

def alert_to_dict(alert: Alert) -> dict[str, Any]:
    return {
        "id":              alert.id,
        "rule_id":         alert.rule_id,
        "type":            alert.type,
        "severity":        alert.severity.value,
        "message":         alert.message,
        "status":          alert.status.value,
        "timestamp":       alert.timestamp,
        "metrics":         alert.metrics,
        "incident_id":     alert.incident_id,
        "created_by":      alert.created_by,
        "acknowledged_by": alert.acknowledged_by,
        "acknowledged_at": alert.acknowledged_at,
        "resolved_by":     alert.resolved_by,
        "resolved_at":     alert.resolved_at,
    }


def incident_to_dict(incident: Incident) -> dict[str, Any]:
    return {
        "id":                 incident.id,
        "title":              incident.title,
        "severity":           incident.severity.value,
        "status":             incident.status.value,
        "alert_ids":          list(incident.alert_ids),
        "correlation_reason": incident.correlation_reason,
        "created_at":         incident.created_at,
        "updated_at":         incident.updated_at,
        "resolved_at":        incident.resolved_at,
        "resolved_by":        incident.resolved_by,
    }


def escalation_to_dict(record: EscalationExecution) -> dict[str, Any]:
    return {
        "id":              record.id,
        "alert_id":        record.alert_id,
        "rule_id":         record.rule_id,
        "level":           record.level,
        "after_seconds":   record.after_seconds,
        "elapsed_seconds": record.elapsed_seconds,
        "action":          record.action,
        "recipients":      record.recipients,
        "success":         record.success,
        "reference_id":    record.reference_id,
        "detail":          record.detail,
        "executed_at":     record.executed_at,
    }


def remediation_to_dict(record: RemediationExecution) -> dict[str, Any]:
    return {
        "id":               record.id,
        "rule_id":          record.rule_id,
        "trigger_data":     record.trigger_data,
        "start_time":       record.start_time,
        "completion_time":  record.completion_time,
        "outcome":          record.outcome.value,
        "detail":           record.detail,
        "actions_executed": record.actions_executed,
    }


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id":          rule.id,
        "kind":        rule.kind.value,
        "name":        rule.name,
        "description": rule.description,
        "severity":    rule.severity.value,
        "enabled":     rule.enabled,
        "condition":   str(rule.condition) if rule.condition is not None else None,
        "condition_tree": condition_to_dict(rule.condition) if rule.condition is not None else None,
        "created_at":  rule.created_at,
        "updated_at":  rule.updated_at,
    }
    if isinstance(rule, CorrelationRule):
        d.update(alert_type=rule.effective_alert_type, message=rule.message)
    elif isinstance(rule, EscalationRule):
        d.update(
            alert_type=rule.alert_type,
            levels=[
                {"after_seconds": lv.after_seconds, "action": lv.action, "recipients": lv.recipients}
                for lv in rule.levels
            ],
        )
    elif isinstance(rule, RemediationRule):
        d.update(
            actions=[
                {"name": a.name, "parameters": a.parameters, "continue_on_failure": a.continue_on_failure}
                for a in rule.actions
            ],
            cooldown_seconds=rule.cooldown_seconds,
            max_executions_per_window=rule.max_executions_per_window,
            rate_limit_window_seconds=rule.rate_limit_window_seconds,
            timeout_seconds=rule.timeout_seconds,
            priority=rule.priority,
            requires_confirmation=rule.requires_confirmation,
        )
    return d


def window_to_dict(window: MaintenanceWindow) -> dict[str, Any]:
    return {
        "id":              window.id,
        "name":            window.name,
        "description":     window.description,
        "start_time":      window.start_time,
        "end_time":        window.end_time,
        "recurrence":      window.recurrence.value if window.recurrence else None,
        "suppress_alerts": window.suppress_alerts,
        "enabled":         window.enabled,
        "created_at":      window.created_at,
    }


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class AlertResponse(BaseModel):
    id: str
    rule_id: str
    type: str
    severity: str
    message: str
    status: str
    timestamp: float
    metrics: dict[str, float]
    incident_id: str | None = None
    created_by: str
    acknowledged_by: str | None = None
    acknowledged_at: float | None = None
    resolved_by: str | None = None
    resolved_at: float | None = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(**alert_to_dict(alert))


class PaginatedAlertsResponse(BaseModel):
    items: list[AlertResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class IncidentResponse(BaseModel):
    id: str
    title: str
    severity: str
    status: str
    alert_ids: list[str]
    correlation_reason: str
    created_at: float
    updated_at: float | None = None
    resolved_at: float | None = None
    resolved_by: str | None = None
    alerts: list[AlertResponse] | None = None

    @classmethod
    def from_incident(cls, incident: Incident, alerts: list[Alert] | None = None) -> "IncidentResponse":
        return cls(
            **incident_to_dict(incident),
            alerts=[AlertResponse.from_alert(a) for a in alerts] if alerts is not None else None,
        )


class TransitionResponse(BaseModel):
    id: str
    success: bool
    status: str


class EscalationExecutionResponse(BaseModel):
    id: str
    alert_id: str
    rule_id: str
    level: int
    after_seconds: int
    elapsed_seconds: float
    action: str
    recipients: str
    success: bool
    reference_id: str | None = None
    detail: str
    executed_at: float


class RemediationExecutionResponse(BaseModel):
    id: str
    rule_id: str
    trigger_data: dict[str, Any]
    start_time: float
    completion_time: float | None = None
    outcome: str
    detail: str
    actions_executed: list[dict[str, Any]]


class StatsResponse(BaseModel):
    environment: str
    total_alerts: int
    alerts_last_hour: int
    alerts_by_status: dict[str, int]
    alerts_by_severity: dict[str, int]
    alerts_by_type: dict[str, int]
    open_incidents: int
    latest_alert_timestamp: float | None
    rules: dict[str, int]
    remediation_outcomes: dict[str, int]
    in_maintenance: bool
    pipeline_stats: dict


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ActorRequest(BaseModel):
    actor: str = Field(min_length=1)


class ExecuteRequest(BaseModel):
    trigger_data: dict[str, Any] = {}


class _RuleRequest(BaseModel):
    id: str = ""
    name: str = Field(min_length=1)
    description: str = ""
    severity: str = "Warning"
    enabled: bool = True

    def _common(self) -> dict[str, Any]:
        return dict(
            id=self.id,
            name=self.name,
            description=self.description,
            severity=Severity.parse(self.severity),
            enabled=self.enabled,
        )


class CorrelationRuleRequest(_RuleRequest):
    condition: str | dict
    alert_type: str = ""
    message: str = ""

    def to_rule(self) -> CorrelationRule:
        return CorrelationRule(
            **self._common(),
            condition=coerce_condition(self.condition),
            alert_type=self.alert_type,
            message=self.message,
        )


class EscalationLevelModel(BaseModel):
    after_seconds: int = Field(ge=0)
    action: str = Field(min_length=1)
    recipients: str = ""


class EscalationRuleRequest(_RuleRequest):
    condition: str | dict | None = None
    alert_type: str | None = None
    levels: list[EscalationLevelModel]

    def to_rule(self) -> EscalationRule:
        return EscalationRule(
            **self._common(),
            condition=coerce_condition(self.condition) if self.condition else None,
            alert_type=self.alert_type or None,
            levels=[EscalationLevel(**lv.model_dump()) for lv in self.levels],
        )


class RemediationActionModel(BaseModel):
    name: str = Field(min_length=1)
    parameters: dict[str, Any] = {}
    continue_on_failure: bool = False


class RemediationRuleRequest(_RuleRequest):
    condition: str | dict
    actions: list[RemediationActionModel]
    cooldown_seconds: int = 900
    max_executions_per_window: int = 3
    rate_limit_window_seconds: int | None = None
    timeout_seconds: int | None = None
    priority: int = 5
    requires_confirmation: bool = False

    def to_rule(self) -> RemediationRule:
        return RemediationRule(
            **self._common(),
            condition=coerce_condition(self.condition),
            actions=[RemediationAction(**a.model_dump()) for a in self.actions],
            cooldown_seconds=self.cooldown_seconds,
            max_executions_per_window=self.max_executions_per_window,
            rate_limit_window_seconds=(
                self.rate_limit_window_seconds or settings.REMEDIATION_DEFAULT_WINDOW_SECONDS
            ),
            timeout_seconds=self.timeout_seconds or settings.REMEDIATION_DEFAULT_TIMEOUT_SECONDS,
            priority=self.priority,
            requires_confirmation=self.requires_confirmation,
        )


class EnabledRequest(BaseModel):
    enabled: bool


class MaintenanceWindowRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    start_time: float
    end_time: float
    recurrence: Recurrence | None = None
    suppress_alerts: bool = True
    enabled: bool = True

    def to_window(self, window_id: int | None = None) -> MaintenanceWindow:
        return MaintenanceWindow(id=window_id, **self.model_dump())
