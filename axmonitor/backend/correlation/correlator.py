"""
correlation/correlator.py

AlertCorrelator — turns rule firings into Alerts and groups Alerts into Incidents.

Lock order (never reversed, so no deadlocks):
    correlation key → incident → alert
resolve_alert() takes the alert lock, releases it, and only then takes the
incident lock to close a fully resolved incident.

An alert is never dropped: if incident matching raises, the alert gets a
standalone incident instead.
"""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from ..config import settings
from ..engine.models import CorrelationRule
from ..errors import AlertNotFound, IncidentNotFound
from ..locks import KeyedLock
from ..metrics import METRICS
from ..models import Alert, AlertStatus, Incident, IncidentStatus
from .relationships import RelationshipSet

if TYPE_CHECKING:
    from ..storage.repository import AlertRepository

logger = logging.getLogger(__name__)


class AlertCorrelator:
    def __init__(
        self,
        repo: AlertRepository,
        relationships: RelationshipSet | None = None,
        suppression_seconds: float | None = None,
    ) -> None:
        self._repo = repo
        self._relationships = relationships if relationships is not None else RelationshipSet.from_config(
            settings.CORRELATION_RELATIONSHIPS, settings.CORRELATION_WINDOW_SECONDS
        )
        self._suppression_seconds = (
            suppression_seconds if suppression_seconds is not None
            else settings.REFIRE_SUPPRESSION_SECONDS
        )
        self._rule_locks = KeyedLock("correlation-rule")
        self._key_locks = KeyedLock("correlation-key")
        self._incident_locks = KeyedLock("incident")
        self._alert_locks = KeyedLock("alert")

    # ------------------------------------------------------------------
    # Firing → Alert
    # ------------------------------------------------------------------

    async def record_firing(
        self,
        rule: CorrelationRule,
        matched_values: dict[str, float],
        now: float | None = None,
    ) -> Alert:
        """
        Create an Active alert for a firing, unless the same rule already has an
        Active alert inside the re-fire suppression window; that alert is
        returned unchanged.
        """
        now = now if now is not None else time.time()
        async with self._rule_locks.hold(rule.id):
            existing = self._repo.find_active_for_rule(rule.id, now - self._suppression_seconds)
            if existing is not None:
                METRICS.alerts_suppressed.inc()
                logger.debug("Firing of %s folded into %s", rule.id, existing.id)
                return existing

            alert = Alert(
                rule_id=rule.id,
                type=rule.effective_alert_type,
                severity=rule.severity,
                message=_alert_message(rule, matched_values),
                timestamp=now,
                metrics=dict(matched_values),
            )
            self._repo.save_alert(alert)

        METRICS.alerts_created.inc()
        logger.info("Alert created: %r", alert)
        return alert

    # ------------------------------------------------------------------
    # Alert → Incident
    # ------------------------------------------------------------------

    async def correlate(self, alert: Alert, now: float | None = None) -> Incident:
        """Attach the alert to a matching open incident, or open a new one."""
        now = now if now is not None else time.time()

        if alert.incident_id is not None:
            current = self._repo.get_incident(alert.incident_id)
            if current is not None:
                return current

        async with self._key_locks.hold(self._relationships.lock_key(alert.type)):
            try:
                match = self._find_match(alert)
            except Exception as exc:
                logger.exception("Incident matching failed for %s", alert.id)
                return self._open_incident(alert, now, f"Standalone (matching failed: {exc})")

            if match is not None:
                incident_id, reason = match
                async with self._incident_locks.hold(incident_id):
                    incident = self._repo.get_incident(incident_id)
                    if incident is not None and incident.status is IncidentStatus.OPEN:
                        self._append(incident, alert, reason, now)
                        return incident

            return self._open_incident(alert, now, "Standalone alert")

    def _find_match(self, alert: Alert) -> tuple[str, str] | None:
        """Oldest open incident sharing a correlation key with the alert."""
        for incident in self._repo.list_open_incidents():
            for member in self._repo.alerts_for_incident(incident.id):
                if member.type == alert.type:
                    return incident.id, f"Same type ({alert.type})"
                rel = self._relationships.related_within(
                    member.type, alert.type, alert.timestamp - member.timestamp
                )
                if rel is not None:
                    return incident.id, (
                        f"Related types ({member.type} + {alert.type}) "
                        f"within {rel.window_seconds:g}s"
                    )
        return None

    def _append(self, incident: Incident, alert: Alert, reason: str, now: float) -> None:
        if alert.severity.rank > incident.severity.rank:
            incident.severity = alert.severity
        if reason not in incident.correlation_reason:
            incident.correlation_reason = (
                f"{incident.correlation_reason}; {reason}" if incident.correlation_reason else reason
            )
        incident.updated_at = now
        self._repo.attach_alert(incident, alert)
        logger.info("Alert %s appended to %s (%s)", alert.id, incident.id, reason)

    def _open_incident(self, alert: Alert, now: float, reason: str) -> Incident:
        incident = Incident(
            title=f"Incident: {alert.type}",
            severity=alert.severity,
            correlation_reason=reason,
            created_at=now,
        )
        self._repo.create_incident(incident, alert)
        METRICS.incidents_opened.inc()
        logger.info("Incident opened: %r for %s", incident, alert.id)
        return incident

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def acknowledge(self, alert_id: str, actor: str, now: float | None = None) -> bool:
        """
        Active → Acknowledged. Returns False for Resolved alerts and for alerts
        already acknowledged by someone else; the same actor repeating is a no-op True.
        """
        async with self._alert_locks.hold(alert_id):
            alert = self._repo.get_alert(alert_id)
            if alert is None:
                raise AlertNotFound(alert_id)
            if alert.status is AlertStatus.ACKNOWLEDGED:
                return alert.acknowledged_by == actor
            if alert.status is AlertStatus.RESOLVED:
                return False

            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_by = actor
            alert.acknowledged_at = now if now is not None else time.time()
            self._repo.update_alert(alert)

        logger.info("Alert %s acknowledged by %s", alert_id, actor)
        return True

    async def resolve(self, incident_id: str, actor: str, now: float | None = None) -> Incident:
        """Resolve an incident and every unresolved alert in it. Idempotent."""
        now = now if now is not None else time.time()
        async with self._incident_locks.hold(incident_id):
            incident = self._repo.get_incident(incident_id)
            if incident is None:
                raise IncidentNotFound(incident_id)
            if incident.status is IncidentStatus.RESOLVED:
                return incident

            async with AsyncExitStack() as stack:
                for alert_id in sorted(incident.alert_ids):
                    await stack.enter_async_context(self._alert_locks.hold(alert_id))

                cascaded = []
                for alert in self._repo.alerts_for_incident(incident_id):
                    if alert.status is AlertStatus.RESOLVED:
                        continue
                    alert.status = AlertStatus.RESOLVED
                    alert.resolved_by = actor
                    alert.resolved_at = now
                    cascaded.append(alert)

                incident.status = IncidentStatus.RESOLVED
                incident.resolved_by = actor
                incident.resolved_at = now
                incident.updated_at = now
                self._repo.resolve_incident(incident, cascaded)

        logger.info(
            "Incident %s resolved by %s (%d alerts cascaded)", incident_id, actor, len(cascaded)
        )
        return incident

    async def resolve_alert(self, alert_id: str, actor: str, now: float | None = None) -> bool:
        """
        Resolve a single alert. When it was the last unresolved alert of its
        incident, the incident is resolved too.
        """
        now = now if now is not None else time.time()
        async with self._alert_locks.hold(alert_id):
            alert = self._repo.get_alert(alert_id)
            if alert is None:
                raise AlertNotFound(alert_id)
            if alert.status is AlertStatus.RESOLVED:
                return True
            alert.status = AlertStatus.RESOLVED
            alert.resolved_by = actor
            alert.resolved_at = now
            self._repo.update_alert(alert)
            incident_id = alert.incident_id

        logger.info("Alert %s resolved by %s", alert_id, actor)
        if incident_id is not None:
            await self._close_if_settled(incident_id, actor, now)
        return True

    async def _close_if_settled(self, incident_id: str, actor: str, now: float) -> None:
        async with self._incident_locks.hold(incident_id):
            incident = self._repo.get_incident(incident_id)
            if incident is None or incident.status is IncidentStatus.RESOLVED:
                return
            members = self._repo.alerts_for_incident(incident_id)
            if any(a.status is not AlertStatus.RESOLVED for a in members):
                return
            incident.status = IncidentStatus.RESOLVED
            incident.resolved_by = actor
            incident.resolved_at = now
            incident.updated_at = now
            self._repo.update_incident(incident)
        logger.info("Incident %s auto-resolved: all alerts resolved", incident_id)

    async def delete_alert(self, alert_id: str, now: float | None = None) -> None:
        """Soft delete: the row stays for audit but disappears from every query."""
        async with self._alert_locks.hold(alert_id):
            if not self._repo.soft_delete_alert(alert_id, now):
                raise AlertNotFound(alert_id)
        logger.info("Alert %s deleted", alert_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _alert_message(rule: CorrelationRule, values: dict[str, float]) -> str:
    prefix = rule.message or rule.name or rule.id
    if not values:
        return prefix
    rendered = ", ".join(f"{name}={value:g}" for name, value in values.items())
    return f"{prefix} ({rendered})"

