"""
storage/repository.py

AlertRepository — alerts and incidents.

An incident's alert list is not stored separately: it is the set of alerts
whose incident_id points at it, ordered by detection time. An alert can
therefore belong to at most one incident.

Soft-deleted alerts (deleted_at set) are hidden from every read method.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from ..models import Alert, AlertStatus, Incident, IncidentStatus, Severity
from .database import Database

logger = logging.getLogger(__name__)

_NOT_DELETED = "deleted_at IS NULL"


class AlertRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    # ==================================================================
    # Alert writes
    # ==================================================================

    def save_alert(self, alert: Alert) -> None:
        self._db.execute(
            """
            INSERT INTO alerts (
                id, rule_id, type, severity, message, status, timestamp,
                metrics, incident_id, created_by, acknowledged_by,
                acknowledged_at, resolved_by, resolved_at, deleted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                alert.id,
                alert.rule_id,
                alert.type,
                alert.severity.value,
                alert.message,
                alert.status.value,
                alert.timestamp,
                _dump_json(alert.metrics, "metrics"),
                alert.incident_id,
                alert.created_by,
                alert.acknowledged_by,
                alert.acknowledged_at,
                alert.resolved_by,
                alert.resolved_at,
                alert.deleted_at,
            ),
        )
        self._db.commit()

    def update_alert(self, alert: Alert) -> None:
        """Persist status, ownership and incident membership of an existing alert."""
        self._update_alert_row(alert)
        self._db.commit()

    def _update_alert_row(self, alert: Alert) -> None:
        self._db.execute(
            """
            UPDATE alerts SET
                status = ?, incident_id = ?, acknowledged_by = ?,
                acknowledged_at = ?, resolved_by = ?, resolved_at = ?,
                deleted_at = ?
            WHERE id = ?
            """,
            (
                alert.status.value,
                alert.incident_id,
                alert.acknowledged_by,
                alert.acknowledged_at,
                alert.resolved_by,
                alert.resolved_at,
                alert.deleted_at,
                alert.id,
            ),
        )

    def _set_incident(self, alert: Alert) -> None:
        self._db.execute(
            "UPDATE alerts SET incident_id = ? WHERE id = ?", (alert.incident_id, alert.id)
        )

    def soft_delete_alert(self, alert_id: str, now: float | None = None) -> bool:
        cur = self._db.execute(
            f"UPDATE alerts SET deleted_at = ? WHERE id = ? AND {_NOT_DELETED}",
            (now if now is not None else time.time(), alert_id),
        )
        self._db.commit()
        return cur.rowcount > 0

    # ==================================================================
    # Alert reads
    # ==================================================================

    def get_alert(self, alert_id: str) -> Alert | None:
        row = self._db.execute(
            f"SELECT * FROM alerts WHERE id = ? AND {_NOT_DELETED}", (alert_id,)
        ).fetchone()
        return _row_to_alert(row) if row else None

    def get_alerts(
        self,
        limit: int = 100,
        offset: int = 0,
        status: str | None = None,
        severity: str | None = None,
        alert_type: str | None = None,
        since: float | None = None,
    ) -> list[Alert]:
        where, params = self._build_where(
            status=status, severity=severity, alert_type=alert_type, since=since
        )
        sql = f"""
            SELECT * FROM alerts
            {where}
            ORDER BY timestamp DESC
            LIMIT ? OFFSET ?
        """
        params.extend([min(limit, 500), offset])
        rows = self._db.execute(sql, tuple(params)).fetchall()
        return [_row_to_alert(r) for r in rows]

    def get_alert_count(
        self,
        status: str | None = None,
        severity: str | None = None,
        alert_type: str | None = None,
        since: float | None = None,
    ) -> int:
        where, params = self._build_where(
            status=status, severity=severity, alert_type=alert_type, since=since
        )
        row = self._db.execute(
            f"SELECT COUNT(*) FROM alerts {where}", tuple(params)
        ).fetchone()
        return row[0] if row else 0

    def find_active_for_rule(self, rule_id: str, since: float) -> Alert | None:
        """Newest Active alert of a rule detected at or after `since`."""
        row = self._db.execute(
            f"""
            SELECT * FROM alerts
            WHERE rule_id = ? AND status = ? AND timestamp >= ? AND {_NOT_DELETED}
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            (rule_id, AlertStatus.ACTIVE.value, since),
        ).fetchone()
        return _row_to_alert(row) if row else None

    def list_active_alerts(self) -> list[Alert]:
        rows = self._db.execute(
            f"SELECT * FROM alerts WHERE status = ? AND {_NOT_DELETED} ORDER BY timestamp",
            (AlertStatus.ACTIVE.value,),
        ).fetchall()
        return [_row_to_alert(r) for r in rows]

    def alerts_for_incident(self, incident_id: str) -> list[Alert]:
        rows = self._db.execute(
            f"SELECT * FROM alerts WHERE incident_id = ? AND {_NOT_DELETED} ORDER BY timestamp, rowid",
            (incident_id,),
        ).fetchall()
        return [_row_to_alert(r) for r in rows]

    # ==================================================================
    # Incident writes
    # ==================================================================

    def create_incident(self, incident: Incident, alert: Alert) -> None:
        """Insert a new incident and attach its first alert in one transaction."""
        with self._db.conn:
            self._db.execute(
                """
                INSERT INTO incidents (
                    id, title, severity, status, correlation_reason,
                    created_at, updated_at, resolved_at, resolved_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    incident.id,
                    incident.title,
                    incident.severity.value,
                    incident.status.value,
                    incident.correlation_reason,
                    incident.created_at,
                    incident.updated_at,
                    incident.resolved_at,
                    incident.resolved_by,
                ),
            )
            alert.incident_id = incident.id
            self._set_incident(alert)
        incident.alert_ids = [alert.id]

    def attach_alert(self, incident: Incident, alert: Alert) -> None:
        """Append an alert to an incident and persist the (possibly raised) severity."""
        with self._db.conn:
            alert.incident_id = incident.id
            self._set_incident(alert)
            self._update_incident_row(incident)
        if alert.id not in incident.alert_ids:
            incident.alert_ids.append(alert.id)

    def resolve_incident(self, incident: Incident, alerts: list[Alert]) -> None:
        """Persist a resolved incident together with its cascaded alerts."""
        with self._db.conn:
            self._update_incident_row(incident)
            for alert in alerts:
                self._update_alert_row(alert)

    def update_incident(self, incident: Incident) -> None:
        self._update_incident_row(incident)
        self._db.commit()

    def _update_incident_row(self, incident: Incident) -> None:
        self._db.execute(
            """
            UPDATE incidents SET
                title = ?, severity = ?, status = ?, correlation_reason = ?,
                updated_at = ?, resolved_at = ?, resolved_by = ?
            WHERE id = ?
            """,
            (
                incident.title,
                incident.severity.value,
                incident.status.value,
                incident.correlation_reason,
                incident.updated_at,
                incident.resolved_at,
                incident.resolved_by,
                incident.id,
            ),
        )

    # ==================================================================
    # Incident reads
    # ==================================================================

    def get_incident(self, incident_id: str) -> Incident | None:
        row = self._db.execute(
            "SELECT * FROM incidents WHERE id = ?", (incident_id,)
        ).fetchone()
        return self._row_to_incident(row) if row else None

    def get_incidents(
        self,
        limit: int = 100,
        offset: int = 0,
        status: str | None = None,
    ) -> list[Incident]:
        clauses, params = ("WHERE status = ?", [status]) if status else ("", [])
        rows = self._db.execute(
            f"SELECT * FROM incidents {clauses} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            tuple(params + [min(limit, 500), offset]),
        ).fetchall()
        return [self._row_to_incident(r) for r in rows]

    def list_open_incidents(self) -> list[Incident]:
        rows = self._db.execute(
            "SELECT * FROM incidents WHERE status = ? ORDER BY created_at",
            (IncidentStatus.OPEN.value,),
        ).fetchall()
        return [self._row_to_incident(r) for r in rows]

    def _row_to_incident(self, row: Any) -> Incident:
        alert_rows = self._db.execute(
            f"SELECT id FROM alerts WHERE incident_id = ? AND {_NOT_DELETED} ORDER BY timestamp, rowid",
            (row["id"],),
        ).fetchall()
        return Incident(
            id=row["id"],
            title=row["title"],
            severity=Severity(row["severity"]),
            status=IncidentStatus(row["status"]),
            alert_ids=[r["id"] for r in alert_rows],
            correlation_reason=row["correlation_reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            resolved_at=row["resolved_at"],
            resolved_by=row["resolved_by"],
        )

    # ==================================================================
    # Stats
    # ==================================================================

    def get_stats_summary(self, now: float | None = None) -> dict:
        now = now if now is not None else time.time()
        one_hour_ago = now - 3600

        total = self._db.execute(
            f"SELECT COUNT(*) FROM alerts WHERE {_NOT_DELETED}"
        ).fetchone()[0]
        last_hour = self._db.execute(
            f"SELECT COUNT(*) FROM alerts WHERE timestamp >= ? AND {_NOT_DELETED}",
            (one_hour_ago,),
        ).fetchone()[0]

        status_rows = self._db.execute(
            f"SELECT status, COUNT(*) FROM alerts WHERE {_NOT_DELETED} GROUP BY status"
        ).fetchall()
        sev_rows = self._db.execute(
            f"SELECT severity, COUNT(*) FROM alerts WHERE {_NOT_DELETED} GROUP BY severity"
        ).fetchall()
        type_rows = self._db.execute(
            f"SELECT type, COUNT(*) FROM alerts WHERE {_NOT_DELETED} GROUP BY type"
        ).fetchall()
        open_incidents = self._db.execute(
            "SELECT COUNT(*) FROM incidents WHERE status = ?",
            (IncidentStatus.OPEN.value,),
        ).fetchone()[0]

        latest_row = self._db.execute(
            f"SELECT MAX(timestamp) FROM alerts WHERE {_NOT_DELETED}"
        ).fetchone()

        return {
            "total_alerts": total,
            "alerts_last_hour": last_hour,
            "alerts_by_status": {r[0]: r[1] for r in status_rows},
            "alerts_by_severity": {r[0]: r[1] for r in sev_rows},
            "alerts_by_type": {r[0]: r[1] for r in type_rows},
            "open_incidents": open_incidents,
            "latest_alert_timestamp": latest_row[0] if latest_row else None,
        }

    # ==================================================================
    # Internal helpers
    # ==================================================================

    @staticmethod
    def _build_where(
        status: str | None,
        severity: str | None,
        alert_type: str | None,
        since: float | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = [_NOT_DELETED]
        params: list[Any] = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if severity:
            clauses.append("severity = ?")
            params.append(Severity.parse(severity).value)
        if alert_type:
            clauses.append("type = ?")
            params.append(alert_type)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(since)
        return "WHERE " + " AND ".join(clauses), params


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def _dump_json(value: Any, label: str) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as exc:
        logger.error("%s not JSON-serializable, storing as text: %s", label, exc)
        return json.dumps(value, default=str)


def _load_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return default


def _row_to_alert(row: Any) -> Alert:
    return Alert(
        id=row["id"],
        rule_id=row["rule_id"],
        type=row["type"],
        severity=Severity(row["severity"]),
        message=row["message"],
        status=AlertStatus(row["status"]),
        timestamp=row["timestamp"],
        metrics=_load_json(row["metrics"], {}),
        incident_id=row["incident_id"],
        created_by=row["created_by"],
        acknowledged_by=row["acknowledged_by"],
        acknowledged_at=row["acknowledged_at"],
        resolved_by=row["resolved_by"],
        resolved_at=row["resolved_at"],
        deleted_at=row["deleted_at"],
    )
