"""storage/maintenance.py — CRUD for maintenance windows."""

from __future__ import annotations

import logging
from typing import Any

from ..maintenance import MaintenanceWindow, Recurrence
from .database import Database

logger = logging.getLogger(__name__)


class MaintenanceRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, window: MaintenanceWindow) -> MaintenanceWindow:
        window.validate()
        cur = self._db.execute(
            """
            INSERT INTO maintenance_windows (
                name, description, start_time, end_time, recurrence,
                suppress_alerts, enabled, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                window.name,
                window.description,
                window.start_time,
                window.end_time,
                window.recurrence.value if window.recurrence else None,
                int(window.suppress_alerts),
                int(window.enabled),
                window.created_at,
            ),
        )
        self._db.commit()
        window.id = cur.lastrowid
        logger.info("Maintenance window created: %s (%s)", window.name, window.id)
        return window

    def update(self, window: MaintenanceWindow) -> bool:
        window.validate()
        cur = self._db.execute(
            """
            UPDATE maintenance_windows SET
                name = ?, description = ?, start_time = ?, end_time = ?,
                recurrence = ?, suppress_alerts = ?, enabled = ?
            WHERE id = ?
            """,
            (
                window.name,
                window.description,
                window.start_time,
                window.end_time,
                window.recurrence.value if window.recurrence else None,
                int(window.suppress_alerts),
                int(window.enabled),
                window.id,
            ),
        )
        self._db.commit()
        return cur.rowcount > 0

    def delete(self, window_id: int) -> bool:
        cur = self._db.execute("DELETE FROM maintenance_windows WHERE id = ?", (window_id,))
        self._db.commit()
        return cur.rowcount > 0

    def get(self, window_id: int) -> MaintenanceWindow | None:
        row = self._db.execute(
            "SELECT * FROM maintenance_windows WHERE id = ?", (window_id,)
        ).fetchone()
        return _row_to_window(row) if row else None

    def list_windows(self) -> list[MaintenanceWindow]:
        rows = self._db.execute(
            "SELECT * FROM maintenance_windows ORDER BY start_time"
        ).fetchall()
        return [_row_to_window(r) for r in rows]


def _row_to_window(row: Any) -> MaintenanceWindow:
    return MaintenanceWindow(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        recurrence=Recurrence(row["recurrence"]) if row["recurrence"] else None,
        suppress_alerts=bool(row["suppress_alerts"]),
        enabled=bool(row["enabled"]),
        created_at=row["created_at"],
    )
