"""
storage/migrations.py

Forward-only schema migrations. init_schema() creates the version-1 layout;
apply_migrations() brings a database up to the latest version, one step per
transaction, recording each step in schema_version.

    v2  alerts.deleted_at: soft delete. Deleted alerts stay for the audit
        trail but are hidden from every read path.
    v3  index on remediation_executions(outcome) for the Running-record
        recovery scan and the per-outcome stats.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, NamedTuple

from .database import Database

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    description: str
    apply: Callable[[sqlite3.Cursor], None]


def _add_alert_soft_delete(cur: sqlite3.Cursor) -> None:
    cur.execute("ALTER TABLE alerts ADD COLUMN deleted_at REAL DEFAULT NULL")


def _index_remediation_outcome(cur: sqlite3.Cursor) -> None:
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_remediations_outcome "
        "ON remediation_executions(outcome)"
    )


_MIGRATIONS: list[Migration] = [
    Migration(2, "soft delete for alerts", _add_alert_soft_delete),
    Migration(3, "remediation outcome index", _index_remediation_outcome),
]


def schema_version(db: Database) -> int:
    row = db.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row and row[0] is not None else 0


def apply_migrations(db: Database) -> list[int]:
    """Apply every pending migration in version order. Returns the versions applied."""
    current = schema_version(db)
    pending = sorted((m for m in _MIGRATIONS if m.version > current), key=lambda m: m.version)
    if not pending:
        logger.debug("Schema up to date (version=%d)", current)
        return []

    applied: list[int] = []
    for migration in pending:
        try:
            with db.transaction() as cur:
                migration.apply(cur)
                cur.execute(
                    "INSERT OR REPLACE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (migration.version, time.time()),
                )
        except Exception:
            logger.exception("Migration v%d (%s) failed, rolled back", migration.version, migration.description)
            raise
        logger.info("Migration v%d applied: %s", migration.version, migration.description)
        applied.append(migration.version)
    return applied
