"""
storage/database.py

SQLite connection and schema initialisation for the AX Monitor storage layer.
One database file per monitored environment, so environments share no state.

Design decisions:
  - WAL journal mode for concurrent readers + one writer without blocking.
  - check_same_thread=False: asyncio coroutines run in the same thread as the
    event loop; all writes go through the repositories on that thread.
  - busy_timeout=5000ms: instead of raising SQLITE_BUSY immediately, SQLite
    will spin-wait up to 5 seconds, allowing WAL readers to finish.
  - Partial unique index on successful escalation records: a second success
    for the same (alert, rule, level) is rejected by the database itself.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

_CURRENT_SCHEMA_VERSION = 1


class Database:
    """
    Thin wrapper around a sqlite3 connection.

    Usage:
        db = Database("data/prd.db")
        db.init_schema()
        apply_migrations(db)
        # ... pass db to the repositories ...
        db.close()
    """

    def __init__(self, db_path: str = "data/prd.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row  # rows behave like dicts
        self._configure()
        logger.info("Database opened — path=%r", db_path)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _configure(self) -> None:
        """Apply performance and safety PRAGMAs."""
        cur = self.conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA busy_timeout=5000")
        cur.execute("PRAGMA synchronous=NORMAL")  # safe with WAL
        self.conn.commit()

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_schema(self) -> None:
        """Create all tables and indexes if they don't already exist."""
        cur = self.conn.cursor()

        cur.executescript("""
            CREATE TABLE IF NOT EXISTS rules (
                id          TEXT PRIMARY KEY,
                kind        TEXT NOT NULL,
                name        TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                severity    TEXT NOT NULL,
                enabled     INTEGER NOT NULL DEFAULT 1,
                condition   TEXT,
                config      TEXT NOT NULL DEFAULT '{}',
                created_at  REAL NOT NULL,
                updated_at  REAL
            );

            CREATE TABLE IF NOT EXISTS incidents (
                id                 TEXT PRIMARY KEY,
                title              TEXT NOT NULL,
                severity           TEXT NOT NULL,
                status             TEXT NOT NULL,
                correlation_reason TEXT NOT NULL DEFAULT '',
                created_at         REAL NOT NULL,
                updated_at         REAL,
                resolved_at        REAL,
                resolved_by        TEXT
            );

            CREATE TABLE IF NOT EXISTS alerts (
                id              TEXT PRIMARY KEY,
                rule_id         TEXT NOT NULL,
                type            TEXT NOT NULL,
                severity        TEXT NOT NULL,
                message         TEXT NOT NULL,
                status          TEXT NOT NULL,
                timestamp       REAL NOT NULL,
                metrics         TEXT NOT NULL DEFAULT '{}',
                incident_id     TEXT REFERENCES incidents(id),
                created_by      TEXT NOT NULL DEFAULT 'System',
                acknowledged_by TEXT,
                acknowledged_at REAL,
                resolved_by     TEXT,
                resolved_at     REAL
            );

            CREATE TABLE IF NOT EXISTS escalation_executions (
                id              TEXT PRIMARY KEY,
                alert_id        TEXT NOT NULL,
                rule_id         TEXT NOT NULL,
                level           INTEGER NOT NULL,
                after_seconds   INTEGER NOT NULL,
                elapsed_seconds REAL NOT NULL,
                action          TEXT NOT NULL,
                recipients      TEXT NOT NULL DEFAULT '',
                success         INTEGER NOT NULL,
                reference_id    TEXT,
                detail          TEXT NOT NULL DEFAULT '',
                executed_at     REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS remediation_executions (
                id               TEXT PRIMARY KEY,
                rule_id          TEXT NOT NULL,
                trigger_data     TEXT NOT NULL DEFAULT '{}',
                start_time       REAL NOT NULL,
                completion_time  REAL,
                outcome          TEXT NOT NULL,
                detail           TEXT NOT NULL DEFAULT '',
                actions_executed TEXT NOT NULL DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS maintenance_windows (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                name            TEXT NOT NULL,
                description     TEXT NOT NULL DEFAULT '',
                start_time      REAL NOT NULL,
                end_time        REAL NOT NULL,
                recurrence      TEXT,
                suppress_alerts INTEGER NOT NULL DEFAULT 1,
                enabled         INTEGER NOT NULL DEFAULT 1,
                created_at      REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_rules_kind
                ON rules(kind, enabled);
            CREATE INDEX IF NOT EXISTS idx_alerts_status
                ON alerts(status);
            CREATE INDEX IF NOT EXISTS idx_alerts_rule_id
                ON alerts(rule_id, timestamp DESC);
            CREATE INDEX IF NOT EXISTS idx_alerts_incident
                ON alerts(incident_id);
            CREATE INDEX IF NOT EXISTS idx_incidents_status
                ON incidents(status);
            CREATE INDEX IF NOT EXISTS idx_escalations_alert
                ON escalation_executions(alert_id, rule_id, level);
            CREATE UNIQUE INDEX IF NOT EXISTS uq_escalations_success
                ON escalation_executions(alert_id, rule_id, level)
                WHERE success = 1;
            CREATE INDEX IF NOT EXISTS idx_remediations_rule
                ON remediation_executions(rule_id, start_time DESC);
        """)

        # Record schema version (ignore if already present)
        cur.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (_CURRENT_SCHEMA_VERSION, time.time()),
        )
        self.conn.commit()
        logger.info("Schema initialised (version=%d)", _CURRENT_SCHEMA_VERSION)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Flush and close the SQLite connection."""
        try:
            self.conn.commit()
            self.conn.close()
            logger.info("Database closed — path=%r", self.db_path)
        except sqlite3.Error as exc:
            logger.warning("Error closing database: %s", exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Explicit BEGIN … COMMIT. Any exception rolls the whole block back,
        schema changes included, and is re-raised.
        """
        self.conn.commit()
        cur = self.conn.cursor()
        cur.execute("BEGIN")
        try:
            yield cur
        except BaseException:
            self.conn.rollback()
            raise
        self.conn.commit()

    def commit(self) -> None:
        self.conn.commit()
