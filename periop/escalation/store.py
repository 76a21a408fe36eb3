"""SQLite-backed storage for escalation alerts and entity flags."""

import json
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any

from ..config import config
from ..db import connect, ensure_parent_dir, immediate_transaction
from ..errors import ConflictError, NotFoundError, ValidationError
from ..roles import ALERT_HANDLERS, Actor, require_role
from .models import AlertStatus, EscalationAlert, EscalationFlag, TriggerType

logger = logging.getLogger(__name__)


ESCALATION_SCHEMA = """
CREATE TABLE IF NOT EXISTS escalation_alerts (
    id TEXT PRIMARY KEY,
    trigger_type TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    episode_key TEXT NOT NULL,
    severity TEXT NOT NULL,
    priority TEXT NOT NULL,
    description TEXT NOT NULL,
    recipients TEXT NOT NULL,
    context TEXT,
    created_at TEXT NOT NULL,
    created_by TEXT,

    status TEXT NOT NULL DEFAULT 'reported',
    acknowledged_by TEXT,
    acknowledged_at TEXT,
    resolved_by TEXT,
    resolved_at TEXT,
    resolution_notes TEXT,

    UNIQUE (trigger_type, entity_id, episode_key)
);

CREATE INDEX IF NOT EXISTS idx_escalation_alerts_entity ON escalation_alerts(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_escalation_alerts_status ON escalation_alerts(status);

CREATE TABLE IF NOT EXISTS escalation_flags (
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    red_alert_triggered INTEGER NOT NULL DEFAULT 0,
    alert_count INTEGER NOT NULL DEFAULT 0,
    first_triggered_at TEXT NOT NULL,
    last_triggered_at TEXT NOT NULL,
    PRIMARY KEY (entity_type, entity_id)
);
"""


class EscalationStore:
    """Append-only alert log with a per-entity flag."""

    def __init__(self, db_path: str | None = None):
        """Initialize escalation store.

        Args:
            db_path: Path to SQLite database. Defaults to PERIOP_ESCALATION_DB_PATH env var
                     or ~/.periop/escalations.db
        """
        self.db_path = os.path.expanduser(db_path) if db_path else config.ESCALATION_DB_PATH
        ensure_parent_dir(self.db_path)
        self._init_db()

    def _init_db(self) -> None:
        conn = connect(self.db_path)
        try:
            conn.executescript(ESCALATION_SCHEMA)
        finally:
            conn.close()

    def _load(self, conn: sqlite3.Connection, alert_id: str) -> EscalationAlert:
        row = conn.execute("SELECT * FROM escalation_alerts WHERE id = ?", (alert_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return EscalationAlert.from_row(row)

    def append(self, alert: EscalationAlert) -> tuple[EscalationAlert, bool]:
        """Insert an alert unless its episode was already recorded.

        Returns:
            (alert, created). For a duplicate episode the stored alert is
            returned with created=False and the flag is left alone.
        """
        with immediate_transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO escalation_alerts (
                    id, trigger_type, entity_type, entity_id, episode_key,
                    severity, priority, description, recipients, context,
                    created_at, created_by, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    alert.id, alert.trigger_type, alert.entity_type, alert.entity_id,
                    alert.episode_key, alert.severity, alert.priority, alert.description,
                    json.dumps(alert.recipients),
                    json.dumps(alert.context) if alert.context else None,
                    alert.created_at.isoformat(), alert.created_by, alert.status,
                ),
            )

            if cursor.rowcount == 0:
                row = conn.execute(
                    """
                    SELECT * FROM escalation_alerts
                    WHERE trigger_type = ? AND entity_id = ? AND episode_key = ?
                    """,
                    (alert.trigger_type, alert.entity_id, alert.episode_key),
                ).fetchone()
                logger.info(
                    f"Duplicate {alert.trigger_type} episode {alert.episode_key} "
                    f"for {alert.entity_id}; keeping alert {row['id']}"
                )
                return EscalationAlert.from_row(row), False

            conn.execute(
                """
                INSERT INTO escalation_flags (
                    entity_type, entity_id, red_alert_triggered, alert_count,
                    first_triggered_at, last_triggered_at
                ) VALUES (?, ?, 1, 1, ?, ?)
                ON CONFLICT (entity_type, entity_id) DO UPDATE SET
                    red_alert_triggered = 1,
                    alert_count = alert_count + 1,
                    last_triggered_at = excluded.last_triggered_at
                """,
                (alert.entity_type, alert.entity_id,
                 alert.created_at.isoformat(), alert.created_at.isoformat()),
            )

        logger.info(
            f"Created {alert.trigger_type} alert {alert.id} for {alert.entity_type} "
            f"{alert.entity_id} ({alert.severity}), notifying {', '.join(alert.recipients)}"
        )
        return alert, True

    def get_alert(self, alert_id: str) -> EscalationAlert:
        """Get an alert by ID.

        Raises:
            NotFoundError: if no such alert exists
        """
        conn = connect(self.db_path)
        try:
            return self._load(conn, alert_id)
        finally:
            conn.close()

    def list_alerts(
        self,
        status: AlertStatus | str | None = None,
        trigger_type: TriggerType | str | None = None,
        entity_id: str | None = None,
        limit: int = 100,
    ) -> list[EscalationAlert]:
        """List alerts, newest first."""
        query = "SELECT * FROM escalation_alerts WHERE 1=1"
        params: list[Any] = []

        if status:
            query += " AND status = ?"
            params.append(AlertStatus(status).value)
        if trigger_type:
            query += " AND trigger_type = ?"
            params.append(TriggerType(trigger_type).value)
        if entity_id:
            query += " AND entity_id = ?"
            params.append(entity_id)

        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        conn = connect(self.db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [EscalationAlert.from_row(row) for row in rows]

    def get_flag(self, entity_type: str, entity_id: str) -> EscalationFlag | None:
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM escalation_flags WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            ).fetchone()
        finally:
            conn.close()
        return EscalationFlag.from_row(row) if row else None

    def acknowledge(self, alert_id: str, actor: Actor) -> EscalationAlert:
        """Mark a reported alert as acknowledged.

        Raises:
            AuthorizationError: unless the actor handles alerts
            NotFoundError: if the alert does not exist
            ConflictError: if the alert is no longer reported
        """
        require_role(actor, ALERT_HANDLERS, "acknowledge alerts")
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE escalation_alerts
                SET status = ?, acknowledged_by = ?, acknowledged_at = ?
                WHERE id = ? AND status = ?
                """,
                (AlertStatus.ACKNOWLEDGED.value, actor.id, now.isoformat(),
                 alert_id, AlertStatus.REPORTED.value),
            )
            if cursor.rowcount == 0:
                current = self._load(conn, alert_id)
                raise ConflictError(
                    f"Alert {alert_id} is already {current.status}",
                    details={"status": current.status},
                )
            alert = self._load(conn, alert_id)

        logger.info(f"Alert {alert_id} acknowledged by {actor.label}")
        return alert

    def resolve(self, alert_id: str, actor: Actor, resolution_notes: str) -> EscalationAlert:
        """Resolve an open alert. The entity flag is left as is.

        Raises:
            ValidationError: if resolution_notes is blank
            AuthorizationError: unless the actor handles alerts
            NotFoundError: if the alert does not exist
            ConflictError: if the alert is already resolved
        """
        require_role(actor, ALERT_HANDLERS, "resolve alerts")
        resolution_notes = (resolution_notes or "").strip()
        if not resolution_notes:
            raise ValidationError("resolution_notes are required")
        now = datetime.now()

        with immediate_transaction(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE escalation_alerts
                SET status = ?, resolved_by = ?, resolved_at = ?, resolution_notes = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (AlertStatus.RESOLVED.value, actor.id, now.isoformat(), resolution_notes,
                 alert_id, AlertStatus.REPORTED.value, AlertStatus.ACKNOWLEDGED.value),
            )
            if cursor.rowcount == 0:
                current = self._load(conn, alert_id)
                raise ConflictError(
                    f"Alert {alert_id} is already {current.status}",
                    details={"status": current.status},
                )
            alert = self._load(conn, alert_id)

        logger.info(f"Alert {alert_id} resolved by {actor.label}")
        return alert
