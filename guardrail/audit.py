"""
Audit Spine

Flat, serializable decision records and the append-only writer that
stores them. The decision core never persists anything itself: callers
that hold a writer (PolicyEngine, the gateway) hand each finalized
decision to it.

Any object with ``log_event(actor_id, action_type, intent_payload) -> str``
is accepted where a writer is expected.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Optional

import psycopg2
from pydantic import BaseModel

from guardrail.liveness import as_utc

logger = logging.getLogger(__name__)

DB_CONFIG = {
    "host": os.environ.get("GUARDRAIL_DB_HOST", "localhost"),
    "port": int(os.environ.get("GUARDRAIL_DB_PORT", "5433")),
    "dbname": os.environ.get("GUARDRAIL_DB_NAME", "guardrail_audit"),
    "user": os.environ.get("GUARDRAIL_DB_USER", "admin"),
    "password": os.environ.get("GUARDRAIL_DB_PASSWORD", "password123"),
}

POLICY_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class AuditRecord(BaseModel):
    kind: str
    actor_id: str
    subject_id: str                 # context id or device id
    outcome: str
    reasons: list[dict[str, Any]] = []
    timestamp: str
    detail: dict[str, Any] = {}


def build_record(
    kind: str,
    actor_id: str,
    subject_id: str,
    outcome: str,
    reasons: list[dict[str, Any]] | None = None,
    timestamp: datetime | None = None,
    detail: dict[str, Any] | None = None,
) -> AuditRecord:
    """Build a flat record. Naive timestamps are taken as UTC."""
    ts = as_utc(timestamp) if timestamp else datetime.now(timezone.utc)
    return AuditRecord(
        kind=kind,
        actor_id=actor_id,
        subject_id=subject_id,
        outcome=outcome,
        reasons=reasons or [],
        timestamp=ts.isoformat(),
        detail=detail or {},
    )


def log_record(audit, record: AuditRecord) -> str:
    """Hand a record to any writer. Returns its event id."""
    return audit.log_event(
        actor_id=record.actor_id,
        action_type=record.kind,
        intent_payload=record.model_dump(),
    )


# ---------------------------------------------------------------------------
# PostgreSQL writer
# ---------------------------------------------------------------------------

EVENT_COLUMNS = (
    "id", "created_at", "actor_id", "action_type",
    "intent_payload", "policy_version", "event_hash", "previous_event_hash",
)
# events_for_subject leaves the chain columns out
SUBJECT_COLUMNS = EVENT_COLUMNS[:5]


def row_to_event(row: tuple, columns: tuple[str, ...] = EVENT_COLUMNS) -> dict[str, Any]:
    """Map one audit_events row onto its column names; ids come back as str."""
    event = dict(zip(columns, row))
    event["id"] = str(event["id"])
    return event


class AuditSpineManager:
    """
    Append-only writer for the audit_events ledger.

    Hash chaining (event_hash, previous_event_hash) is done by a trigger in
    PostgreSQL, so concurrent inserts can race for the same previous hash;
    those are retried.
    """

    def __init__(self, db_config: dict | None = None):
        self._db_config = db_config or DB_CONFIG

    def _connect(self):
        return psycopg2.connect(**self._db_config)

    def _select(self, columns: tuple[str, ...], where: str, params: tuple) -> list[tuple]:
        sql = f"SELECT {', '.join(columns)} FROM audit_events {where}"
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()
        finally:
            conn.close()

    def get_event(self, event_id: str) -> Optional[dict[str, Any]]:
        """Fetch one event by id, or None. SELECT-only."""
        rows = self._select(EVENT_COLUMNS, "WHERE id = %s", (event_id,))
        return row_to_event(rows[0]) if rows else None

    def events_for_subject(self, subject_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent records about one context or device, newest first."""
        rows = self._select(
            SUBJECT_COLUMNS,
            "WHERE intent_payload->>'subject_id' = %s ORDER BY created_at DESC LIMIT %s",
            (subject_id, limit),
        )
        return [row_to_event(row, SUBJECT_COLUMNS) for row in rows]

    def log_event(
        self,
        actor_id: str,
        action_type: str,
        intent_payload: dict[str, Any],
        policy_version: str = POLICY_VERSION,
        _max_retries: int = 3,
    ) -> str:
        """Append one event and return its UUID."""
        params = (actor_id, action_type, json.dumps(intent_payload), policy_version)
        for attempt in range(_max_retries):
            conn = self._connect()
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO audit_events "
                        "(actor_id, action_type, intent_payload, policy_version) "
                        "VALUES (%s, %s, %s, %s) RETURNING id",
                        params,
                    )
                    event_id = str(cur.fetchone()[0])
                conn.commit()
                return event_id
            except (psycopg2.errors.UniqueViolation, psycopg2.errors.DeadlockDetected):
                conn.rollback()
                if attempt == _max_retries - 1:
                    raise
                logger.warning("audit insert raced (attempt %d), retrying", attempt + 1)
                time.sleep(0.05 * (attempt + 1))
            finally:
                conn.close()
        raise RuntimeError("log_event: exhausted retries")
