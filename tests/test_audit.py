"""
Audit Spine Test Suite
Record building and the AuditSpineManager row mapping, driven through an
in-memory connection so no PostgreSQL server is needed.

Usage:  python tests/test_audit.py
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import psycopg2

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guardrail.audit import (
    EVENT_COLUMNS,
    SUBJECT_COLUMNS,
    AuditSpineManager,
    build_record,
    row_to_event,
)

passed = 0
failed = 0


def check(label: str, condition: bool, detail: str = ""):
    global passed, failed
    tag = "PASS" if condition else "FAIL"
    if condition:
        passed += 1
    else:
        failed += 1
    print(f"  [{tag}] {label}")
    if detail:
        print(f"         {detail}")


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params):
        self.conn.statements.append((sql, params))
        if self.conn.fail_inserts:
            self.conn.fail_inserts -= 1
            raise psycopg2.errors.UniqueViolation("previous hash taken")

    def fetchall(self):
        return list(self.conn.rows)

    def fetchone(self):
        return self.conn.rows[0] if self.conn.rows else None


class FakeConnection:
    def __init__(self, rows=(), fail_inserts=0):
        self.rows = list(rows)
        self.fail_inserts = fail_inserts
        self.statements: list[tuple] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


class MemorySpine(AuditSpineManager):
    def __init__(self, conn: FakeConnection):
        super().__init__(db_config={})
        self.conn = conn
        self.connects = 0

    def _connect(self):
        self.connects += 1
        return self.conn


CREATED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
FULL_ROW = ("3f0c", CREATED, "user:amina", "POLICY_EVAL:SERVICE_BOOKING",
            {"subject_id": "booking-1"}, "1.0.0", "hash-2", "hash-1")


def main() -> bool:
    global passed, failed

    print("=" * 60)
    print("RECORDS")
    print("=" * 60)

    record = build_record("POLICY_EVAL", "user:amina", "booking-1", "Allowed",
                          timestamp=datetime(2026, 3, 2, 9, 0))
    check("naive timestamp recorded as UTC",
          record.timestamp == "2026-03-02T09:00:00+00:00", record.timestamp)
    check("empty reasons and detail default", record.reasons == [] and record.detail == {})

    print()
    print("=" * 60)
    print("ROW MAPPING")
    print("=" * 60)

    event = row_to_event(FULL_ROW)
    check("full row keys follow the column list", list(event) == list(EVENT_COLUMNS))
    check("chain columns mapped",
          event["event_hash"] == "hash-2" and event["previous_event_hash"] == "hash-1")

    class Uuidish:
        def __str__(self):
            return "a1b2"

    check("id comes back as str", row_to_event((Uuidish(),) + FULL_ROW[1:])["id"] == "a1b2")

    spine = MemorySpine(FakeConnection(rows=[FULL_ROW]))
    fetched = spine.get_event("3f0c")
    check("get_event maps the row", fetched == event, f"{fetched}")
    sql, params = spine.conn.statements[-1]
    check("get_event selects every column by id",
          sql.startswith("SELECT " + ", ".join(EVENT_COLUMNS)) and params == ("3f0c",), sql)
    check("connection closed after read", spine.conn.closed)

    check("missing event -> None", MemorySpine(FakeConnection()).get_event("nope") is None)

    spine = MemorySpine(FakeConnection(rows=[FULL_ROW[:5], FULL_ROW[:5]]))
    events = spine.events_for_subject("booking-1", limit=2)
    check("subject query maps the short rows",
          len(events) == 2 and list(events[0]) == list(SUBJECT_COLUMNS), f"{events}")
    sql, params = spine.conn.statements[-1]
    check("subject query newest first with limit",
          "ORDER BY created_at DESC" in sql and params == ("booking-1", 2), sql)

    print()
    print("=" * 60)
    print("WRITES")
    print("=" * 60)

    spine = MemorySpine(FakeConnection(rows=[("e-1",)]))
    event_id = spine.log_event("user:amina", "POLICY_EVAL", {"outcome": "Allowed"})
    check("log_event returns the new id", event_id == "e-1")
    sql, params = spine.conn.statements[-1]
    check("payload written as JSON", params[2] == '{"outcome": "Allowed"}', f"{params}")
    check("insert committed once", spine.conn.commits == 1)

    spine = MemorySpine(FakeConnection(rows=[("e-2",)], fail_inserts=1))
    check("raced insert retried", spine.log_event("u", "K", {}) == "e-2"
          and spine.conn.rollbacks == 1 and spine.connects == 2)

    spine = MemorySpine(FakeConnection(rows=[("e-3",)], fail_inserts=3))
    try:
        spine.log_event("u", "K", {})
        check("retries exhausted -> raises", False)
    except psycopg2.errors.UniqueViolation:
        check("retries exhausted -> raises", spine.connects == 3)

    print()
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_audit_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
