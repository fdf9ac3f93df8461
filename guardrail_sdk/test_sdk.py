"""
Guardrail SDK Test Suite
Runs the client against the gateway in-process (fastapi TestClient), or
against a live gateway when GUARDRAIL_GATEWAY_URL is set.

Usage:
    python -m guardrail_sdk.test_sdk
    GUARDRAIL_GATEWAY_URL=http://localhost:8000 python -m guardrail_sdk.test_sdk
"""

from __future__ import annotations

import os
import sys
from uuid import uuid4

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from guardrail_sdk import GuardrailClient

GATEWAY_URL = os.environ.get("GUARDRAIL_GATEWAY_URL", "")
API_KEY = os.environ.get("GUARDRAIL_APPROVER_KEY", "test-key-change-me")

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
    print()


class _NullAudit:
    def log_event(self, actor_id, action_type, intent_payload):
        return str(uuid4())


def _in_process_http():
    from fastapi.testclient import TestClient

    from main import app, get_audit

    app.dependency_overrides[get_audit] = lambda: _NullAudit()
    return TestClient(app)


def booking(total: int, **extra) -> dict:
    ctx = {
        "funding_method": "Program",
        "slot": {"id": "slot-10", "days": ["Wed"], "start": "10:00", "end": "11:00"},
        "total": total,
        "actor_id": "user:sdk-test",
        "context_id": f"sdk-{uuid4().hex[:8]}",
    }
    ctx.update(extra)
    return ctx


def main():
    global passed, failed

    http = None if GATEWAY_URL else _in_process_http()
    client = GuardrailClient(gateway_url=GATEWAY_URL, api_key=API_KEY, http=http)

    try:
        # ----- Health -----
        print("=" * 60)
        print("HEALTH CHECK")
        print("=" * 60)
        h = client.health()
        check("Gateway is operational", h.get("status") == "operational", f"Response: {h}")

        # ----- Decisions -----
        print("=" * 60)
        print("DECISIONS")
        print("=" * 60)

        result = client.evaluate(booking(50_000))
        check("small booking -> Allowed", result.outcome == "Allowed",
              f"Outcome: {result.outcome}")

        result = client.evaluate(booking(400_000))
        check("large booking -> Approval required", result.outcome == "Approval required",
              f"Reasons: {result.reasons}")
        check("alternatives included", any(a["title"] == "Pay personally"
                                           for a in result.alternatives))

        result = client.evaluate(booking(50_000, funding_method="Personal wallet"))
        check("personal payment carries a coach tip",
              [t["id"] for t in result.coach] == ["coach-corp"], f"Coach: {result.coach}")

        result = client.evaluate(booking(50_000, program_status="Not linked"))
        check("not linked -> Blocked", result.outcome == "Blocked")

        overlaps = client.check_overlaps([
            {"id": "a", "days": ["Mon"], "start": "09:00", "end": "10:00"},
            {"id": "b", "days": ["Mon"], "start": "09:30", "end": "11:00"},
        ])
        check("overlap detected", overlaps["overlaps"] is True)

        risk = client.evaluate_risk(
            {"actor_id": "u", "device_id": "new-phone", "city": "Kampala",
             "country": "UG", "at": "2026-01-10T10:00:00+00:00"},
            known_device_ids=["laptop"],
        )
        check("new device -> step-up", risk["required"] is True and risk["codes"] == ["new_device"],
              f"{risk}")

        # ----- Approval flow -----
        print("=" * 60)
        print("APPROVAL FLOW")
        print("=" * 60)

        submitted = client.submit_approval(booking(400_000), "Annual carpet cleaning")
        check("submitted", submitted.success and submitted.state == "PENDING", f"{submitted.raw}")

        final = client.finalize(submitted.approval_id)
        check("finalize before decision -> NEEDS_APPROVAL", final.status == "NEEDS_APPROVAL")

        decided = client.approve(submitted.approval_id, note="ok")
        check("approved", decided.success and decided.state == "APPROVED", f"{decided.raw}")

        final = client.finalize(submitted.approval_id)
        check("finalize after approval -> PROCEED", final.status == "PROCEED")

        no_key = GuardrailClient(gateway_url=GATEWAY_URL, http=http)
        denied = no_key.reject(submitted.approval_id)
        check("client without api_key cannot decide", denied.success is False)

        refused = client.submit_approval(booking(10_000), "Nothing to approve here")
        check("Allowed booking cannot be submitted", refused.success is False)
    finally:
        if http is not None:
            from main import app
            app.dependency_overrides.clear()

    # ----- Summary -----
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_sdk_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
