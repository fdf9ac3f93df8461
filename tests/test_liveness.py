"""
Liveness Model Test Suite
Slot holds (clamping, expiry, stale-hold errors) and grace windows.

Usage:  python tests/test_liveness.py  (from project root)
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guardrail.liveness import (
    HOLD_DEFAULT_MINUTES,
    HOLD_MAX_MINUTES,
    HOLD_MIN_MINUTES,
    GraceWindow,
    HoldExpiredError,
    clamp_hold_minutes,
    create_hold,
    ensure_hold_active,
    is_expired,
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


NOW = datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)


def main() -> bool:
    global passed, failed

    print("=" * 60)
    print("HOLDS")
    print("=" * 60)

    check("defaults are 15 / 480 / 90",
          (HOLD_MIN_MINUTES, HOLD_MAX_MINUTES, HOLD_DEFAULT_MINUTES) == (15, 480, 90))
    check("no minutes -> default", clamp_hold_minutes(None) == 90)
    check("too short -> minimum", clamp_hold_minutes(5) == 15)
    check("too long -> maximum", clamp_hold_minutes(1000) == 480)
    check("in range kept", clamp_hold_minutes(60) == 60)

    hold = create_hold("slot-10", NOW)
    check("hold lasts 90 minutes by default", hold.held_until == NOW + timedelta(minutes=90))
    check("fresh hold is active", not is_expired(hold, NOW + timedelta(minutes=89)))
    check("hold expires at its deadline", is_expired(hold, NOW + timedelta(minutes=90)))
    check("active hold passes through",
          ensure_hold_active(hold, NOW + timedelta(minutes=1)) is hold)

    try:
        ensure_hold_active(hold, NOW + timedelta(hours=2))
        check("stale hold raises HoldExpiredError", False)
    except HoldExpiredError as exc:
        check("stale hold raises HoldExpiredError", True)
        check("error names the resource", exc.resource_id == "slot-10")
        check("error carries the deadline", exc.held_until == hold.held_until)
        check("error asks for a new slot", "Select a new slot" in str(exc), str(exc))

    check("HoldExpiredError is a ValueError", issubclass(HoldExpiredError, ValueError))
    check("hold serializes", hold.to_dict() == {
        "resource_id": "slot-10",
        "held_until": (NOW + timedelta(minutes=90)).isoformat(),
    })

    print()
    print("=" * 60)
    print("GRACE WINDOWS")
    print("=" * 60)

    grace = GraceWindow(enabled=True, ends_at=NOW + timedelta(days=3))
    check("active before end", grace.is_active(NOW))
    check("inactive after end", not grace.is_active(NOW + timedelta(days=3)))
    check("disabled is never active",
          not GraceWindow(enabled=False, ends_at=NOW + timedelta(days=3)).is_active(NOW))
    check("no end date is never active", not GraceWindow(enabled=True).is_active(NOW))

    print()
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_liveness_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
