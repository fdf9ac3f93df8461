"""
Outcome Resolver Test Suite
Severity fold, order independence, and the empty-list contract.

Usage:  python tests/test_reasons.py
"""

from __future__ import annotations

import itertools
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guardrail.reasons import (
    Outcome,
    Reason,
    ReasonCode,
    Severity,
    resolve_outcome,
    within_policy,
    worst_severity,
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


def reason(severity: Severity, code: ReasonCode = ReasonCode.AMOUNT) -> Reason:
    return Reason(code=code, title=f"{severity.value} test", detail="", severity=severity)


INFO = reason(Severity.INFO, ReasonCode.OK)
WARN = reason(Severity.WARNING)
CRIT = reason(Severity.CRITICAL, ReasonCode.PROGRAM)


def main() -> bool:
    global passed, failed

    print("=" * 60)
    print("RESOLVE OUTCOME")
    print("=" * 60)

    check("all Info -> Allowed", resolve_outcome([INFO, INFO]) == Outcome.ALLOWED)
    check("any Warning -> Approval required",
          resolve_outcome([INFO, WARN]) == Outcome.APPROVAL_REQUIRED)
    check("any Critical -> Blocked", resolve_outcome([WARN, CRIT, INFO]) == Outcome.BLOCKED)
    check("within_policy alone -> Allowed", resolve_outcome([within_policy()]) == Outcome.ALLOWED)

    # Order must never matter
    mixed = [INFO, WARN, CRIT, WARN]
    outcomes = {resolve_outcome(list(p)) for p in itertools.permutations(mixed)}
    check("order independent", outcomes == {Outcome.BLOCKED}, f"got {outcomes}")

    # Adding a Critical always forces Blocked
    for base in ([INFO], [WARN], [INFO, WARN], [CRIT]):
        check(f"Critical added to {[r.severity.value for r in base]} -> Blocked",
              resolve_outcome(base + [CRIT]) == Outcome.BLOCKED)

    # Allowed iff every severity is Info
    for combo in itertools.product([INFO, WARN, CRIT], repeat=2):
        all_info = all(r.severity == Severity.INFO for r in combo)
        check(f"{[r.severity.value for r in combo]} Allowed iff all Info",
              (resolve_outcome(list(combo)) == Outcome.ALLOWED) == all_info)

    print()
    print("=" * 60)
    print("CONTRACT")
    print("=" * 60)

    try:
        resolve_outcome([])
        check("empty list raises ValueError", False)
    except ValueError:
        check("empty list raises ValueError", True)

    check("worst severity", worst_severity([INFO, WARN]) == Severity.WARNING)
    check("severity ranks ordered",
          Severity.INFO.rank < Severity.WARNING.rank < Severity.CRITICAL.rank)
    d = CRIT.to_dict()
    check("to_dict is flat strings",
          d == {"code": "PROGRAM", "title": "Critical test", "detail": "", "severity": "Critical"},
          f"got {d}")

    print()
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_reasons_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
