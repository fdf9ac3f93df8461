"""
Trusted Device Test Suite
Time-boxed trust, the per-actor cap, manual toggles and expiry.

Usage:  python tests/test_trust.py
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guardrail.risk import StepUpPolicy
from guardrail.trust import (
    TrustedDevice,
    count_trusted,
    expire_trust,
    grant_trust,
    revoke_trust,
    toggle_trust,
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


NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def fleet(trusted: int, untrusted: int) -> tuple[TrustedDevice, ...]:
    devices = [
        TrustedDevice(f"t{i}", f"Trusted {i}", True, NOW + timedelta(days=3))
        for i in range(trusted)
    ]
    devices += [TrustedDevice(f"u{i}", f"Device {i}") for i in range(untrusted)]
    return tuple(devices)


def main() -> bool:
    global passed, failed

    policy = StepUpPolicy(max_trusted_devices=2, trust_expiry_days=30)

    print("=" * 60)
    print("GRANT")
    print("=" * 60)

    devices = fleet(0, 2)
    grant = grant_trust(policy, devices, "u0", NOW)
    check("grant succeeds under the cap", grant.granted, grant.reason)
    check("expiry is now + 30 days", grant.expires_at == NOW + timedelta(days=30))
    check("input devices untouched", devices[0].trusted is False)
    check("returned device is trusted", grant.devices[0].is_trust_active(NOW))
    check("trust ends at expiry",
          not grant.devices[0].is_trust_active(NOW + timedelta(days=30)))

    full = fleet(2, 1)
    grant = grant_trust(policy, full, "u0", NOW)
    check("cap reached -> refused", grant.granted is False)
    check("refusal explains the cap",
          grant.reason == "You can trust up to 2 devices. Untrust one to continue.", grant.reason)
    check("devices unchanged on refusal", grant.devices == full)
    check("cap still respected", count_trusted(grant.devices, NOW) == 2)

    grant = grant_trust(policy, full, "t0", NOW)
    check("re-trusting a trusted device refreshes expiry at the cap",
          grant.granted and grant.expires_at == NOW + timedelta(days=30))

    grant = grant_trust(StepUpPolicy(allow_trusted_devices=False), fleet(0, 1), "u0", NOW)
    check("policy switch off -> refused", grant.granted is False
          and "disabled" in grant.reason, grant.reason)

    grant = grant_trust(policy, fleet(0, 1), "ghost", NOW)
    check("unknown device -> refused", grant.granted is False and "ghost" in grant.reason)

    print()
    print("=" * 60)
    print("EXPIRY / REVOKE / TOGGLE")
    print("=" * 60)

    later = NOW + timedelta(days=4)
    check("expired trust does not count", count_trusted(full, later) == 0)
    grant = grant_trust(policy, full, "u0", later)
    check("expired devices free the cap", grant.granted, grant.reason)

    cleaned = expire_trust(full, later)
    check("expire_trust clears lapsed flags",
          all(not d.trusted and d.trust_expires_at is None for d in cleaned))
    check("expire_trust keeps active trust", expire_trust(full, NOW) == full)

    revoked = revoke_trust(full, "t1")
    check("revoke clears one device",
          revoked[1].trusted is False and count_trusted(revoked, NOW) == 1)
    try:
        revoke_trust(full, "ghost")
        check("revoke unknown raises ValueError", False)
    except ValueError:
        check("revoke unknown raises ValueError", True)

    toggled = toggle_trust(policy, full, "t0", NOW)
    check("toggle on trusted device revokes",
          toggled.granted is False and not toggled.devices[0].trusted, toggled.reason)
    toggled = toggle_trust(policy, toggled.devices, "u0", NOW)
    check("toggle on untrusted device grants when room",
          toggled.granted and toggled.devices[2].is_trust_active(NOW), toggled.reason)
    toggled = toggle_trust(policy, fleet(2, 1), "u0", NOW)
    check("manual toggle respects the cap", toggled.granted is False)

    check("to_dict serializes expiry",
          fleet(1, 0)[0].to_dict()["trust_expires_at"] == (NOW + timedelta(days=3)).isoformat())

    print()
    print("=" * 60)
    print("NAIVE TIMESTAMPS")
    print("=" * 60)

    naive_now = datetime(2026, 5, 1, 12, 0)
    stored = TrustedDevice("laptop", "Work laptop", True, datetime(2026, 5, 4, 12, 0))
    check("naive expiry is stored as UTC",
          stored.trust_expires_at == NOW + timedelta(days=3), f"{stored.trust_expires_at!r}")
    try:
        check("naive expiry against aware now", stored.is_trust_active(NOW))
        check("aware expiry against naive now", fleet(1, 0)[0].is_trust_active(naive_now))
        check("naive now past expiry -> inactive",
              not fleet(1, 0)[0].is_trust_active(datetime(2026, 5, 5, 12, 0)))
    except TypeError as exc:
        check("mixed naive and aware timestamps compare", False, f"{exc}")

    grant = grant_trust(policy, fleet(0, 1), "u0", naive_now)
    check("grant with naive now -> aware expiry",
          grant.expires_at == NOW + timedelta(days=30), f"{grant.expires_at!r}")
    check("count_trusted with naive now", count_trusted(fleet(2, 0), naive_now) == 2)

    print()
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_trust_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
