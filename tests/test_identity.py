"""
Approver Identity Test Suite
Tests allowlist loading, approver validation, and API-key authentication.

Usage:  python tests/test_identity.py
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guardrail.identity import (
    authenticate_approver,
    hash_api_key,
    load_approvers,
    reload_approvers,
    validate_approver,
)

# ---------------------------------------------------------------------------
# Test harness
# ---------------------------------------------------------------------------

passed = 0
failed = 0


def check(label: str, condition: bool):
    global passed, failed
    tag = "PASS" if condition else "FAIL"
    if condition:
        passed += 1
    else:
        failed += 1
    print(f"  [{tag}] {label}")


def raises_value_error(fn, *args) -> str | None:
    try:
        fn(*args)
    except ValueError as exc:
        return str(exc)
    return None


# ---------------------------------------------------------------------------
# Test cases
# ---------------------------------------------------------------------------

def main():
    print("=" * 60)
    print("APPROVER IDENTITY TESTS")
    print("=" * 60)
    print()

    approvers = reload_approvers()
    check("load_approvers returns dict", isinstance(approvers, dict))
    check("cached on second load", load_approvers() is approvers)
    print()

    print("Validation:")
    lead = validate_approver("human:finance-lead")
    check("human:finance-lead is an active approver",
          lead.status == "active" and lead.role == "approver")
    err = raises_value_error(validate_approver, "human:nobody")
    check("unknown approver rejected", err is not None and "Unknown approver" in err)
    err = raises_value_error(validate_approver, "human:former-lead")
    check("suspended approver rejected", err is not None and "suspended" in err)
    err = raises_value_error(validate_approver, "human:auditor")
    check("viewer cannot decide", err is not None and "cannot decide" in err)
    print()

    print("API keys:")
    fp = hash_api_key("test-key-change-me")
    check("fingerprint format", fp.startswith("sha256:") and len(fp) == 7 + 64)
    check("fingerprint is stable", fp == hash_api_key("test-key-change-me"))
    who = authenticate_approver("test-key-change-me")
    check("valid key -> human:finance-lead", who.actor_id == "human:finance-lead")
    err = raises_value_error(authenticate_approver, "wrong-key")
    check("wrong key rejected", err is not None and "Invalid API key" in err)
    err = raises_value_error(authenticate_approver, "ops-key-change-me")
    check("suspended approver's key rejected", err is not None and "suspended" in err)
    print()

    print("Alternate allowlist path:")
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "approvers.json")
        with open(path, "w") as f:
            json.dump({"approvers": {"human:solo": {
                "role": "approver", "status": "active",
                "key_fingerprint": hash_api_key("solo-key"),
            }}}, f)
        os.environ["GUARDRAIL_APPROVERS_PATH"] = path
        try:
            reload_approvers()
            check("solo key authenticates", authenticate_approver("solo-key").actor_id == "human:solo")
            check("default approvers not loaded", "human:finance-lead" not in load_approvers())
        finally:
            del os.environ["GUARDRAIL_APPROVERS_PATH"]
            reload_approvers()
    check("default allowlist restored", "human:finance-lead" in load_approvers())

    print()
    print("=" * 60)
    total = passed + failed
    print(f"RESULTS: {passed}/{total} passed, {failed}/{total} failed")
    print("=" * 60)

    return failed == 0


def test_identity_suite():
    assert main()


if __name__ == "__main__":
    ok = main()
    sys.exit(0 if ok else 1)
