#!/usr/bin/env python3
"""
Guardrail Approver Key Generator

Generates a new approver API key with a `grd_` prefix and prints:
  - The raw key (give to the approver, store securely)
  - The SHA-256 fingerprint (store in approvers.json)
  - A ready-to-paste JSON snippet for approvers.json

Usage:  python scripts/keygen.py [actor_id]
        actor_id defaults to "human:approver"
"""

from __future__ import annotations

import json
import os
import secrets
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from guardrail.identity import APPROVER_ROLE, hash_api_key


def generate_key() -> str:
    """Return a `grd_` prefixed key with 32 bytes of URL-safe randomness."""
    return "grd_" + secrets.token_urlsafe(32)


def main():
    actor_id = sys.argv[1] if len(sys.argv) > 1 else "human:approver"
    raw = generate_key()
    fp = hash_api_key(raw)

    print()
    print("=== Guardrail Approver Key ===")
    print()
    print(f"  Actor ID:    {actor_id}")
    print(f"  Raw Key:     {raw}")
    print(f"  Fingerprint: {fp}")
    print()
    print("--- Paste into guardrail/approvers.json under \"approvers\" ---")
    entry = {actor_id: {"role": APPROVER_ROLE, "status": "active", "key_fingerprint": fp}}
    print(json.dumps(entry, indent=2))
    print()


if __name__ == "__main__":
    main()
