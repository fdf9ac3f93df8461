"""
Approver identities

Allowlist of people who may decide approval requests, and Bearer API-key
authentication against it. Keys are never stored; only their
``sha256:<hex>`` fingerprints are.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

APPROVER_ROLE = "approver"


@dataclass
class Approver:
    actor_id: str
    role: str
    status: str
    key_fingerprint: Optional[str] = None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "approvers.json")
_cache: dict[str, Approver] | None = None


def _approvers_path() -> str:
    return os.environ.get("GUARDRAIL_APPROVERS_PATH", _DEFAULT_PATH)


def load_approvers() -> dict[str, Approver]:
    """Load the approver allowlist from approvers.json."""
    global _cache
    if _cache is not None:
        return _cache
    with open(_approvers_path(), "r") as f:
        data = json.load(f)
    result: dict[str, Approver] = {}
    for actor_id, info in data["approvers"].items():
        result[actor_id] = Approver(
            actor_id=actor_id,
            role=info["role"],
            status=info["status"],
            key_fingerprint=info.get("key_fingerprint"),
        )
    _cache = result
    return result


def reload_approvers() -> dict[str, Approver]:
    """Force reload from disk."""
    global _cache
    _cache = None
    return load_approvers()


def validate_approver(actor_id: str) -> Approver:
    """Raises ValueError unless actor_id is an active approver."""
    approvers = load_approvers()
    if actor_id not in approvers:
        raise ValueError(f"Unknown approver: {actor_id}")
    approver = approvers[actor_id]
    if approver.status != "active":
        raise ValueError(f"Approver {actor_id} is {approver.status}")
    if approver.role != APPROVER_ROLE:
        raise ValueError(f"{actor_id} has role '{approver.role}' and cannot decide approvals")
    return approver


# ---------------------------------------------------------------------------
# API-key authentication
# ---------------------------------------------------------------------------

def hash_api_key(raw_key: str) -> str:
    """Return ``sha256:<hex>`` fingerprint of a raw API key."""
    digest = hashlib.sha256(raw_key.encode()).hexdigest()
    return f"sha256:{digest}"


def authenticate_approver(bearer_token: str) -> Approver:
    """Resolve a Bearer token to an active approver.

    Compares the token's fingerprint (timing-safe) against every keyed
    entry. Raises ``ValueError`` when nothing matches or the match is not
    allowed to decide.
    """
    token_fp = hash_api_key(bearer_token)

    for approver in load_approvers().values():
        if approver.key_fingerprint is None:
            continue
        if hmac.compare_digest(token_fp, approver.key_fingerprint):
            if approver.status != "active":
                raise ValueError(f"Approver {approver.actor_id} is {approver.status}")
            if approver.role != APPROVER_ROLE:
                raise ValueError(f"{approver.actor_id} cannot decide approvals")
            return approver

    raise ValueError("Invalid API key: no matching approver found")
