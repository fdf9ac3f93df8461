"""
Guardrail SDK — Data Models
"""

from __future__ import annotations

from pydantic import BaseModel


class DecisionResult(BaseModel):
    """Result of a POST /evaluate call."""
    outcome: str            # Allowed | Approval required | Blocked
    reasons: list[dict] = []
    alternatives: list[dict] = []
    coach: list[dict] = []
    program_availability: str | None = None
    policy_event_id: str | None = None
    raw: dict               # full response body


class ApprovalResult(BaseModel):
    """Result of a submit/approve/reject call."""
    success: bool
    approval_id: str | None = None
    state: str | None = None
    raw: dict               # full response body


class FinalizeResult(BaseModel):
    """Result of POST /approvals/{id}/finalize."""
    status: str             # PROCEED | NEEDS_APPROVAL | REFUSED | RESELECT_SLOT
    status_code: int
    raw: dict
