"""
Approval lifecycle

An ApprovalRequired decision can be escalated to an approver as an explicit
state machine:

    PENDING -> APPROVED
    PENDING -> REJECTED   (by an approver, or by system:timeout)

Transitions are driven by approver actions; nothing resolves on a timer
except the auto-decline, which callers trigger with ``expire_if_overdue``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4

from guardrail.liveness import SlotHold, as_utc, create_hold, ensure_hold_active
from guardrail.policy_engine import PolicyResult
from guardrail.reasons import Outcome

APPROVAL_TIMEOUT_SECONDS = int(
    os.environ.get("GUARDRAIL_APPROVAL_TIMEOUT_SECONDS", "86400")
)
MIN_REASON_LENGTH = 10
TIMEOUT_ACTOR = "system:timeout"


class InvalidTransitionError(ValueError):
    pass


class ApprovalState(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class ApprovalRequest:
    id: str
    actor_id: str
    context_id: str
    reason: str
    submitted_at: datetime
    reasons: tuple[dict, ...] = ()
    state: ApprovalState = ApprovalState.PENDING
    hold: Optional[SlotHold] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    note: str = ""

    @property
    def is_pending(self) -> bool:
        return self.state == ApprovalState.PENDING

    @property
    def deadline(self) -> datetime:
        return self.submitted_at + timedelta(seconds=APPROVAL_TIMEOUT_SECONDS)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "context_id": self.context_id,
            "reason": self.reason,
            "submitted_at": self.submitted_at.isoformat(),
            "reasons": list(self.reasons),
            "state": self.state.value,
            "hold": self.hold.to_dict() if self.hold else None,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "note": self.note,
        }


def submit_approval(
    result: PolicyResult,
    actor_id: str,
    context_id: str,
    reason: str,
    now: datetime,
    hold_resource_id: Optional[str] = None,
    hold_minutes: Optional[int] = None,
) -> ApprovalRequest:
    """
    Open a PENDING request for an ApprovalRequired decision.

    Raises ValueError when the decision is not ApprovalRequired or the
    requester's justification is shorter than ten characters.
    """
    if result.outcome != Outcome.APPROVAL_REQUIRED:
        raise ValueError(
            f"Only '{Outcome.APPROVAL_REQUIRED.value}' decisions can be submitted "
            f"for approval (got '{result.outcome.value}')"
        )
    reason = reason.strip()
    if len(reason) < MIN_REASON_LENGTH:
        raise ValueError(
            f"Approval reason must be at least {MIN_REASON_LENGTH} characters"
        )

    hold = None
    if hold_resource_id:
        hold = create_hold(hold_resource_id, now, hold_minutes)

    return ApprovalRequest(
        id=str(uuid4()),
        actor_id=actor_id,
        context_id=context_id,
        reason=reason,
        submitted_at=now,
        reasons=tuple(r.to_dict() for r in result.reasons),
        hold=hold,
    )


def _decide(
    request: ApprovalRequest,
    state: ApprovalState,
    approver_id: str,
    now: datetime,
    note: str,
) -> ApprovalRequest:
    if not request.is_pending:
        raise InvalidTransitionError(
            f"Approval {request.id} is {request.state.value}; only PENDING requests can be decided"
        )
    return replace(request, state=state, decided_by=approver_id, decided_at=now, note=note)


def approve(request: ApprovalRequest, approver_id: str, now: datetime,
            note: str = "") -> ApprovalRequest:
    return _decide(request, ApprovalState.APPROVED, approver_id, now, note)


def reject(request: ApprovalRequest, approver_id: str, now: datetime,
           note: str = "") -> ApprovalRequest:
    return _decide(request, ApprovalState.REJECTED, approver_id, now, note)


def expire_if_overdue(request: ApprovalRequest, now: datetime) -> ApprovalRequest:
    """Auto-decline a PENDING request past its deadline. Otherwise unchanged."""
    if request.is_pending and as_utc(now) > as_utc(request.deadline):
        return reject(request, TIMEOUT_ACTOR, now, "Approval timed out -- auto-declined")
    return request


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------

class FinalizeStatus(str, Enum):
    PROCEED = "PROCEED"
    NEEDS_APPROVAL = "NEEDS_APPROVAL"
    REFUSED = "REFUSED"


@dataclass(frozen=True)
class FinalizeDecision:
    status: FinalizeStatus
    message: str
    notes: list[str] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return self.status == FinalizeStatus.PROCEED


def check_finalize(
    result: PolicyResult,
    now: datetime,
    approval: Optional[ApprovalRequest] = None,
    hold: Optional[SlotHold] = None,
) -> FinalizeDecision:
    """
    Last check before committing an action.

    The hold (explicit, or the one on the approval) is checked first and
    raises HoldExpiredError when it has lapsed.
    """
    hold = hold or (approval.hold if approval else None)
    if hold is not None:
        ensure_hold_active(hold, now)

    if result.outcome == Outcome.BLOCKED:
        return FinalizeDecision(
            FinalizeStatus.REFUSED,
            "Blocked by policy. Change the request or pay personally.",
        )

    if result.outcome == Outcome.ALLOWED:
        return FinalizeDecision(FinalizeStatus.PROCEED, "Within policy.")

    if approval is not None:
        approval = expire_if_overdue(approval, now)
    if approval is None or approval.is_pending:
        return FinalizeDecision(
            FinalizeStatus.NEEDS_APPROVAL,
            "Approval required before this request can be finalized.",
        )
    if approval.state == ApprovalState.REJECTED:
        return FinalizeDecision(
            FinalizeStatus.REFUSED,
            f"Approval was rejected by {approval.decided_by}.",
            [approval.note] if approval.note else [],
        )
    return FinalizeDecision(
        FinalizeStatus.PROCEED,
        f"Approved by {approval.decided_by}.",
        [approval.note] if approval.note else [],
    )
