"""
Guardrail Gateway

In-process HTTP adapter that exposes the decision core to presentation
screens: checkout, rule editors, approval inbox, account security.

The core stays pure; this layer owns the only mutable state (approval
requests in process memory) and hands every finalized decision to the
Audit Spine.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from guardrail.approvals import (
    ApprovalRequest,
    FinalizeStatus,
    InvalidTransitionError,
    approve,
    check_finalize,
    expire_if_overdue,
    reject,
    submit_approval,
)
from guardrail.audit import AuditSpineManager, build_record, log_record
from guardrail.identity import authenticate_approver
from guardrail.liveness import HoldExpiredError
from guardrail.policy_engine import (
    RULE_TABLES,
    FundingMethod,
    PolicyConfig,
    PolicyContext,
    PolicyEngine,
    PolicyResult,
    ProgramStatus,
    Recipient,
    RecipientTier,
    program_availability,
)
from guardrail.reasons import Outcome
from guardrail.risk import (
    Location,
    LoginAttempt,
    StepUpPolicy,
    evaluate_risk,
    step_up_decision,
)
from guardrail.rule_conflicts import (
    AutoApproveRule,
    CoreApprovalRule,
    HoldMode,
    RequireMode,
    detect_conflicts,
)
from guardrail.trust import TrustedDevice
from guardrail.windows import TimeWindow, find_overlapping_pairs, conflicts_for, validate_window

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + shared services
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Guardrail Gateway",
    version="1.0.0",
)

_audit = AuditSpineManager()
_config = PolicyConfig.from_env()

# approval id -> (request, decision it was raised for). Finalized requests
# are dropped; the ledger keeps their history.
_approvals: dict[str, tuple[ApprovalRequest, PolicyResult]] = {}
MAX_TRACKED_APPROVALS = int(os.environ.get("GUARDRAIL_MAX_TRACKED_APPROVALS", "1000"))


def get_audit():
    return _audit


def get_clock() -> Callable[[], datetime]:
    return lambda: datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class WindowModel(BaseModel):
    id: str = ""
    name: str = ""
    days: list[str] = []
    start: str
    end: str

    def to_window(self) -> TimeWindow:
        return TimeWindow.from_hhmm(self.id, self.days, self.start, self.end, self.name)


class RecipientModel(BaseModel):
    id: str
    name: str
    tier: RecipientTier

    def to_recipient(self) -> Recipient:
        return Recipient(id=self.id, name=self.name, tier=self.tier)


class ContextModel(BaseModel):
    funding_method: FundingMethod
    program_status: ProgramStatus = ProgramStatus.ELIGIBLE
    grace_active: bool = False
    recipient: Optional[RecipientModel] = None
    category: str = ""
    total: int = Field(default=0, ge=0)
    missing_fields: list[str] = []
    slot: Optional[WindowModel] = None
    geo_allowed: bool = True
    available_slots: list[WindowModel] = []
    alternate_recipients: list[RecipientModel] = []
    actor_id: str = "unknown"
    context_id: str = ""

    def to_context(self) -> PolicyContext:
        return PolicyContext(
            funding_method=self.funding_method,
            program_status=self.program_status,
            grace_active=self.grace_active,
            recipient=self.recipient.to_recipient() if self.recipient else None,
            category=self.category,
            total=self.total,
            missing_fields=tuple(self.missing_fields),
            slot=self.slot.to_window() if self.slot else None,
            geo_allowed=self.geo_allowed,
            available_slots=tuple(s.to_window() for s in self.available_slots),
            alternate_recipients=tuple(r.to_recipient() for r in self.alternate_recipients),
            actor_id=self.actor_id,
            context_id=self.context_id,
        )


class EvaluateRequest(BaseModel):
    context: ContextModel
    rule_set: str = "service_booking"


class OverlapRequest(BaseModel):
    windows: list[WindowModel]


class ValidateWindowRequest(BaseModel):
    draft: WindowModel
    existing: list[WindowModel] = []
    editing_id: Optional[str] = None


class AutoApproveRuleModel(BaseModel):
    id: str
    name: str
    max_amount: int = Field(ge=0)
    recipients: list[str] = []
    categories: list[str] = []
    window: Optional[WindowModel] = None
    enabled: bool = True


class CoreRuleModel(BaseModel):
    mode: RequireMode = RequireMode.ABOVE_AMOUNT
    amount_threshold: int = Field(default=0, ge=0)
    require_recipients: list[str] = []
    require_categories: list[str] = []
    require_outside_hours: bool = False
    allowed_hours: Optional[WindowModel] = None
    hold_mode: HoldMode = HoldMode.HOLD
    auto_decline: bool = False


class RuleConflictRequest(BaseModel):
    auto_rules: list[AutoApproveRuleModel]
    core: CoreRuleModel


class AttemptModel(BaseModel):
    actor_id: str
    device_id: str
    city: str
    country: str
    ip: str = ""
    at: datetime

    def to_attempt(self) -> LoginAttempt:
        return LoginAttempt(
            actor_id=self.actor_id,
            device_id=self.device_id,
            location=Location(city=self.city, country=self.country, ip=self.ip),
            at=self.at,
        )


class DeviceModel(BaseModel):
    id: str
    label: str = ""
    trusted: bool = False
    trust_expires_at: Optional[datetime] = None


class StepUpPolicyModel(BaseModel):
    step_up_enabled: bool = True
    allow_risk_step_up: bool = True
    allow_geo_step_up: bool = True
    allow_new_device_step_up: bool = True
    allow_impossible_travel_step_up: bool = True
    allow_trusted_devices: bool = True


class RiskRequest(BaseModel):
    attempt: AttemptModel
    last_success: Optional[AttemptModel] = None
    known_device_ids: list[str] = []
    device: Optional[DeviceModel] = None
    policy: StepUpPolicyModel = StepUpPolicyModel()


class SubmitApprovalRequest(BaseModel):
    context: ContextModel
    reason: str
    rule_set: str = "service_booking"
    hold_minutes: Optional[int] = None


class DecisionRequest(BaseModel):
    note: str = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_OUTCOME_STATUS = {
    Outcome.ALLOWED: 200,
    Outcome.APPROVAL_REQUIRED: 202,
    Outcome.BLOCKED: 403,
}

_FINALIZE_STATUS = {
    FinalizeStatus.PROCEED: 200,
    FinalizeStatus.NEEDS_APPROVAL: 202,
    FinalizeStatus.REFUSED: 403,
}


def _authenticate_approver_request(authorization: str):
    """Extract Bearer token and resolve it to an approver.

    Raises HTTPException on auth failure.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token.")

    token = authorization[len("Bearer "):]
    try:
        return authenticate_approver(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc))


def _rule_set(name: str):
    if name not in RULE_TABLES:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown rule set '{name}'. Expected one of: {sorted(RULE_TABLES)}",
        )
    return RULE_TABLES[name]


def _build(fn, *args):
    """Convert caller-contract ValueErrors (bad HH:MM, unknown day) to 422."""
    try:
        return fn(*args)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _remember(approval: ApprovalRequest, result: PolicyResult) -> None:
    """Track a new request; past the cap, drop decided requests first, then the oldest."""
    _approvals[approval.id] = (approval, result)
    overflow = len(_approvals) - MAX_TRACKED_APPROVALS
    if overflow <= 0:
        return
    decided = [aid for aid, (req, _) in _approvals.items() if not req.is_pending]
    pending = [aid for aid in _approvals if aid not in decided and aid != approval.id]
    for approval_id in (decided + pending)[:overflow]:
        del _approvals[approval_id]
        logger.warning("approval %s evicted from the in-memory store", approval_id)


def _lookup(approval_id: str, now: datetime) -> tuple[ApprovalRequest, PolicyResult]:
    if approval_id not in _approvals:
        raise HTTPException(status_code=404, detail=f"Approval {approval_id} not found.")
    request, result = _approvals[approval_id]
    current = expire_if_overdue(request, now)
    if current is not request:
        logger.info("approval %s auto-declined after timeout", approval_id)
        _approvals[approval_id] = (current, result)
    return current, result


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "operational", "service": "guardrail-gateway"}


@app.post("/evaluate")
def evaluate_context(
    request: EvaluateRequest,
    audit=Depends(get_audit),
    clock=Depends(get_clock),
):
    """
    Evaluate one context snapshot.

    Allowed -> 200, Approval required -> 202, Blocked -> 403. The body is
    the same in every case: outcome, reasons, alternatives, coach.
    """
    rules = _rule_set(request.rule_set)
    context = _build(request.context.to_context)
    engine = PolicyEngine(config=_config, rules=rules, audit=audit)
    result, event_id = engine.evaluate(context, now=clock())

    return JSONResponse(
        status_code=_OUTCOME_STATUS[result.outcome],
        content={
            **result.to_dict(),
            "program_availability": program_availability(context, result.outcome).value,
            "policy_event_id": event_id,
        },
    )


@app.post("/windows/overlaps")
def window_overlaps(request: OverlapRequest):
    windows = [_build(w.to_window) for w in request.windows]
    report = find_overlapping_pairs(windows)
    return {
        "overlaps": report.overlaps,
        "conflicting_pairs": [
            {"a": p.a.to_dict(), "b": p.b.to_dict(), "description": p.describe()}
            for p in report.conflicting_pairs
        ],
    }


@app.post("/windows/validate")
def window_validate(request: ValidateWindowRequest):
    draft = _build(request.draft.to_window)
    existing = [_build(w.to_window) for w in request.existing]
    errors = validate_window(draft, existing, request.editing_id)
    return {
        "valid": not errors,
        "errors": errors,
        "conflicts_with": [w.id for w in conflicts_for(draft, existing, request.editing_id)],
    }


@app.post("/rules/conflicts")
def rule_conflicts(request: RuleConflictRequest):
    rules = [
        AutoApproveRule(
            id=r.id,
            name=r.name,
            max_amount=r.max_amount,
            recipients=tuple(r.recipients),
            categories=tuple(r.categories),
            window=_build(r.window.to_window) if r.window else None,
            enabled=r.enabled,
        )
        for r in request.auto_rules
    ]
    core_model = request.core
    core = CoreApprovalRule(
        mode=core_model.mode,
        amount_threshold=core_model.amount_threshold,
        require_recipients=tuple(core_model.require_recipients),
        require_categories=tuple(core_model.require_categories),
        require_outside_hours=core_model.require_outside_hours,
        allowed_hours=_build(core_model.allowed_hours.to_window) if core_model.allowed_hours else None,
        hold_mode=core_model.hold_mode,
        auto_decline=core_model.auto_decline,
    )
    report = detect_conflicts(rules, core)
    return {
        "blocks_save": report.blocks_save,
        "conflicts": [c.to_dict() for c in report.conflicts],
    }


@app.post("/risk/evaluate")
def risk_evaluate(request: RiskRequest):
    """Risk codes, level, and whether step-up is required for one attempt."""
    attempt = request.attempt.to_attempt()
    last = request.last_success.to_attempt() if request.last_success else None
    assessment = evaluate_risk(attempt, last, request.known_device_ids)

    device = None
    if request.device is not None:
        device = TrustedDevice(
            id=request.device.id,
            label=request.device.label,
            trusted=request.device.trusted,
            trust_expires_at=request.device.trust_expires_at,
        )
    policy = StepUpPolicy(**request.policy.model_dump())
    decision = step_up_decision(policy, assessment, device=device, now=attempt.at)
    return decision.to_dict()


@app.post("/approvals")
def submit(
    request: SubmitApprovalRequest,
    audit=Depends(get_audit),
    clock=Depends(get_clock),
):
    """
    Escalate an Approval-required decision to an approver.

    The context is re-evaluated here; only Approval-required outcomes are
    accepted. A selected slot is held while the request is pending.
    """
    now = clock()
    rules = _rule_set(request.rule_set)
    context = _build(request.context.to_context)
    result, _ = PolicyEngine(config=_config, rules=rules).evaluate(context, now=now)

    try:
        approval = submit_approval(
            result,
            actor_id=context.actor_id,
            context_id=context.context_id,
            reason=request.reason,
            now=now,
            hold_resource_id=context.slot.id if context.slot else None,
            hold_minutes=request.hold_minutes,
        )
    except ValueError as exc:
        return JSONResponse(
            status_code=422,
            content={"error": str(exc), "outcome": result.outcome.value},
        )

    _remember(approval, result)
    event_id = log_record(audit, build_record(
        kind="APPROVAL_SUBMITTED",
        actor_id=approval.actor_id,
        subject_id=approval.context_id,
        outcome=result.outcome.value,
        reasons=list(approval.reasons),
        timestamp=now,
        detail={"approval_id": approval.id, "reason": approval.reason,
                "hold": approval.hold.to_dict() if approval.hold else None},
    ))

    return JSONResponse(
        status_code=202,
        content={
            **approval.to_dict(),
            "audit_event_id": event_id,
            "message": "Request submitted for approval.",
        },
    )


@app.get("/approvals/{approval_id}")
def get_approval(approval_id: str, clock=Depends(get_clock)):
    approval, result = _lookup(approval_id, clock())
    return {**approval.to_dict(), "outcome": result.outcome.value}


def _decide(
    approval_id: str,
    body: Optional[DecisionRequest],
    authorization: str,
    audit,
    now: datetime,
    action,
) -> JSONResponse:
    approver = _authenticate_approver_request(authorization)
    approval, result = _lookup(approval_id, now)

    try:
        decided = action(approval, approver.actor_id, now, body.note if body else "")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    _approvals[approval_id] = (decided, result)
    event_id = log_record(audit, build_record(
        kind="APPROVAL_DECIDED",
        actor_id=approver.actor_id,
        subject_id=decided.context_id,
        outcome=decided.state.value,
        reasons=list(decided.reasons),
        timestamp=now,
        detail={"approval_id": decided.id, "requested_by": decided.actor_id,
                "note": decided.note},
    ))
    logger.info("approval %s %s by %s", approval_id, decided.state.value, approver.actor_id)

    return JSONResponse(
        status_code=200,
        content={**decided.to_dict(), "audit_event_id": event_id},
    )


@app.post("/approvals/{approval_id}/approve")
def approve_request(
    approval_id: str,
    body: Optional[DecisionRequest] = None,
    authorization: str = Header(...),
    audit=Depends(get_audit),
    clock=Depends(get_clock),
):
    return _decide(approval_id, body, authorization, audit, clock(), approve)


@app.post("/approvals/{approval_id}/reject")
def reject_request(
    approval_id: str,
    body: Optional[DecisionRequest] = None,
    authorization: str = Header(...),
    audit=Depends(get_audit),
    clock=Depends(get_clock),
):
    return _decide(approval_id, body, authorization, audit, clock(), reject)


@app.post("/approvals/{approval_id}/finalize")
def finalize(
    approval_id: str,
    audit=Depends(get_audit),
    clock=Depends(get_clock),
):
    """
    Final check before committing the request.

    Proceed -> 200, still pending -> 202, refused -> 403. An expired hold
    is 409 and the caller must go back to slot selection.
    """
    now = clock()
    approval, result = _lookup(approval_id, now)

    try:
        decision = check_finalize(result, now, approval=approval)
    except HoldExpiredError as exc:
        log_record(audit, build_record(
            kind="HOLD_EXPIRED",
            actor_id=approval.actor_id,
            subject_id=approval.context_id,
            outcome=result.outcome.value,
            timestamp=now,
            detail={"approval_id": approval.id, "resource_id": exc.resource_id,
                    "held_until": exc.held_until.isoformat()},
        ))
        return JSONResponse(
            status_code=409,
            content={
                "error": str(exc),
                "action": "reselect_slot",
                "resource_id": exc.resource_id,
            },
        )

    event_id = log_record(audit, build_record(
        kind="FINALIZED",
        actor_id=approval.actor_id,
        subject_id=approval.context_id,
        outcome=result.outcome.value,
        reasons=list(approval.reasons),
        timestamp=now,
        detail={"approval_id": approval.id, "status": decision.status.value,
                "notes": decision.notes},
    ))

    if decision.status != FinalizeStatus.NEEDS_APPROVAL:
        _approvals.pop(approval.id, None)
        logger.info("approval %s closed with %s", approval.id, decision.status.value)

    body: dict[str, Any] = {
        "approval_id": approval.id,
        "audit_event_id": event_id,
        "status": decision.status.value,
        "message": decision.message,
        "notes": decision.notes,
    }
    return JSONResponse(status_code=_FINALIZE_STATUS[decision.status], content=body)


# ---------------------------------------------------------------------------
# Audit reads
# ---------------------------------------------------------------------------

@app.get("/audit/events/{event_id}")
def audit_event(event_id: str, audit=Depends(get_audit)):
    event = audit.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Unknown audit event: {event_id}")
    return JSONResponse(content=jsonable_encoder(event))


@app.get("/audit/subjects/{subject_id}")
def audit_trail(subject_id: str, limit: int = 50, audit=Depends(get_audit)):
    """Recent records about one context or device, newest first."""
    return JSONResponse(content=jsonable_encoder({
        "subject_id": subject_id,
        "events": audit.events_for_subject(subject_id, limit=limit),
    }))
