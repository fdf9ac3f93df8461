"""
Deterministic Policy Decision Engine

Evaluates an attempted action (a booking, a purchase, a transfer) against a
declarative rule table and returns an auditable decision:

    context -> reasons -> outcome -> alternatives

The engine holds no state. The same context and configuration always yield
the same outcome and reasons. Finalized decisions can be handed to an
Audit Spine writer through ``PolicyEngine``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

from guardrail.alternatives import Alternative, CoachTip, dedupe_alternatives, dedupe_coach
from guardrail.audit import build_record
from guardrail.reasons import (
    Outcome,
    Reason,
    ReasonCode,
    Severity,
    resolve_outcome,
    within_policy,
)
from guardrail.windows import ALL_DAYS, TimeWindow, covers, parse_hhmm

# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class FundingMethod(str, Enum):
    PROGRAM = "Program"
    PERSONAL_WALLET = "Personal wallet"
    CARD = "Card"
    MOBILE_MONEY = "Mobile money"
    CASH = "Cash"


class ProgramStatus(str, Enum):
    ELIGIBLE = "Eligible"
    NOT_LINKED = "Not linked"
    NOT_ELIGIBLE = "Not eligible"
    DEPOSIT_DEPLETED = "Deposit depleted"
    CREDIT_LIMIT_EXCEEDED = "Credit limit exceeded"
    BILLING_DELINQUENCY = "Billing delinquency"


class RecipientTier(str, Enum):
    PREFERRED = "Preferred"
    ALLOWLISTED = "Allowlisted"
    UNAPPROVED = "Unapproved"
    DENYLISTED = "Denylisted"


APPROVED_TIERS = {RecipientTier.PREFERRED, RecipientTier.ALLOWLISTED}


class Availability(str, Enum):
    AVAILABLE = "Available"
    REQUIRES_APPROVAL = "Requires approval"
    NOT_AVAILABLE = "Not available"


@dataclass(frozen=True)
class Recipient:
    id: str
    name: str
    tier: RecipientTier

    @property
    def is_approved(self) -> bool:
        return self.tier in APPROVED_TIERS

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "tier": self.tier.value}


@dataclass(frozen=True)
class PolicyContext:
    """
    The facts evaluated for one attempted action.

    Built fresh by the caller on every edit and never mutated. Amounts are
    non-negative integers in a single currency.
    """
    funding_method: FundingMethod
    program_status: ProgramStatus = ProgramStatus.ELIGIBLE
    grace_active: bool = False
    recipient: Optional[Recipient] = None
    category: str = ""
    total: int = 0
    missing_fields: tuple[str, ...] = ()
    slot: Optional[TimeWindow] = None
    geo_allowed: bool = True
    available_slots: tuple[TimeWindow, ...] = ()
    alternate_recipients: tuple[Recipient, ...] = ()
    actor_id: str = "unknown"
    context_id: str = ""

    @property
    def is_program_governed(self) -> bool:
        return self.funding_method == FundingMethod.PROGRAM

    @property
    def program_blocked(self) -> bool:
        if self.program_status in BLOCKING_STATUSES:
            return True
        return self.program_status == ProgramStatus.BILLING_DELINQUENCY and not self.grace_active

    def with_patch(self, patch: dict[str, Any]) -> PolicyContext:
        """
        Return a new context with an Alternative's patch applied.

        ``recipient_id`` and ``slot_id`` are resolved against the current
        value and the caller-supplied alternates. Unknown keys or ids raise
        ValueError.
        """
        changes: dict[str, Any] = {}
        for key, value in patch.items():
            if key == "funding_method":
                changes[key] = FundingMethod(value)
            elif key == "program_status":
                changes[key] = ProgramStatus(value)
            elif key == "recipient_id":
                changes["recipient"] = self._find_recipient(value)
            elif key == "slot_id":
                changes["slot"] = self._find_slot(value)
            elif key == "missing_fields":
                changes[key] = tuple(value)
            elif key in ("total", "grace_active", "geo_allowed", "category"):
                changes[key] = value
            else:
                raise ValueError(f"Unsupported patch key: {key}")
        return replace(self, **changes)

    def _find_recipient(self, recipient_id: str) -> Recipient:
        candidates = list(self.alternate_recipients)
        if self.recipient is not None:
            candidates.insert(0, self.recipient)
        for candidate in candidates:
            if candidate.id == recipient_id:
                return candidate
        raise ValueError(f"Unknown recipient: {recipient_id}")

    def _find_slot(self, slot_id: str) -> TimeWindow:
        candidates = list(self.available_slots)
        if self.slot is not None:
            candidates.insert(0, self.slot)
        for candidate in candidates:
            if candidate.id == slot_id:
                return candidate
        raise ValueError(f"Unknown slot: {slot_id}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "funding_method": self.funding_method.value,
            "program_status": self.program_status.value,
            "grace_active": self.grace_active,
            "recipient": self.recipient.to_dict() if self.recipient else None,
            "category": self.category,
            "total": self.total,
            "missing_fields": list(self.missing_fields),
            "slot": self.slot.to_dict() if self.slot else None,
            "geo_allowed": self.geo_allowed,
            "available_slots": [s.to_dict() for s in self.available_slots],
            "alternate_recipients": [r.to_dict() for r in self.alternate_recipients],
            "actor_id": self.actor_id,
            "context_id": self.context_id,
        }


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def _policy_hours_from_env() -> TimeWindow:
    raw = os.environ.get("GUARDRAIL_POLICY_HOURS", "06:00-22:00")
    start, _, end = raw.partition("-")
    return TimeWindow(
        id="policy-hours",
        days=ALL_DAYS,
        start_minute=parse_hhmm(start),
        end_minute=parse_hhmm(end),
        name="Policy hours",
    )


DEFAULT_POLICY_HOURS = TimeWindow(
    id="policy-hours",
    days=ALL_DAYS,
    start_minute=6 * 60,
    end_minute=22 * 60,
    name="Policy hours",
)


@dataclass(frozen=True)
class PolicyConfig:
    """Thresholds and toggles for the built-in rule tables."""
    approval_threshold: int = 300_000
    hard_limit: int = 2_500_000
    unapproved_approval_threshold: int = 150_000
    unapproved_block_threshold: int = 600_000
    policy_hours: TimeWindow = DEFAULT_POLICY_HOURS
    # category -> name of the flow that should handle it instead
    rerouted_categories: dict[str, str] = field(
        default_factory=lambda: {"Delivery/Courier": "Delivery checkout"}
    )

    @classmethod
    def from_env(cls) -> PolicyConfig:
        return cls(
            approval_threshold=int(os.environ.get("GUARDRAIL_APPROVAL_THRESHOLD", "300000")),
            hard_limit=int(os.environ.get("GUARDRAIL_HARD_LIMIT", "2500000")),
            unapproved_approval_threshold=int(
                os.environ.get("GUARDRAIL_UNAPPROVED_APPROVAL_THRESHOLD", "150000")
            ),
            unapproved_block_threshold=int(
                os.environ.get("GUARDRAIL_UNAPPROVED_BLOCK_THRESHOLD", "600000")
            ),
            policy_hours=_policy_hours_from_env(),
        )


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

Predicate = Callable[[PolicyContext, PolicyConfig], bool]
DetailText = Union[str, Callable[[PolicyContext, PolicyConfig], str]]


@dataclass(frozen=True)
class Rule:
    name: str
    code: ReasonCode
    severity: Severity
    title: str
    when: Predicate
    detail: DetailText
    coach: Optional[CoachTip] = None

    def apply(self, context: PolicyContext, config: PolicyConfig) -> Optional[Reason]:
        if not self.when(context, config):
            return None
        text = self.detail(context, config) if callable(self.detail) else self.detail
        return Reason(code=self.code, title=self.title, detail=text, severity=self.severity)


@dataclass(frozen=True)
class RuleSet:
    name: str
    rules: tuple[Rule, ...]
    ok_detail: str = "Request is within recipient, time, location, and budget rules."


BLOCKING_STATUSES = {
    ProgramStatus.NOT_LINKED,
    ProgramStatus.NOT_ELIGIBLE,
    ProgramStatus.DEPOSIT_DEPLETED,
    ProgramStatus.CREDIT_LIMIT_EXCEEDED,
}


def _status_is(status: ProgramStatus) -> Predicate:
    return lambda ctx, cfg: ctx.program_status == status


def _tier_is(tier: RecipientTier) -> Predicate:
    return lambda ctx, cfg: ctx.recipient is not None and ctx.recipient.tier == tier


def _slot_outside_hours(ctx: PolicyContext, cfg: PolicyConfig) -> bool:
    return ctx.slot is not None and not covers(cfg.policy_hours, ctx.slot)


COACH_PERSONAL = CoachTip(
    "coach-corp", "Use program funding for audit-ready receipts",
    "Program receipts include purpose, cost center, and booking metadata.",
)
COACH_GRACE = CoachTip(
    "coach-grace", "Use program funding while grace is active",
    "Grace windows can end when billing agreements require enforcement.",
)
COACH_FIELDS = CoachTip(
    "coach-fields", "Add purpose and cost center up front",
    "Missing allocation fields cause rework in approvals.",
)
COACH_RECIPIENT = CoachTip(
    "coach-vendor", "Prefer approved recipients",
    "Approved or preferred recipients reduce approval friction.",
)
COACH_CATEGORY = CoachTip(
    "coach-category", "Use the dedicated flow for this category",
    "Rerouted categories carry their own checks and receipts.",
)
COACH_LARGE_TOTAL = CoachTip(
    "coach-rfq", "Use a request for quotation for high-value purchases",
    "Request quotes, compare offers, and convert the winner to a purchase order.",
)


PROGRAM_RULES = (
    Rule(
        "program.not_linked", ReasonCode.PROGRAM, Severity.CRITICAL,
        "Not linked to an organization",
        _status_is(ProgramStatus.NOT_LINKED),
        "Program funding is only available when you are linked to an organization.",
    ),
    Rule(
        "program.not_eligible", ReasonCode.PROGRAM, Severity.CRITICAL,
        "Not eligible under policy",
        _status_is(ProgramStatus.NOT_ELIGIBLE),
        "Your role or group is not eligible for program funding here.",
    ),
    Rule(
        "program.deposit_depleted", ReasonCode.PROGRAM, Severity.CRITICAL,
        "Deposit depleted",
        _status_is(ProgramStatus.DEPOSIT_DEPLETED),
        "Prepaid deposit is depleted. Program funding stops until top-up.",
    ),
    Rule(
        "program.credit_limit", ReasonCode.PROGRAM, Severity.CRITICAL,
        "Credit limit exceeded",
        _status_is(ProgramStatus.CREDIT_LIMIT_EXCEEDED),
        "Program credit limit is exceeded. Funding is paused until repayment or adjustment.",
    ),
    Rule(
        "program.delinquent", ReasonCode.PROGRAM, Severity.CRITICAL,
        "Billing delinquency",
        lambda ctx, cfg: ctx.program_status == ProgramStatus.BILLING_DELINQUENCY and not ctx.grace_active,
        "Program funding is suspended due to delinquency. Ask an admin to resolve invoices.",
    ),
    Rule(
        "program.grace", ReasonCode.PROGRAM, Severity.WARNING,
        "Grace window active",
        lambda ctx, cfg: ctx.program_status == ProgramStatus.BILLING_DELINQUENCY and ctx.grace_active,
        "Billing is past due, but a grace window is active.",
        coach=COACH_GRACE,
    ),
)

FIELD_RULES = (
    Rule(
        "fields.missing", ReasonCode.FIELDS, Severity.CRITICAL,
        "Missing required details",
        lambda ctx, cfg: bool(ctx.missing_fields),
        lambda ctx, cfg: f"Complete required fields: {', '.join(ctx.missing_fields)}.",
        coach=COACH_FIELDS,
    ),
)

LOCATION_RULES = (
    Rule(
        "location.outside_region", ReasonCode.LOCATION, Severity.CRITICAL,
        "Outside allowed region",
        lambda ctx, cfg: not ctx.geo_allowed,
        "This location is outside the allowed service or spend region.",
    ),
)

SCHEDULE_REQUIRED_RULE = Rule(
    "time.no_slot", ReasonCode.TIME, Severity.CRITICAL,
    "Schedule required",
    lambda ctx, cfg: ctx.slot is None,
    "Select a time slot.",
)

OUTSIDE_HOURS_RULE = Rule(
    "time.outside_hours", ReasonCode.TIME, Severity.WARNING,
    "Outside policy hours",
    _slot_outside_hours,
    lambda ctx, cfg: f"The selected slot is outside policy hours ({cfg.policy_hours.label}).",
)

RECIPIENT_RULES = (
    Rule(
        "recipient.denylisted", ReasonCode.VENDOR, Severity.CRITICAL,
        "Recipient blocked",
        _tier_is(RecipientTier.DENYLISTED),
        "This recipient is denylisted for program-funded requests.",
        coach=COACH_RECIPIENT,
    ),
    Rule(
        "recipient.unapproved_block", ReasonCode.VENDOR, Severity.CRITICAL,
        "High value from unapproved recipient",
        lambda ctx, cfg: (
            _tier_is(RecipientTier.UNAPPROVED)(ctx, cfg)
            and ctx.total > cfg.unapproved_block_threshold
        ),
        lambda ctx, cfg: (
            f"Recipient is unapproved and the total exceeds {cfg.unapproved_block_threshold}."
        ),
        coach=COACH_RECIPIENT,
    ),
    Rule(
        "recipient.unapproved_approval", ReasonCode.VENDOR, Severity.WARNING,
        "Approval required for unapproved recipient",
        lambda ctx, cfg: (
            _tier_is(RecipientTier.UNAPPROVED)(ctx, cfg)
            and cfg.unapproved_approval_threshold < ctx.total <= cfg.unapproved_block_threshold
        ),
        lambda ctx, cfg: (
            f"Recipient is unapproved. Approval required above {cfg.unapproved_approval_threshold}."
        ),
        coach=COACH_RECIPIENT,
    ),
)

CATEGORY_RULES = (
    Rule(
        "category.rerouted", ReasonCode.CATEGORY, Severity.WARNING,
        "Category handled in a different flow",
        lambda ctx, cfg: ctx.category in cfg.rerouted_categories,
        lambda ctx, cfg: (
            f"{ctx.category} should be handled in {cfg.rerouted_categories[ctx.category]}."
        ),
        coach=COACH_CATEGORY,
    ),
)

AMOUNT_RULES = (
    Rule(
        "amount.hard_limit", ReasonCode.AMOUNT, Severity.CRITICAL,
        "Amount exceeds hard limit",
        lambda ctx, cfg: ctx.total > cfg.hard_limit,
        lambda ctx, cfg: f"Total exceeds hard limit ({cfg.hard_limit}).",
        coach=COACH_LARGE_TOTAL,
    ),
    Rule(
        "amount.approval", ReasonCode.AMOUNT, Severity.WARNING,
        "Approval required",
        lambda ctx, cfg: cfg.approval_threshold < ctx.total <= cfg.hard_limit,
        lambda ctx, cfg: f"Total exceeds approval threshold ({cfg.approval_threshold}).",
    ),
)

# Order matters only for the order of reasons, never for the outcome.
SERVICE_BOOKING_RULES = RuleSet(
    name="service_booking",
    rules=(
        PROGRAM_RULES
        + FIELD_RULES
        + LOCATION_RULES
        + (SCHEDULE_REQUIRED_RULE, OUTSIDE_HOURS_RULE)
        + RECIPIENT_RULES
        + CATEGORY_RULES
        + AMOUNT_RULES
    ),
    ok_detail="Booking is within recipient, time, location, and budget rules.",
)

# Purchases and transfers carry no booking slot; a time window is only
# checked when one is supplied.
SPEND_RULES = RuleSet(
    name="spend",
    rules=(
        PROGRAM_RULES
        + FIELD_RULES
        + LOCATION_RULES
        + (OUTSIDE_HOURS_RULE,)
        + RECIPIENT_RULES
        + CATEGORY_RULES
        + AMOUNT_RULES
    ),
    ok_detail="Spend is within recipient, time, location, and budget rules.",
)

RULE_TABLES: dict[str, RuleSet] = {
    SERVICE_BOOKING_RULES.name: SERVICE_BOOKING_RULES,
    SPEND_RULES.name: SPEND_RULES,
}


# ---------------------------------------------------------------------------
# Alternative generation
# ---------------------------------------------------------------------------

Reevaluate = Callable[[dict[str, Any]], Outcome]

_OUTCOME_RANK = {
    Outcome.ALLOWED: 0,
    Outcome.APPROVAL_REQUIRED: 1,
    Outcome.BLOCKED: 2,
}


def _compliant_slots(context: PolicyContext, config: PolicyConfig) -> list[TimeWindow]:
    current = context.slot.id if context.slot else None
    return [
        s for s in context.available_slots
        if s.id != current and covers(config.policy_hours, s)
    ]


def _candidate_alternatives(
    context: PolicyContext,
    config: PolicyConfig,
    reasons: list[Reason],
    reevaluate: Reevaluate,
) -> list[Alternative]:
    """Alternatives that answer a specific reason, one group per reason code."""
    codes = {r.code for r in reasons if r.severity != Severity.INFO}
    candidates: list[Alternative] = []

    def offer(alt_id: str, title: str, description: str, patch: dict[str, Any]):
        candidates.append(Alternative(
            id=alt_id,
            title=title,
            description=description,
            expected_outcome=reevaluate(patch),
            context_patch=patch,
        ))

    if ReasonCode.LOCATION in codes:
        offer(
            "alt-region",
            "Use approved region",
            "Switch to a location inside the allowed service or spend region.",
            {"geo_allowed": True},
        )

    if ReasonCode.TIME in codes:
        for slot in _compliant_slots(context, config)[:2]:
            offer(
                f"alt-slot-{slot.id}",
                "Choose a policy-compliant slot",
                f"Pick {slot.label} within policy hours ({config.policy_hours.label}).",
                {"slot_id": slot.id},
            )

    if ReasonCode.VENDOR in codes:
        approved = [r for r in context.alternate_recipients if r.is_approved]
        for recipient in approved[:2]:
            offer(
                f"alt-recipient-{recipient.id}",
                f"Switch to {recipient.name}",
                f"{recipient.name} is {recipient.tier.value.lower()} and avoids recipient checks.",
                {"recipient_id": recipient.id},
            )

    if ReasonCode.FIELDS in codes:
        offer(
            "alt-fields",
            "Complete required details",
            f"Fill in: {', '.join(context.missing_fields)}.",
            {"missing_fields": []},
        )

    if ReasonCode.AMOUNT in codes and context.total > config.approval_threshold:
        offer(
            "alt-reduce-total",
            "Reduce total to the approval threshold",
            f"Lower the total to {config.approval_threshold} to avoid amount checks.",
            {"total": config.approval_threshold},
        )

    return candidates


def propose_alternatives(
    context: PolicyContext,
    config: PolicyConfig,
    outcome: Outcome,
    reasons: list[Reason],
    reevaluate: Reevaluate,
) -> list[Alternative]:
    """
    Suggest minimal context changes, each tagged with the outcome a
    re-evaluation of the patched context actually produces.

    Program funding, outcome not Allowed: paying personally is offered first
    when it improves the outcome. Every alternative that answers a reason
    present in the result follows, even when it clears only part of the
    problem; its expected outcome says what it achieves alone. Personal
    funding: the switch back to program funding is offered for business
    requests.
    """
    if not context.is_program_governed:
        patch = {"funding_method": FundingMethod.PROGRAM.value}
        return [Alternative(
            id="alt-use-program",
            title="Use program funding instead",
            description="Use program funding for business requests when eligible.",
            expected_outcome=reevaluate(patch),
            context_patch=patch,
        )]

    if outcome == Outcome.ALLOWED:
        return []

    suggestions: list[Alternative] = []
    patch = {"funding_method": FundingMethod.PERSONAL_WALLET.value}
    pay_personally = Alternative(
        id="alt-pay-personal",
        title="Pay personally",
        description="Proceed immediately with personal payment.",
        expected_outcome=reevaluate(patch),
        context_patch=patch,
    )
    if _OUTCOME_RANK[pay_personally.expected_outcome] < _OUTCOME_RANK[outcome]:
        suggestions.append(pay_personally)

    suggestions += _candidate_alternatives(context, config, reasons, reevaluate)
    return dedupe_alternatives(suggestions)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

@dataclass
class PolicyResult:
    outcome: Outcome
    reasons: list[Reason] = field(default_factory=list)
    alternatives: list[Alternative] = field(default_factory=list)
    coach: list[CoachTip] = field(default_factory=list)
    rule_set: str = SERVICE_BOOKING_RULES.name

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.ALLOWED

    def summary(self) -> str:
        lines = [f"Outcome: {self.outcome.value}"]
        lines.append("Reasons:")
        for r in self.reasons:
            lines.append(f"  [{r.code.value}/{r.severity.value}] {r.title}: {r.detail}")
        if self.alternatives:
            lines.append("Alternatives:")
            for a in self.alternatives:
                lines.append(f"  - {a.title} -> {a.expected_outcome.value}")
        if self.coach:
            lines.append("Coach:")
            for tip in self.coach:
                lines.append(f"  * {tip.title}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reasons": [r.to_dict() for r in self.reasons],
            "alternatives": [a.to_dict() for a in self.alternatives],
            "coach": [tip.to_dict() for tip in self.coach],
            "rule_set": self.rule_set,
        }


PERSONAL_PAYMENT_REASON = Reason(
    code=ReasonCode.OK,
    title="Personal payment selected",
    detail="Program policy checks do not apply to personal payments.",
    severity=Severity.INFO,
)


def evaluate(
    context: PolicyContext,
    config: PolicyConfig | None = None,
    rules: RuleSet = SERVICE_BOOKING_RULES,
    with_alternatives: bool = True,
) -> PolicyResult:
    """
    Evaluate one context snapshot against one rule table.

    Personal (non-program) funding bypasses program policy entirely and is
    always Allowed. Program funding runs every rule and accumulates reasons;
    an empty result becomes a single "Within policy" Info reason. Rules that
    fire contribute their coach tip, once per tip id.
    """
    config = config or PolicyConfig()

    def reevaluate(patch: dict[str, Any]) -> Outcome:
        patched = context.with_patch(patch)
        return evaluate(patched, config, rules, with_alternatives=False).outcome

    coach: list[CoachTip] = []
    if not context.is_program_governed:
        reasons = [PERSONAL_PAYMENT_REASON]
        outcome = Outcome.ALLOWED
        coach.append(COACH_PERSONAL)
    else:
        reasons = []
        for rule in rules.rules:
            reason = rule.apply(context, config)
            if reason is not None:
                reasons.append(reason)
                if rule.coach is not None:
                    coach.append(rule.coach)
        if not reasons:
            reasons.append(within_policy(rules.ok_detail))
        outcome = resolve_outcome(reasons)

    alternatives: list[Alternative] = []
    if with_alternatives:
        alternatives = propose_alternatives(context, config, outcome, reasons, reevaluate)

    return PolicyResult(
        outcome=outcome,
        reasons=reasons,
        alternatives=alternatives,
        coach=dedupe_coach(coach),
        rule_set=rules.name,
    )


def program_availability(context: PolicyContext, outcome: Outcome) -> Availability:
    """How program funding should be presented for the current context."""
    if not context.is_program_governed:
        return Availability.AVAILABLE
    if context.program_blocked or outcome == Outcome.BLOCKED:
        return Availability.NOT_AVAILABLE
    if outcome == Outcome.APPROVAL_REQUIRED:
        return Availability.REQUIRES_APPROVAL
    return Availability.AVAILABLE


# ---------------------------------------------------------------------------
# PolicyEngine
# ---------------------------------------------------------------------------

class PolicyEngine:
    """
    Evaluates contexts against a fixed rule table and configuration, and
    logs each finalized decision to the Audit Spine when one is attached.
    """

    def __init__(self, config: PolicyConfig | None = None,
                 rules: RuleSet = SERVICE_BOOKING_RULES,
                 audit=None):
        self.config = config or PolicyConfig()
        self.rules = rules
        self.audit = audit

    def evaluate(self, context: PolicyContext,
                 now: datetime | None = None) -> tuple[PolicyResult, str | None]:
        """
        Evaluate and, if an audit writer is attached, log the decision.

        Returns:
            (PolicyResult, event_id); event_id is None without an audit writer.
        """
        result = evaluate(context, self.config, self.rules)
        if self.audit is None:
            return result, None

        record = build_record(
            kind="POLICY_EVAL",
            actor_id=context.actor_id,
            subject_id=context.context_id,
            outcome=result.outcome.value,
            reasons=[r.to_dict() for r in result.reasons],
            timestamp=now or datetime.now(timezone.utc),
            detail={
                "rule_set": result.rule_set,
                "funding_method": context.funding_method.value,
                "total": context.total,
                "alternatives": [a.title for a in result.alternatives],
                "coach": [t.id for t in result.coach],
            },
        )
        event_id = self.audit.log_event(
            actor_id=context.actor_id,
            action_type=f"POLICY_EVAL:{self.rules.name.upper()}",
            intent_payload=record.model_dump(),
        )
        return result, event_id
