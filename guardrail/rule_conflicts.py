"""
Approval-rule conflict detector

Flags auto-approve rules that would let through transactions the core
approval policy says need a human, invalid time windows, and settings that
cancel each other out. Findings carry a severity: any Warning should block
saving the rule set, Info is advisory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from guardrail.reasons import Severity
from guardrail.windows import ALL_DAYS, TimeWindow, find_overlapping_pairs, overlaps


class RequireMode(str, Enum):
    ALWAYS = "Always"
    ABOVE_AMOUNT = "Above amount"
    NEVER = "Never"


class HoldMode(str, Enum):
    INSTANT = "Instant"
    HOLD = "Hold"


@dataclass(frozen=True)
class AutoApproveRule:
    id: str
    name: str
    max_amount: int
    recipients: tuple[str, ...] = ()    # empty means any
    categories: tuple[str, ...] = ()    # empty means any
    window: Optional[TimeWindow] = None
    enabled: bool = True


@dataclass(frozen=True)
class CoreApprovalRule:
    mode: RequireMode = RequireMode.ABOVE_AMOUNT
    amount_threshold: int = 0
    require_recipients: tuple[str, ...] = ()
    require_categories: tuple[str, ...] = ()
    require_outside_hours: bool = False
    allowed_hours: Optional[TimeWindow] = None
    hold_mode: HoldMode = HoldMode.HOLD
    auto_decline: bool = False


@dataclass(frozen=True)
class RuleConflict:
    id: str
    title: str
    detail: str
    severity: Severity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "detail": self.detail,
            "severity": self.severity.value,
        }


@dataclass
class ConflictReport:
    conflicts: list[RuleConflict] = field(default_factory=list)

    @property
    def blocks_save(self) -> bool:
        return any(c.severity == Severity.WARNING for c in self.conflicts)


def _shared(a: Sequence[str], b: Sequence[str]) -> list[str]:
    if not a or not b:
        return []
    wanted = set(b)
    return [x for x in a if x in wanted]


def _amount_conflicts(rule: AutoApproveRule, core: CoreApprovalRule) -> bool:
    if core.mode == RequireMode.ALWAYS:
        return True
    return core.mode == RequireMode.ABOVE_AMOUNT and rule.max_amount >= core.amount_threshold


def _scope_conflicts(rule: AutoApproveRule, core: CoreApprovalRule) -> bool:
    if _shared(rule.recipients, core.require_recipients):
        return True
    if _shared(rule.categories, core.require_categories):
        return True
    return core.mode in (RequireMode.ALWAYS, RequireMode.ABOVE_AMOUNT)


def _daily(window: TimeWindow) -> TimeWindow:
    # Core allowed hours apply every day
    return TimeWindow(
        id=window.id or "allowed-hours",
        days=window.days or ALL_DAYS,
        start_minute=window.start_minute,
        end_minute=window.end_minute,
        name=window.name,
    )


def detect_conflicts(
    rules: Sequence[AutoApproveRule],
    core: CoreApprovalRule,
) -> ConflictReport:
    report = ConflictReport()
    enabled = [r for r in rules if r.enabled]

    for rule in enabled:
        if _amount_conflicts(rule, core) and _scope_conflicts(rule, core):
            found: list[str] = []
            recipients = _shared(rule.recipients, core.require_recipients)
            categories = _shared(rule.categories, core.require_categories)
            if recipients:
                found.append(f"Recipient overlap: {', '.join(recipients)}")
            if categories:
                found.append(f"Category overlap: {', '.join(categories)}")
            if (
                rule.window is not None
                and core.require_outside_hours
                and core.allowed_hours is not None
                and overlaps(rule.window, _daily(core.allowed_hours))
            ):
                found.append("Time overlap with allowed-hours rule")
            report.conflicts.append(RuleConflict(
                id=f"c_{rule.id}",
                title=f"Potential conflict with auto-approve rule: {rule.name}",
                detail=(
                    "; ".join(found) if found
                    else "Auto-approve may allow transactions that the core policy requires approval for."
                ),
                severity=Severity.WARNING,
            ))

        if rule.window is not None and not rule.window.is_valid:
            report.conflicts.append(RuleConflict(
                id=f"t_{rule.id}",
                title=f"Invalid time window in {rule.name}",
                detail="Start must be before end.",
                severity=Severity.WARNING,
            ))

    if core.require_outside_hours and core.allowed_hours is not None and not core.allowed_hours.is_valid:
        report.conflicts.append(RuleConflict(
            id="core_time",
            title="Invalid allowed-hours window",
            detail="Start must be before end.",
            severity=Severity.WARNING,
        ))

    windows = [r.window for r in enabled if r.window is not None]
    for pair in find_overlapping_pairs(windows).conflicting_pairs:
        report.conflicts.append(RuleConflict(
            id=f"w_{pair.a.id}_{pair.b.id}",
            title="Auto-approve windows overlap",
            detail=pair.describe(),
            severity=Severity.WARNING,
        ))

    if core.hold_mode == HoldMode.INSTANT and core.auto_decline:
        report.conflicts.append(RuleConflict(
            id="fb_hold",
            title="Auto-decline is enabled but approvals are instant-only",
            detail="Auto-decline only applies when requests are held for approval.",
            severity=Severity.INFO,
        ))

    return report
