"""
Reason Catalog & Outcome Resolver

Typed records explaining why a decision leans a certain way, and the
worst-case fold that turns a list of them into a tri-state Outcome.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterable

# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
}


class Outcome(str, Enum):
    ALLOWED = "Allowed"
    APPROVAL_REQUIRED = "Approval required"
    BLOCKED = "Blocked"


class ReasonCode(str, Enum):
    PROGRAM = "PROGRAM"
    FIELDS = "FIELDS"
    LOCATION = "LOCATION"
    TIME = "TIME"
    VENDOR = "VENDOR"
    CATEGORY = "CATEGORY"
    AMOUNT = "AMOUNT"
    OK = "OK"


@dataclass(frozen=True)
class Reason:
    code: ReasonCode
    title: str
    detail: str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["code"] = self.code.value
        data["severity"] = self.severity.value
        return data


def within_policy(detail: str = "Request is within recipient, time, location, and budget rules.") -> Reason:
    """The synthetic Info reason used when no rule produced anything."""
    return Reason(
        code=ReasonCode.OK,
        title="Within policy",
        detail=detail,
        severity=Severity.INFO,
    )


# ---------------------------------------------------------------------------
# Outcome resolution
# ---------------------------------------------------------------------------

def worst_severity(reasons: Iterable[Reason]) -> Severity:
    """Highest severity present. Raises ValueError on an empty list."""
    worst: Severity | None = None
    for reason in reasons:
        if worst is None or reason.severity.rank > worst.rank:
            worst = reason.severity
    if worst is None:
        raise ValueError("Cannot resolve an empty reason list; inject an OK reason first")
    return worst


def resolve_outcome(reasons: Iterable[Reason]) -> Outcome:
    """
    Fold reason severities into an Outcome.

      - any Critical -> Blocked
      - any Warning  -> Approval required
      - otherwise    -> Allowed

    Order-independent. An empty list is a caller error.
    """
    worst = worst_severity(reasons)
    if worst == Severity.CRITICAL:
        return Outcome.BLOCKED
    if worst == Severity.WARNING:
        return Outcome.APPROVAL_REQUIRED
    return Outcome.ALLOWED
