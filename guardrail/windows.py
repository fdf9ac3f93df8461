"""
Temporal Overlap Validator

Day-set + time-range rules (spending windows, auto-approve windows,
booking slots) and the pairwise check that decides whether two of them
are ambiguous to enforce.

Times are minutes since midnight. Intervals are half-open: a window
ending at 11:00 does not touch one starting at 11:00. A window whose
start is not before its end is invalid and conflicts with every window
sharing a day; there is no midnight wraparound.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


class Day(str, Enum):
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"


ALL_DAYS: frozenset[Day] = frozenset(Day)


def parse_hhmm(value: str) -> int:
    """Convert ``"HH:MM"`` to minutes since midnight. ``"24:00"`` is end of day."""
    match = _HHMM.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes >= 60 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"Invalid time '{value}', out of range")
    return hours * 60 + minutes


def format_hhmm(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


@dataclass(frozen=True)
class TimeWindow:
    id: str
    days: frozenset[Day]
    start_minute: int
    end_minute: int
    name: str = ""

    @classmethod
    def from_hhmm(
        cls,
        id: str,
        days: Iterable[Day | str],
        start: str,
        end: str,
        name: str = "",
    ) -> TimeWindow:
        return cls(
            id=id,
            days=frozenset(Day(d) for d in days),
            start_minute=parse_hhmm(start),
            end_minute=parse_hhmm(end),
            name=name,
        )

    @property
    def is_valid(self) -> bool:
        return self.start_minute < self.end_minute

    @property
    def label(self) -> str:
        return f"{format_hhmm(self.start_minute)}-{format_hhmm(self.end_minute)}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            # Calendar order keeps the output stable for audit hashing
            "days": [d.value for d in Day if d in self.days],
            "start": format_hhmm(self.start_minute),
            "end": format_hhmm(self.end_minute),
        }


@dataclass(frozen=True)
class OverlapPair:
    a: TimeWindow
    b: TimeWindow

    def describe(self) -> str:
        a_name = self.a.name or self.a.id
        b_name = self.b.name or self.b.id
        return f'"{a_name}" ({self.a.label}) overlaps with "{b_name}" ({self.b.label})'


@dataclass
class OverlapReport:
    conflicting_pairs: list[OverlapPair] = field(default_factory=list)

    @property
    def overlaps(self) -> bool:
        return bool(self.conflicting_pairs)


# ---------------------------------------------------------------------------
# Core checks
# ---------------------------------------------------------------------------

def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """True when the two windows cannot both be enforced unambiguously."""
    if a.id == b.id:
        return False
    if not (a.days & b.days):
        return False
    if not a.is_valid or not b.is_valid:
        return True
    return a.start_minute < b.end_minute and b.start_minute < a.end_minute


def find_overlapping_pairs(windows: Sequence[TimeWindow]) -> OverlapReport:
    """Every overlapping unordered pair, in input order."""
    report = OverlapReport()
    for i in range(len(windows)):
        for j in range(i + 1, len(windows)):
            if overlaps(windows[i], windows[j]):
                report.conflicting_pairs.append(OverlapPair(windows[i], windows[j]))
    return report


def conflicts_for(
    draft: TimeWindow,
    existing: Iterable[TimeWindow],
    editing_id: str | None = None,
) -> list[TimeWindow]:
    """
    Existing windows that a new or edited window would conflict with.

    The window being edited is excluded from the comparison. A draft
    without an id compares as ``"draft"`` so it never matches itself.
    """
    if not draft.id:
        draft = TimeWindow(
            id="draft",
            days=draft.days,
            start_minute=draft.start_minute,
            end_minute=draft.end_minute,
            name=draft.name,
        )
    others = [w for w in existing if editing_id is None or w.id != editing_id]
    return [w for w in others if overlaps(draft, w)]


def validate_window(
    draft: TimeWindow,
    existing: Iterable[TimeWindow],
    editing_id: str | None = None,
) -> list[str]:
    """Editor-side errors that must be empty before a window can be saved."""
    errors: list[str] = []
    if not draft.name.strip():
        errors.append("Window name is required")
    if not draft.days:
        errors.append("Select at least one day")
    if not draft.is_valid:
        errors.append("Start time must be before end time")
    if conflicts_for(draft, existing, editing_id):
        errors.append("Overlaps with an existing window")
    return errors


def covers(outer: TimeWindow, inner: TimeWindow) -> bool:
    """True when ``inner`` lies entirely inside ``outer`` on all of its days."""
    if not outer.is_valid or not inner.is_valid:
        return False
    if not inner.days <= outer.days:
        return False
    return outer.start_minute <= inner.start_minute and inner.end_minute <= outer.end_minute
