"""
Alternative suggestions

An Alternative is a minimal context change that would plausibly improve
the Outcome. Applying one never mutates state: the caller re-populates
its editable context from ``context_patch`` and evaluates again.

A CoachTip is softer: advice attached to the rules that fired, shown next
to the alternatives as the policy coach.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from guardrail.reasons import Outcome

MAX_ALTERNATIVES = 8


@dataclass(frozen=True)
class Alternative:
    id: str
    title: str
    description: str
    expected_outcome: Outcome
    context_patch: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> str:
        """Semantic identity: the same title and patch are the same suggestion."""
        return f"{self.title}|{json.dumps(self.context_patch, sort_keys=True, default=str)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "expected_outcome": self.expected_outcome.value,
            "context_patch": dict(self.context_patch),
        }


def dedupe_alternatives(
    alternatives: Iterable[Alternative],
    limit: int = MAX_ALTERNATIVES,
) -> list[Alternative]:
    """Drop repeats by (title, patch), keep first-seen order, cap the list."""
    seen: set[str] = set()
    unique: list[Alternative] = []
    for alt in alternatives:
        if alt.identity in seen:
            continue
        seen.add(alt.identity)
        unique.append(alt)
    return unique[:limit]


# ---------------------------------------------------------------------------
# Policy coach
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CoachTip:
    """Advice that helps the next request go through; it carries no patch."""
    id: str
    title: str
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "detail": self.detail}


def dedupe_coach(tips: Iterable[CoachTip]) -> list[CoachTip]:
    seen: set[str] = set()
    unique: list[CoachTip] = []
    for tip in tips:
        if tip.id not in seen:
            seen.add(tip.id)
            unique.append(tip)
    return unique
