"""
Liveness Model -- holds and grace windows.

A hold is an advisory, time-boxed claim on a schedulable resource while a
decision is pending. Its expiry is a wall-clock comparison and must be
checked right before any action that depends on the held resource.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Configuration (from env vars with defaults)
# ---------------------------------------------------------------------------

HOLD_MIN_MINUTES = int(os.environ.get("GUARDRAIL_HOLD_MIN_MINUTES", "15"))
HOLD_MAX_MINUTES = int(os.environ.get("GUARDRAIL_HOLD_MAX_MINUTES", "480"))
HOLD_DEFAULT_MINUTES = int(os.environ.get("GUARDRAIL_HOLD_DEFAULT_MINUTES", "90"))


# ---------------------------------------------------------------------------
# Holds
# ---------------------------------------------------------------------------

class HoldExpiredError(ValueError):
    """The hold lapsed; the caller must go back to slot selection."""

    def __init__(self, resource_id: str, held_until: datetime):
        self.resource_id = resource_id
        self.held_until = held_until
        super().__init__(
            f"Hold on {resource_id} expired at {held_until.isoformat()}. "
            f"Select a new slot."
        )


@dataclass(frozen=True)
class SlotHold:
    resource_id: str
    held_until: datetime

    def to_dict(self) -> dict:
        return {"resource_id": self.resource_id, "held_until": self.held_until.isoformat()}


def clamp_hold_minutes(minutes: Optional[int]) -> int:
    if minutes is None:
        minutes = HOLD_DEFAULT_MINUTES
    return max(HOLD_MIN_MINUTES, min(HOLD_MAX_MINUTES, int(minutes)))


def create_hold(resource_id: str, now: datetime, minutes: Optional[int] = None) -> SlotHold:
    """Reserve ``resource_id`` for ``minutes`` (clamped to the allowed range)."""
    return SlotHold(
        resource_id=resource_id,
        held_until=as_utc(now) + timedelta(minutes=clamp_hold_minutes(minutes)),
    )


def is_expired(hold: SlotHold, now: datetime) -> bool:
    return as_utc(now) >= as_utc(hold.held_until)


def ensure_hold_active(hold: SlotHold, now: datetime) -> SlotHold:
    """Return the hold unchanged, or raise HoldExpiredError."""
    if is_expired(hold, now):
        raise HoldExpiredError(hold.resource_id, hold.held_until)
    return hold


# ---------------------------------------------------------------------------
# Grace windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GraceWindow:
    """A temporary reprieve for a delinquent program account."""
    enabled: bool
    ends_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        if not self.enabled or self.ends_at is None:
            return False
        return as_utc(now) < as_utc(self.ends_at)
