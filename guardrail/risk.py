"""
Risk Signal Evaluator

Compares a login attempt against the last successful one and emits
discrete risk codes plus a coarse level. ``requires_step_up`` turns codes
into a step-up requirement under the account's security toggles.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from guardrail.liveness import as_utc

if TYPE_CHECKING:
    from guardrail.trust import TrustedDevice

IMPOSSIBLE_TRAVEL_SECONDS = int(
    os.environ.get("GUARDRAIL_IMPOSSIBLE_TRAVEL_SECONDS", "7200")
)
TRUST_EXPIRY_DAYS = int(os.environ.get("GUARDRAIL_TRUST_EXPIRY_DAYS", "30"))
MAX_TRUSTED_DEVICES = int(os.environ.get("GUARDRAIL_MAX_TRUSTED_DEVICES", "5"))


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class RiskCode(str, Enum):
    NEW_DEVICE = "new_device"
    NEW_CITY = "new_city"
    NEW_COUNTRY = "new_country"
    IMPOSSIBLE_TRAVEL = "impossible_travel"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


GEO_CODES = {RiskCode.NEW_CITY, RiskCode.NEW_COUNTRY}


@dataclass(frozen=True)
class Location:
    city: str
    country: str
    ip: str = ""


@dataclass(frozen=True)
class LoginAttempt:
    """One login attempt. A naive ``at`` is taken as UTC."""
    actor_id: str
    device_id: str
    location: Location
    at: datetime

    def __post_init__(self):
        object.__setattr__(self, "at", as_utc(self.at))


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    codes: tuple[RiskCode, ...] = ()

    def has(self, code: RiskCode) -> bool:
        return code in self.codes

    def to_dict(self) -> dict:
        return {"level": self.level.value, "codes": [c.value for c in self.codes]}


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def risk_level(codes: Iterable[RiskCode]) -> RiskLevel:
    codes = set(codes)
    if RiskCode.IMPOSSIBLE_TRAVEL in codes:
        return RiskLevel.HIGH
    if codes:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def evaluate_risk(
    attempt: LoginAttempt,
    last_success: Optional[LoginAttempt],
    known_device_ids: Iterable[str] = (),
    travel_threshold_seconds: int = IMPOSSIBLE_TRAVEL_SECONDS,
) -> RiskAssessment:
    """
    Risk codes for ``attempt`` relative to the actor's last successful login.

    A country change is reported as ``new_country`` only, never together
    with ``new_city``. ``impossible_travel`` is added when the country
    changed within ``travel_threshold_seconds`` of the last success. With no
    prior success only the device check applies.
    """
    codes: list[RiskCode] = []

    if attempt.device_id not in set(known_device_ids):
        codes.append(RiskCode.NEW_DEVICE)

    if last_success is not None:
        here, there = attempt.location, last_success.location
        if here.country != there.country:
            codes.append(RiskCode.NEW_COUNTRY)
            elapsed = abs((attempt.at - last_success.at).total_seconds())
            if elapsed < travel_threshold_seconds:
                codes.append(RiskCode.IMPOSSIBLE_TRAVEL)
        elif here.city != there.city:
            codes.append(RiskCode.NEW_CITY)

    return RiskAssessment(level=risk_level(codes), codes=tuple(codes))


# ---------------------------------------------------------------------------
# Step-up policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StepUpPolicy:
    """Account security toggles. Each signal family is gated separately."""
    step_up_enabled: bool = True
    allow_risk_step_up: bool = True
    allow_geo_step_up: bool = True
    allow_new_device_step_up: bool = True
    allow_impossible_travel_step_up: bool = True
    allow_trusted_devices: bool = True
    trust_expiry_days: int = field(default_factory=lambda: TRUST_EXPIRY_DAYS)
    max_trusted_devices: int = field(default_factory=lambda: MAX_TRUSTED_DEVICES)


def requires_step_up(policy: StepUpPolicy, codes: Iterable[RiskCode]) -> bool:
    """Pure AND of the master switch, the risk switch, and per-family toggles."""
    if not policy.step_up_enabled or not policy.allow_risk_step_up:
        return False
    codes = set(codes)
    if policy.allow_geo_step_up and codes & GEO_CODES:
        return True
    if policy.allow_new_device_step_up and RiskCode.NEW_DEVICE in codes:
        return True
    if policy.allow_impossible_travel_step_up and RiskCode.IMPOSSIBLE_TRAVEL in codes:
        return True
    return False


@dataclass(frozen=True)
class StepUpDecision:
    required: bool
    assessment: RiskAssessment
    exempt_by_trust: bool = False

    def to_dict(self) -> dict:
        return {
            "required": self.required,
            "exempt_by_trust": self.exempt_by_trust,
            **self.assessment.to_dict(),
        }


def step_up_decision(
    policy: StepUpPolicy,
    assessment: RiskAssessment,
    device: "TrustedDevice | None" = None,
    now: datetime | None = None,
) -> StepUpDecision:
    """
    Decide step-up for one attempt.

    A device with active trust skips the challenge, except when the attempt
    shows impossible travel.
    """
    required = requires_step_up(policy, assessment.codes)
    if not required:
        return StepUpDecision(required=False, assessment=assessment)

    if (
        device is not None
        and now is not None
        and policy.allow_trusted_devices
        and device.is_trust_active(now)
        and not assessment.has(RiskCode.IMPOSSIBLE_TRAVEL)
    ):
        return StepUpDecision(required=False, assessment=assessment, exempt_by_trust=True)

    return StepUpDecision(required=True, assessment=assessment)
