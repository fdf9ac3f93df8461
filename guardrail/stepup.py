"""
Step-up completion

Reauthentication is a strategy supplied by the caller (PIN, OTP,
biometric). This module only decides what follows a challenge: the login
result, the optional trust grant, and the audit record for both.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Sequence

from guardrail.audit import AuditRecord, build_record
from guardrail.risk import RiskAssessment, StepUpPolicy
from guardrail.trust import TrustedDevice, TrustGrant, grant_trust


class StepUpMethod(str, Enum):
    MFA = "MFA"
    OTP = "OTP"
    PIN = "PIN"
    BIOMETRIC = "Biometric"


class LoginStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


class Reauthenticator(Protocol):
    def verify(self, actor_id: str, method: StepUpMethod, response: str) -> bool:
        ...


class PinReauthenticator:
    """Checks a PIN against stored ``sha256:<hex>`` fingerprints per actor."""

    def __init__(self, fingerprints: dict[str, str]):
        self._fingerprints = dict(fingerprints)

    @staticmethod
    def fingerprint(pin: str) -> str:
        return "sha256:" + hashlib.sha256(pin.encode()).hexdigest()

    def verify(self, actor_id: str, method: StepUpMethod, response: str) -> bool:
        if method != StepUpMethod.PIN:
            return False
        expected = self._fingerprints.get(actor_id)
        if expected is None:
            return False
        return hmac.compare_digest(self.fingerprint(response), expected)


@dataclass(frozen=True)
class StepUpResult:
    login: LoginStatus
    devices: tuple[TrustedDevice, ...]
    record: AuditRecord
    trust: Optional[TrustGrant] = None

    @property
    def succeeded(self) -> bool:
        return self.login == LoginStatus.SUCCESS


def complete_step_up(
    actor_id: str,
    device_id: str,
    method: StepUpMethod,
    response: str,
    reauthenticator: Reauthenticator,
    policy: StepUpPolicy,
    devices: Sequence[TrustedDevice],
    assessment: RiskAssessment,
    now: datetime,
    trust_device: bool = False,
) -> StepUpResult:
    """
    Finish a step-up challenge.

    A failed challenge fails the login and never touches trust. A passed
    challenge succeeds the login; when ``trust_device`` is set, trust is
    attempted and a refused grant (policy off, cap reached) is reported
    in ``trust`` without failing the login.
    """
    devices = tuple(devices)
    verified = reauthenticator.verify(actor_id, method, response)

    trust: Optional[TrustGrant] = None
    if verified and trust_device:
        trust = grant_trust(policy, devices, device_id, now)
        if trust.granted:
            devices = trust.devices

    login = LoginStatus.SUCCESS if verified else LoginStatus.FAILED
    detail = {
        "method": method.value,
        "level": assessment.level.value,
        "device_id": device_id,
    }
    if trust is not None:
        detail["trust_granted"] = trust.granted
        detail["trust_reason"] = trust.reason
        if trust.expires_at is not None:
            detail["trust_expires_at"] = trust.expires_at.isoformat()

    record = build_record(
        kind="STEP_UP",
        actor_id=actor_id,
        subject_id=device_id,
        outcome=login.value,
        reasons=[{"code": c.value} for c in assessment.codes],
        timestamp=now,
        detail=detail,
    )
    return StepUpResult(login=login, devices=devices, record=record, trust=trust)
