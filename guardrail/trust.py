"""
Trusted devices

Trust is time-boxed and capped per actor. Device lists are immutable
tuples; every operation returns a new tuple instead of editing in place.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from guardrail.liveness import as_utc
from guardrail.risk import StepUpPolicy


@dataclass(frozen=True)
class TrustedDevice:
    id: str
    label: str = ""
    trusted: bool = False
    trust_expires_at: Optional[datetime] = None

    def __post_init__(self):
        if self.trust_expires_at is not None:
            object.__setattr__(self, "trust_expires_at", as_utc(self.trust_expires_at))

    def is_trust_active(self, now: datetime) -> bool:
        return (
            self.trusted
            and self.trust_expires_at is not None
            and as_utc(now) < self.trust_expires_at
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "trusted": self.trusted,
            "trust_expires_at": (
                self.trust_expires_at.isoformat() if self.trust_expires_at else None
            ),
        }


@dataclass(frozen=True)
class TrustGrant:
    granted: bool
    devices: tuple[TrustedDevice, ...]
    reason: str = ""
    expires_at: Optional[datetime] = None


def count_trusted(devices: Sequence[TrustedDevice], now: datetime) -> int:
    """Devices whose trust is still in force. Expired trust does not count."""
    return sum(1 for d in devices if d.is_trust_active(now))


def _index_of(devices: Sequence[TrustedDevice], device_id: str) -> int:
    for i, d in enumerate(devices):
        if d.id == device_id:
            return i
    return -1


def grant_trust(
    policy: StepUpPolicy,
    devices: Sequence[TrustedDevice],
    device_id: str,
    now: datetime,
) -> TrustGrant:
    """
    Trust ``device_id`` until ``now + trust_expiry_days``.

    A device that is already trusted only has its expiry refreshed and does
    not count against the cap. A refused grant carries a user-facing reason
    and the devices unchanged.
    """
    devices = tuple(devices)
    if not policy.allow_trusted_devices:
        return TrustGrant(False, devices, "Trusted devices are disabled by policy.")

    idx = _index_of(devices, device_id)
    if idx < 0:
        return TrustGrant(False, devices, f"Unknown device: {device_id}")

    target = devices[idx]
    if not target.is_trust_active(now) and count_trusted(devices, now) >= policy.max_trusted_devices:
        return TrustGrant(
            False,
            devices,
            f"You can trust up to {policy.max_trusted_devices} devices. "
            f"Untrust one to continue.",
        )

    expires_at = as_utc(now) + timedelta(days=policy.trust_expiry_days)
    updated = list(devices)
    updated[idx] = replace(target, trusted=True, trust_expires_at=expires_at)
    return TrustGrant(True, tuple(updated), "Device trusted.", expires_at)


def revoke_trust(devices: Sequence[TrustedDevice], device_id: str) -> tuple[TrustedDevice, ...]:
    """Untrust one device. Unknown ids raise ValueError."""
    devices = tuple(devices)
    idx = _index_of(devices, device_id)
    if idx < 0:
        raise ValueError(f"Unknown device: {device_id}")
    updated = list(devices)
    updated[idx] = replace(devices[idx], trusted=False, trust_expires_at=None)
    return tuple(updated)


def toggle_trust(
    policy: StepUpPolicy,
    devices: Sequence[TrustedDevice],
    device_id: str,
    now: datetime,
) -> TrustGrant:
    """Manual switch: revoke active trust, otherwise try to grant it."""
    devices = tuple(devices)
    idx = _index_of(devices, device_id)
    if idx >= 0 and devices[idx].is_trust_active(now):
        return TrustGrant(False, revoke_trust(devices, device_id), "Device untrusted.")
    return grant_trust(policy, devices, device_id, now)


def expire_trust(devices: Sequence[TrustedDevice], now: datetime) -> tuple[TrustedDevice, ...]:
    """Clear the trusted flag on every device whose trust has lapsed."""
    return tuple(
        replace(d, trusted=False, trust_expires_at=None)
        if d.trusted and not d.is_trust_active(now) else d
        for d in devices
    )
