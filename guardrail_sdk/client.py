"""
Guardrail SDK — Client
Thin synchronous wrapper over the Guardrail gateway.
"""

from __future__ import annotations

from typing import Any

import httpx

from guardrail_sdk.models import ApprovalResult, DecisionResult, FinalizeResult


class GuardrailClient:
    """
    Client for the Guardrail gateway.

    Evaluates contexts, submits approval requests, and decides them with an
    approver API key.
    """

    def __init__(
        self,
        gateway_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        http: httpx.Client | None = None,
    ):
        """
        Args:
            gateway_url: Base URL of the gateway (e.g. "http://localhost:8000")
            api_key: Bearer token for approve/reject (approvers only)
            timeout: HTTP request timeout in seconds
            http: Pre-built httpx client (e.g. fastapi's TestClient)
        """
        self.gateway_url = gateway_url.rstrip("/")
        self.api_key = api_key
        self._client = http or httpx.Client(timeout=timeout)

    def evaluate(self, context: dict[str, Any], rule_set: str = "service_booking") -> DecisionResult:
        """Evaluate one context. Any of 200/202/403 carries a full decision."""
        resp = self._client.post(
            f"{self.gateway_url}/evaluate",
            json={"context": context, "rule_set": rule_set},
        )
        body = resp.json()

        return DecisionResult(
            outcome=body.get("outcome", "UNKNOWN"),
            reasons=body.get("reasons", []),
            alternatives=body.get("alternatives", []),
            coach=body.get("coach", []),
            program_availability=body.get("program_availability"),
            policy_event_id=body.get("policy_event_id"),
            raw=body,
        )

    def check_overlaps(self, windows: list[dict[str, Any]]) -> dict:
        resp = self._client.post(f"{self.gateway_url}/windows/overlaps", json={"windows": windows})
        return resp.json()

    def evaluate_risk(self, attempt: dict[str, Any], last_success: dict[str, Any] | None = None,
                      known_device_ids: list[str] | None = None) -> dict:
        resp = self._client.post(
            f"{self.gateway_url}/risk/evaluate",
            json={
                "attempt": attempt,
                "last_success": last_success,
                "known_device_ids": known_device_ids or [],
            },
        )
        return resp.json()

    def submit_approval(self, context: dict[str, Any], reason: str,
                        hold_minutes: int | None = None) -> ApprovalResult:
        resp = self._client.post(
            f"{self.gateway_url}/approvals",
            json={"context": context, "reason": reason, "hold_minutes": hold_minutes},
        )
        body = resp.json()

        return ApprovalResult(
            success=resp.status_code == 202,
            approval_id=body.get("id"),
            state=body.get("state"),
            raw=body,
        )

    def _decide(self, approval_id: str, verb: str, note: str) -> ApprovalResult:
        if not self.api_key:
            return ApprovalResult(
                success=False,
                raw={"error": "No api_key configured on client."},
            )

        resp = self._client.post(
            f"{self.gateway_url}/approvals/{approval_id}/{verb}",
            json={"note": note},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        body = resp.json()

        return ApprovalResult(
            success=resp.status_code == 200,
            approval_id=body.get("id", approval_id),
            state=body.get("state"),
            raw=body,
        )

    def approve(self, approval_id: str, note: str = "") -> ApprovalResult:
        """Approve a pending request. Requires api_key."""
        return self._decide(approval_id, "approve", note)

    def reject(self, approval_id: str, note: str = "") -> ApprovalResult:
        """Reject a pending request. Requires api_key."""
        return self._decide(approval_id, "reject", note)

    def finalize(self, approval_id: str) -> FinalizeResult:
        resp = self._client.post(f"{self.gateway_url}/approvals/{approval_id}/finalize")
        body = resp.json()
        status = body.get("status", "UNKNOWN")
        if resp.status_code == 409:
            status = "RESELECT_SLOT"
        return FinalizeResult(status=status, status_code=resp.status_code, raw=body)

    def health(self) -> dict:
        """Check gateway health via GET /health."""
        resp = self._client.get(f"{self.gateway_url}/health")
        return resp.json()
