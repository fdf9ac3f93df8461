from guardrail_sdk.client import GuardrailClient
from guardrail_sdk.models import ApprovalResult, DecisionResult, FinalizeResult

__all__ = ["GuardrailClient", "ApprovalResult", "DecisionResult", "FinalizeResult"]
