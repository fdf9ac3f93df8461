"""Guardrail: policy decisions, time-window validation, and login risk."""
