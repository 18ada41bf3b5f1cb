"""Read-only enforcement for outbound requests."""

from .guardian import SafetyGuardian, SafetyViolation

__all__ = ["SafetyGuardian", "SafetyViolation"]
