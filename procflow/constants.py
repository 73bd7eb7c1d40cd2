"""Shared constants for the procflow engine."""

COMPLETED = "COMPLETED"
"""Route target that terminates a run regardless of remaining steps."""

TRIGGER_NAMESPACE = "trigger"

DEFAULT_MAX_AUTO_STEPS = 25
DEFAULT_APPROVAL_ACTIONS = ("Approve", "Reject")
