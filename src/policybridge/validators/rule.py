"""
Token-agnostic compliance rule.

A rule is not bound to any ledger. Its policies are registered against the
rule's own identity, so every ledger (or rule set) that references the same
rule sees the same policy set and the same policy state.

Rules keep to the boolean contract used by rule sets:

    validate_transfer(from_, to, amount) -> bool       read-only
    message_for_transfer(from_, to, amount) -> str     read-only
    operate_on_transfer(from_, to, amount) -> bool     mutating

Rules have no integer-code methods.
"""

from policybridge.schema import EvaluationMode
from policybridge.validators.base import PolicyValidator


class ComplianceRule(PolicyValidator):
    """Policy-backed validator reusable across many ledgers."""

    def operate_on_transfer(self, from_: str, to: str, amount: int) -> bool:
        """Evaluate an executing transfer, updating policy state on success."""
        return self.evaluate(from_, to, amount, EvaluationMode.MUTATING).allowed
