"""
policybridge - Compliance validation bridge between ledgers and policy engines.

A ledger asks whether a transfer (from, to, amount) may happen. The bridge
forwards the question to a pluggable policy engine and answers with a stable
restriction code and message.
It provides:
- Read-only and mutating evaluation with a hard line between them
- Token-bound adapters and token-agnostic rules
- ALL / ANY rule sets over any mix of validators
- A restriction registry with administrator-only updates

Example usage:
    $ policybridge check bridge.yaml --validator main --from 0x.. --to 0x.. --amount 10
    $ policybridge simulate bridge.yaml transfers.yaml
"""

__version__ = "0.1.0"
__author__ = "policybridge Contributors"

from policybridge.bridge import Bridge
from policybridge.registry import RestrictionRegistry
from policybridge.schema import CombinationMode, EvaluationMode, EvaluationOutcome
from policybridge.validators import ComplianceAdapter, ComplianceRule, RuleSet, Validator

__all__ = [
    "Bridge",
    "CombinationMode",
    "ComplianceAdapter",
    "ComplianceRule",
    "EvaluationMode",
    "EvaluationOutcome",
    "RestrictionRegistry",
    "RuleSet",
    "Validator",
    "__author__",
    "__version__",
]
