"""
Validators module for policybridge.

Validators turn a transfer into an EvaluationOutcome. All of them share one
contract, evaluate(from_, to, amount, mode), so they can be freely combined.

Built-in validators:
    - ComplianceAdapter: bound to one ledger, integer-coded surface
    - ComplianceRule: token-agnostic, boolean surface
    - RuleSet: ALL / ANY composition of other validators

Read-only code paths should hold validator.read_only().
"""

from policybridge.validators.adapter import ComplianceAdapter, ReadOnlyAdapter
from policybridge.validators.base import (
    PolicyValidator,
    ReadOnlyValidator,
    Validator,
    generate_identity,
)
from policybridge.validators.client import EngineClient, EngineResult
from policybridge.validators.rule import ComplianceRule
from policybridge.validators.ruleset import RuleSet

__all__ = [
    "ComplianceAdapter",
    "ComplianceRule",
    "EngineClient",
    "EngineResult",
    "PolicyValidator",
    "ReadOnlyAdapter",
    "ReadOnlyValidator",
    "RuleSet",
    "Validator",
    "generate_identity",
]
