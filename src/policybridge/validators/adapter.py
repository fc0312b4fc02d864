"""
Token-bound compliance adapter.

An adapter serves exactly one target ledger. It exposes the integer-coded
surface a ledger uses to report restrictions:

    validate_transfer(from_, to, amount) -> bool        read-only
    detect_transfer_restriction(from_, to, amount) -> int
    message_for_transfer_restriction(code) -> str
    operate_on_transfer(from_, to, amount, caller=) -> int   mutating

Only the bound target may call operate_on_transfer(). Read-only ledger code
holds adapter.read_only(), which keeps the first three and drops the last.
"""

from policybridge.errors import PermissionDeniedError
from policybridge.policy.engine import PolicyEngine
from policybridge.registry import RestrictionRegistry
from policybridge.schema import EvaluationMode, normalize_identity, same_identity
from policybridge.validators.base import PolicyValidator, ReadOnlyValidator


class ComplianceAdapter(PolicyValidator):
    """
    Policy-backed validator bound to one target ledger.

    Attributes:
        target: Identity of the ledger this adapter serves
    """

    def __init__(
        self,
        engine: PolicyEngine,
        registry: RestrictionRegistry,
        target: str,
        identity: str | None = None,
    ) -> None:
        super().__init__(engine, registry, identity)
        self._target = normalize_identity(target)

    @property
    def target(self) -> str:
        return self._target

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        """Restriction code for a transfer, without side effects."""
        return self.evaluate(from_, to, amount, EvaluationMode.READ_ONLY).code

    def message_for_transfer_restriction(self, code: int) -> str:
        return self.registry.get(code)

    def operate_on_transfer(self, from_: str, to: str, amount: int, *, caller: str) -> int:
        """
        Evaluate an executing transfer, updating policy state on success.

        Raises:
            PermissionDeniedError: If caller is not the bound target
        """
        if not same_identity(caller, self._target):
            raise PermissionDeniedError(caller=caller, action="operate on transfers")
        return self.evaluate(from_, to, amount, EvaluationMode.MUTATING).code

    def set_restriction_message(self, code: int, message: str, *, caller: str) -> None:
        """Administrative pass-through to the restriction registry."""
        self.registry.set(code, message, caller=caller)

    def read_only(self) -> "ReadOnlyAdapter":
        """Return a view with the adapter's read-only queries and no mutating path."""
        return ReadOnlyAdapter(self)

    def __repr__(self) -> str:
        return f"<ComplianceAdapter: {self.identity} -> {self._target}>"


class ReadOnlyAdapter(ReadOnlyValidator):
    """
    Read-only view of a ComplianceAdapter.

    Keeps the integer-coded queries a ledger makes from its own read-only
    paths. operate_on_transfer() and MUTATING evaluation are not available.
    """

    def __init__(self, adapter: ComplianceAdapter) -> None:
        super().__init__(adapter)
        self._adapter = adapter

    @property
    def target(self) -> str:
        return self._adapter.target

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        return self.evaluate(from_, to, amount, EvaluationMode.READ_ONLY).code

    def message_for_transfer_restriction(self, code: int) -> str:
        return self._adapter.message_for_transfer_restriction(code)
