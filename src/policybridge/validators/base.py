"""
Base classes for validators.

This module defines the core abstractions:
- Validator: anything that can evaluate (from, to, amount) in a mode
- PolicyValidator: a validator backed by a policy engine
- ReadOnlyValidator: a view that cannot reach the mutating path

Adapters, rules, rule sets and third-party validators all implement the same
evaluate() contract, so a rule set can hold any mix of them.

Modes:
    READ_ONLY   never changes policy state; safe from query code paths
    MUTATING    may update policy state; used when a transfer executes

Read-only code paths should hold validator.read_only() rather than the
validator itself. The view refuses MUTATING evaluation, so a query path
cannot change policy state even by mistake.
"""

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from policybridge.errors import (
    RESTRICTION_OK,
    CapabilityError,
    ReentrantEvaluationError,
)
from policybridge.extract import encode_transfer_from
from policybridge.policy.engine import PolicyEngine
from policybridge.registry import RestrictionRegistry
from policybridge.schema import (
    CallPayload,
    EvaluationMode,
    EvaluationOutcome,
    OperationId,
    normalize_identity,
)
from policybridge.validators.client import EngineClient, EngineResult

logger = logging.getLogger(__name__)


def generate_identity() -> str:
    """Generate a random validator identity."""
    return "0x" + secrets.token_hex(20)


class Validator(ABC):
    """
    Abstract base class for all validators.

    Subclasses must implement:
    - identity property: the validator's fixed identity
    - evaluate(): the (from, to, amount, mode) -> outcome contract
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        """The validator's identity. Fixed at construction."""
        ...

    @abstractmethod
    def evaluate(
        self,
        from_: str,
        to: str,
        amount: int,
        mode: EvaluationMode = EvaluationMode.READ_ONLY,
    ) -> EvaluationOutcome:
        """
        Evaluate a transfer.

        Returns:
            EvaluationOutcome; code 0 means allowed
        """
        ...

    def validate_transfer(self, from_: str, to: str, amount: int) -> bool:
        """Read-only yes/no query."""
        return self.evaluate(from_, to, amount, EvaluationMode.READ_ONLY).allowed

    def message_for_transfer(self, from_: str, to: str, amount: int) -> str:
        """Read-only query for the message describing the transfer's outcome."""
        return self.evaluate(from_, to, amount, EvaluationMode.READ_ONLY).message

    def engines(self) -> tuple[PolicyEngine, ...]:
        """Policy engines whose state a MUTATING evaluation may change."""
        return ()

    def read_only(self) -> "ReadOnlyValidator":
        """Return a view of this validator without the mutating path."""
        return ReadOnlyValidator(self)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.identity}>"


class ReadOnlyValidator(Validator):
    """
    A read-only view of another validator.

    Everything goes through to the wrapped validator in READ_ONLY mode.
    Asking for MUTATING raises CapabilityError.
    """

    def __init__(self, validator: Validator) -> None:
        self._validator = validator

    @property
    def identity(self) -> str:
        return self._validator.identity

    def evaluate(
        self,
        from_: str,
        to: str,
        amount: int,
        mode: EvaluationMode = EvaluationMode.READ_ONLY,
    ) -> EvaluationOutcome:
        if EvaluationMode(mode) is not EvaluationMode.READ_ONLY:
            raise CapabilityError(validator=self.identity)
        return self._validator.evaluate(from_, to, amount, EvaluationMode.READ_ONLY)

    def engines(self) -> tuple[PolicyEngine, ...]:
        return self._validator.engines()

    def read_only(self) -> "ReadOnlyValidator":
        return self


class EvaluationGuard:
    """
    Serializes evaluations of one validator and rejects re-entrant calls.

    A second thread waits for the first to finish. The same thread calling
    back in while an evaluation is in progress gets ReentrantEvaluationError.

    Callers take engine locks (PolicyEngine.exclusive) before the guard.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._owner: int | None = None

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._owner == threading.get_ident():
            raise ReentrantEvaluationError(validator=self.name)
        with self._lock:
            self._owner = threading.get_ident()
            try:
                yield
            finally:
                self._owner = None


class PolicyValidator(Validator):
    """
    A validator that asks a policy engine.

    Evaluation:
        1. Build a VALIDATE_TRANSFER payload with caller_identity = from_
        2. check() for READ_ONLY, run() for MUTATING
        3. Success -> code 0
        4. Failure -> the classified failure's restriction code

    Messages come from the shared restriction registry.

    Attributes:
        client: Engine client bound to this validator's identity
        registry: Restriction registry used for messages
    """

    operation_id = OperationId.VALIDATE_TRANSFER

    def __init__(
        self,
        engine: PolicyEngine,
        registry: RestrictionRegistry,
        identity: str | None = None,
    ) -> None:
        self._identity = normalize_identity(identity) if identity else generate_identity()
        self.client = EngineClient(engine, self._identity)
        self.registry = registry
        self._guard = EvaluationGuard(self._identity)

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def engine(self) -> PolicyEngine:
        return self.client.engine

    def engines(self) -> tuple[PolicyEngine, ...]:
        return (self.client.engine,)

    def build_payload(self, from_: str, to: str, amount: int) -> CallPayload:
        """Build the engine payload for a transfer."""
        return CallPayload(
            operation_id=self.operation_id,
            caller_identity=normalize_identity(from_),
            raw_data=encode_transfer_from(from_, to, amount),
            context=b"",
        )

    def evaluate(
        self,
        from_: str,
        to: str,
        amount: int,
        mode: EvaluationMode = EvaluationMode.READ_ONLY,
    ) -> EvaluationOutcome:
        mode = EvaluationMode(mode)
        payload = self.build_payload(from_, to, amount)

        with self.engine.exclusive(), self._guard.hold():
            if mode is EvaluationMode.MUTATING:
                result = self.client.run(payload)
            else:
                result = self.client.check(payload)

        return self._to_outcome(result, mode)

    def _to_outcome(self, result: EngineResult, mode: EvaluationMode) -> EvaluationOutcome:
        if result.ok:
            return EvaluationOutcome(
                allowed=True,
                code=RESTRICTION_OK,
                message=self.registry.get(RESTRICTION_OK),
                validator=self.identity,
            )

        failure = result.failure
        code = failure.restriction_code
        logger.info(
            "Validator %s restricted transfer (%s): code=%d %s",
            self.identity,
            mode.value,
            code,
            failure.message,
        )
        return EvaluationOutcome(
            allowed=False,
            code=code,
            message=self.registry.get(code),
            reason=failure.reason,
            validator=self.identity,
        )
