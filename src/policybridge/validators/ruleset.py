"""
Rule sets: ordered composition of validators.

A rule set is itself a Validator, so rule sets can be nested and handed to a
ledger like any single rule.

Combination modes:
    ALL   Evaluate in registration order. The first rejection is returned
          and nothing after it is evaluated. An empty set passes.
    ANY   Evaluate in registration order. The first acceptance is returned
          and nothing after it is evaluated. If every validator rejects,
          the first rejection is returned. An empty set returns
          `empty_allows` (True unless configured otherwise).

Adding or removing validators only affects evaluations that start afterwards.
It never touches a member's own policy state.

MUTATING evaluation is all-or-nothing across the member engines: when the
combined outcome is a restriction, state committed by earlier members is
rolled back.
"""

import logging
import threading
from contextlib import ExitStack

from policybridge.errors import (
    RESTRICTION_OK,
    RESTRICTION_POLICY_REJECTED,
    PermissionDeniedError,
)
from policybridge.policy.engine import PolicyEngine
from policybridge.registry import RestrictionRegistry
from policybridge.schema import (
    CombinationMode,
    EvaluationMode,
    EvaluationOutcome,
    normalize_identity,
    same_identity,
)
from policybridge.validators.base import EvaluationGuard, Validator, generate_identity

logger = logging.getLogger(__name__)

EMPTY_SET_REASON = "Rule set has no validators"


class _Rollback(Exception):
    """Unwinds member engine transactions for a restricted transfer."""


def _distinct_engines(members) -> tuple[PolicyEngine, ...]:
    """Member engines, each once, in a stable order so locks nest consistently."""
    engines = {}
    for validator in members:
        for engine in validator.engines():
            engines[id(engine)] = engine
    return tuple(engines[key] for key in sorted(engines))


class RuleSet(Validator):
    """
    Ordered validators combined under ALL or ANY.

    Usage:
        rules = RuleSet(registry, CombinationMode.ALL, [kyc_rule, cap_rule])
        if rules.validate_transfer(sender, recipient, 100):
            ...

    Attributes:
        registry: Restriction registry used for the rule set's own outcomes
        mode: Combination mode
        admin: Identity allowed to add and remove validators
        empty_allows: Result of an empty ANY set
    """

    def __init__(
        self,
        registry: RestrictionRegistry,
        mode: CombinationMode = CombinationMode.ALL,
        validators: list[Validator] | tuple[Validator, ...] = (),
        *,
        admin: str | None = None,
        identity: str | None = None,
        empty_allows: bool = True,
    ) -> None:
        self.registry = registry
        self.mode = CombinationMode(mode)
        self.admin = normalize_identity(admin) if admin else registry.admin
        self.empty_allows = empty_allows
        self._identity = normalize_identity(identity) if identity else generate_identity()
        self._validators: list[Validator] = []
        self._members_lock = threading.Lock()
        self._guard = EvaluationGuard(self._identity)
        for validator in validators:
            self._append(validator)

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def validators(self) -> tuple[Validator, ...]:
        with self._members_lock:
            return tuple(self._validators)

    # =========================================================================
    # Administration
    # =========================================================================

    def _append(self, validator: Validator) -> None:
        if validator is self or validator.identity == self._identity:
            msg = "A rule set cannot contain itself"
            raise ValueError(msg)
        with self._members_lock:
            if any(v.identity == validator.identity for v in self._validators):
                msg = f"Validator {validator.identity} is already in the rule set"
                raise ValueError(msg)
            self._validators.append(validator)

    def add_validator(self, validator: Validator, *, caller: str) -> None:
        """
        Append a validator.

        Raises:
            PermissionDeniedError: If caller is not the admin
            ValueError: If the validator is already a member
        """
        if not same_identity(caller, self.admin):
            raise PermissionDeniedError(caller=caller, action="add validators")
        self._append(validator)
        logger.info("Rule set %s: added validator %s", self._identity, validator.identity)

    def remove_validator(self, identity: str, *, caller: str) -> bool:
        """
        Remove a validator by identity.

        Returns:
            True if it was removed, False if it wasn't a member
        """
        if not same_identity(caller, self.admin):
            raise PermissionDeniedError(caller=caller, action="remove validators")
        identity = normalize_identity(identity)
        with self._members_lock:
            for index, validator in enumerate(self._validators):
                if validator.identity == identity:
                    del self._validators[index]
                    logger.info("Rule set %s: removed validator %s", self._identity, identity)
                    return True
        return False

    # =========================================================================
    # Evaluation
    # =========================================================================

    def engines(self) -> tuple[PolicyEngine, ...]:
        return _distinct_engines(self.validators)

    def evaluate(
        self,
        from_: str,
        to: str,
        amount: int,
        mode: EvaluationMode = EvaluationMode.READ_ONLY,
    ) -> EvaluationOutcome:
        """
        Combine the members' outcomes.

        MUTATING evaluation is all-or-nothing: it runs inside a transaction on
        every member engine, and a restricted outcome rolls back whatever
        earlier members committed.
        """
        mode = EvaluationMode(mode)
        members = self.validators
        engines = _distinct_engines(members)

        with ExitStack() as held:
            for engine in engines:
                held.enter_context(engine.exclusive())
            with self._guard.hold():
                if not members:
                    return self._empty_outcome()
                if mode is EvaluationMode.MUTATING:
                    return self._evaluate_atomically(engines, members, from_, to, amount)
                return self._combine(members, from_, to, amount, mode)

    def operate_on_transfer(self, from_: str, to: str, amount: int) -> bool:
        """Evaluate an executing transfer across the rule set."""
        return self.evaluate(from_, to, amount, EvaluationMode.MUTATING).allowed

    def _combine(self, members, from_, to, amount, mode) -> EvaluationOutcome:
        if self.mode is CombinationMode.ALL:
            return self._evaluate_all(members, from_, to, amount, mode)
        return self._evaluate_any(members, from_, to, amount, mode)

    def _evaluate_atomically(self, engines, members, from_, to, amount) -> EvaluationOutcome:
        outcome = None
        try:
            with ExitStack() as transactions:
                for engine in engines:
                    transactions.enter_context(engine.transaction())
                outcome = self._combine(members, from_, to, amount, EvaluationMode.MUTATING)
                if not outcome.allowed:
                    raise _Rollback
        except _Rollback:
            logger.info(
                "Rule set %s restricted transfer (code %d); member state rolled back",
                self._identity,
                outcome.code,
            )
        return outcome

    def _evaluate_all(self, members, from_, to, amount, mode) -> EvaluationOutcome:
        for validator in members:
            outcome = validator.evaluate(from_, to, amount, mode)
            if not outcome.allowed:
                return outcome
        return self._ok_outcome()

    def _evaluate_any(self, members, from_, to, amount, mode) -> EvaluationOutcome:
        first_rejection = None
        for validator in members:
            outcome = validator.evaluate(from_, to, amount, mode)
            if outcome.allowed:
                return outcome
            if first_rejection is None:
                first_rejection = outcome
        return first_rejection

    def _ok_outcome(self) -> EvaluationOutcome:
        return EvaluationOutcome(
            allowed=True,
            code=RESTRICTION_OK,
            message=self.registry.get(RESTRICTION_OK),
            validator=self._identity,
        )

    def _empty_outcome(self) -> EvaluationOutcome:
        if self.mode is CombinationMode.ALL:
            return self._ok_outcome()
        if self.empty_allows:
            logger.warning("Rule set %s is empty in ANY mode; allowing transfer", self._identity)
            return self._ok_outcome()
        return EvaluationOutcome(
            allowed=False,
            code=RESTRICTION_POLICY_REJECTED,
            message=self.registry.get(RESTRICTION_POLICY_REJECTED),
            reason=EMPTY_SET_REASON,
            validator=self._identity,
        )

    def __len__(self) -> int:
        return len(self.validators)

    def __contains__(self, identity: str) -> bool:
        identity = normalize_identity(identity)
        return any(v.identity == identity for v in self.validators)

    def __repr__(self) -> str:
        return f"<RuleSet {self.mode.value}: {len(self)} validators>"
