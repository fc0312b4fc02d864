"""
Policy Evaluation Engine for policybridge.

The engine runs the policies registered for a (caller, operation) pair
against the parameters extracted from a call payload.

Contract (PolicyEngine):
    check(caller, payload)  Never mutates engine state. Safe from read-only
                            code paths.
    run(caller, payload)    May update policy state and call post-run hooks.
                            All changes are atomic: a failure discards them.

Both raise EngineRevert with opaque failure data when the operation is not
allowed. `caller` is the identity of the validator making the call, so
policies are keyed to the validator, never to the ledger the transfer will
eventually touch. This is what lets one token-agnostic validator serve many
ledgers with a single policy set.

How the in-memory engine works:
    1. Extract parameters from the payload
    2. Look up policies for (caller, operation_id)
    3. Evaluate each policy in registration order against a copy of state
    4. First denial -> EngineRevert
    5. run() only: apply on_run() updates and hooks to the copy, then commit
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from policybridge.errors import EngineRevert, PermissionDeniedError
from policybridge.extract import Extractor
from policybridge.policy.failures import encode_policy_rejected, encode_policy_run_rejected
from policybridge.policy.policies import Policy
from policybridge.schema import (
    ZERO_IDENTITY,
    CallPayload,
    ExtractedParameters,
    PolicyDecision,
    normalize_identity,
    same_identity,
)

logger = logging.getLogger(__name__)

PostRunHook = Callable[[str, ExtractedParameters], None]

StateKey = tuple[str, str]


class PolicyEngine(ABC):
    """
    The contract validators rely on.

    Implementations may be in-process (InMemoryPolicyEngine) or bindings to
    an external system. Either way they must honour the read-only guarantee
    of check() and the atomicity of run().
    """

    @abstractmethod
    def check(self, caller: str, payload: CallPayload) -> None:
        """
        Evaluate without side effects.

        Raises:
            EngineRevert: If the operation is not allowed
        """
        ...

    @abstractmethod
    def run(self, caller: str, payload: CallPayload) -> None:
        """
        Evaluate and apply side effects on success.

        Raises:
            EngineRevert: If the operation is not allowed
        """
        ...

    @contextmanager
    def transaction(self) -> Iterator["PolicyEngine"]:
        """
        Tie engine state to an enclosing operation.

        Engines that can undo committed runs override this and roll back when
        the block raises. The default offers no rollback beyond the atomicity
        of each run().
        """
        yield self

    @contextmanager
    def exclusive(self) -> Iterator["PolicyEngine"]:
        """
        Hold the engine across a sequence of calls.

        Validators take this before their own evaluation lock, so engine locks
        are always acquired first. The default does no locking.
        """
        yield self


class InMemoryPolicyEngine(PolicyEngine):
    """
    In-process policy engine.

    Usage:
        engine = InMemoryPolicyEngine(admin=ADMIN)
        engine.add_policy(rule.identity, OperationId.VALIDATE_TRANSFER,
                          MaxAmountPolicy("max", 1000), caller=ADMIN)
        engine.check(rule.identity, payload)

    Attributes:
        admin: Identity allowed to register policies and hooks
        extractor: Decodes payloads into parameters
        default_allow: Outcome when no policy is registered for a key
    """

    def __init__(
        self,
        admin: str,
        extractor: Extractor | None = None,
        default_allow: bool = True,
    ) -> None:
        self.admin = normalize_identity(admin)
        self.extractor = extractor or Extractor()
        self.default_allow = default_allow
        self._policies: dict[tuple[str, int], list[Policy]] = {}
        self._state: dict[StateKey, dict[str, Any]] = {}
        self._hooks: list[PostRunHook] = []
        self._lock = threading.RLock()

    # =========================================================================
    # Administration
    # =========================================================================

    def _require_admin(self, caller: str, action: str) -> None:
        if not same_identity(caller, self.admin):
            raise PermissionDeniedError(caller=caller, action=action)

    def add_policy(self, target: str, operation_id: int, policy: Policy, *, caller: str) -> None:
        """
        Register a policy for (target, operation_id).

        Raises:
            PermissionDeniedError: If caller is not the admin
            ValueError: If a policy with the same name is already registered
        """
        self._require_admin(caller, "add_policy")
        key = (normalize_identity(target), int(operation_id))
        with self._lock:
            registered = self._policies.setdefault(key, [])
            if any(p.name == policy.name for p in registered):
                msg = f"Policy {policy.name!r} already registered for {key[0]}"
                raise ValueError(msg)
            registered.append(policy)
        logger.info("Registered policy %s for %s op=%s", policy.name, key[0], key[1])

    def remove_policy(self, target: str, operation_id: int, name: str, *, caller: str) -> bool:
        """
        Remove a policy by name.

        Returns:
            True if the policy was removed, False if it wasn't registered
        """
        self._require_admin(caller, "remove_policy")
        key = (normalize_identity(target), int(operation_id))
        with self._lock:
            registered = self._policies.get(key, [])
            for index, policy in enumerate(registered):
                if policy.name == name:
                    del registered[index]
                    logger.info("Removed policy %s for %s op=%s", name, key[0], key[1])
                    return True
        return False

    def policies_for(self, target: str, operation_id: int) -> list[Policy]:
        """List the policies registered for (target, operation_id), in order."""
        key = (normalize_identity(target), int(operation_id))
        with self._lock:
            return list(self._policies.get(key, []))

    def add_hook(self, hook: PostRunHook, *, caller: str) -> None:
        """Register a hook called after every successful run()."""
        self._require_admin(caller, "add_hook")
        with self._lock:
            self._hooks.append(hook)

    def state_for(self, target: str, policy_name: str) -> dict[str, Any]:
        """Return a copy of a policy's state for target."""
        with self._lock:
            return copy.deepcopy(self._state.get((normalize_identity(target), policy_name), {}))

    @contextmanager
    def exclusive(self) -> Iterator["InMemoryPolicyEngine"]:
        with self._lock:
            yield self

    @contextmanager
    def transaction(self) -> Iterator["InMemoryPolicyEngine"]:
        """
        Tie engine state to an enclosing operation.

        If the block raises, every run() committed inside it is rolled back.
        """
        with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield self
            except BaseException:
                self._state = snapshot
                logger.debug("Engine transaction rolled back")
                raise

    # =========================================================================
    # Evaluation
    # =========================================================================

    def check(self, caller: str, payload: CallPayload) -> None:
        caller = normalize_identity(caller)
        with self._lock:
            params = self.extractor.extract(payload)
            scratch = copy.deepcopy(self._state)
            rejected = self._evaluate(caller, payload.operation_id, params, scratch)
        if rejected is not None:
            _, decision = rejected
            logger.info("check rejected for %s: %s", caller, decision.reason)
            raise EngineRevert(data=encode_policy_rejected(decision.reason))

    def run(self, caller: str, payload: CallPayload) -> None:
        caller = normalize_identity(caller)
        with self._lock:
            params = self.extractor.extract(payload)
            working = copy.deepcopy(self._state)
            rejected = self._evaluate(caller, payload.operation_id, params, working)
            if rejected is not None:
                policy, decision = rejected
                policy_ref = policy.policy_ref if policy is not None else ZERO_IDENTITY
                logger.info("run rejected for %s by %s: %s", caller, policy_ref, decision.reason)
                raise EngineRevert(
                    data=encode_policy_run_rejected(payload.operation_id, policy_ref, decision.reason)
                )

            for policy in self.policies_for(caller, payload.operation_id):
                policy.on_run(params, working.setdefault((caller, policy.name), {}))
            for hook in list(self._hooks):
                hook(caller, params)

            self._state = working
        logger.debug("run committed for %s op=%s", caller, payload.operation_id)

    def _evaluate(
        self,
        caller: str,
        operation_id: int,
        params: ExtractedParameters,
        state: dict[StateKey, dict[str, Any]],
    ) -> tuple[Policy | None, PolicyDecision] | None:
        """Return (policy, decision) for the first denial, or None if allowed."""
        policies = self.policies_for(caller, operation_id)
        if not policies:
            if self.default_allow:
                return None
            return None, PolicyDecision.deny("No policy registered", rule="default_allow=false")

        for policy in policies:
            decision = policy.evaluate(params, state.get((caller, policy.name), {}))
            if not decision.allowed:
                return policy, decision
        return None
