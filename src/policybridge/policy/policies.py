"""
Built-in policies for the in-process policy engine.

A policy looks at extracted transfer parameters and returns a PolicyDecision.
Stateful policies keep their counters in a dict owned by the engine; they
read it in evaluate() and update it only in on_run(), which the engine calls
on the mutating path after every policy has allowed the operation.

Policies never hold state themselves, so one policy object can be registered
against several validators without sharing counters.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Any

from policybridge.extract import PARAM_AMOUNT, PARAM_FROM, PARAM_TO
from policybridge.schema import (
    AllowListPolicyConfig,
    CumulativeVolumePolicyConfig,
    DenyListPolicyConfig,
    ExtractedParameters,
    MaxAmountPolicyConfig,
    PausePolicyConfig,
    PolicyDecision,
    normalize_identity,
)


def policy_ref_for(name: str) -> str:
    """Derive a stable identity for a named policy."""
    return "0x" + hashlib.sha3_256(f"policy:{name}".encode("utf-8")).digest()[:20].hex()


class Policy(ABC):
    """
    Abstract base class for policies.

    Subclasses must implement evaluate(). Stateful policies also override
    on_run().

    Attributes:
        name: Unique name of the policy within a registration
        policy_ref: Identity reported when the policy rejects a run
    """

    def __init__(self, name: str, policy_ref: str | None = None) -> None:
        if not name:
            msg = "Policy must have a non-empty name"
            raise ValueError(msg)
        self.name = name
        self.policy_ref = normalize_identity(policy_ref) if policy_ref else policy_ref_for(name)

    @abstractmethod
    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        """
        Decide whether the operation is allowed.

        Args:
            params: Extracted transfer parameters
            state: This policy's state for the calling validator. Treat as
                read-only; changes made here are not kept.
        """
        ...

    def on_run(self, params: ExtractedParameters, state: dict[str, Any]) -> None:
        """Update state after an allowed mutating run. Default: no state."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"


def _parties(params: ExtractedParameters, check: str) -> list[tuple[str, str]]:
    parties = []
    if check in ("from", "both"):
        parties.append(("sender", params.get(PARAM_FROM)))
    if check in ("to", "both"):
        parties.append(("recipient", params.get(PARAM_TO)))
    return parties


class AllowListPolicy(Policy):
    """Only listed identities may send and/or receive."""

    def __init__(
        self,
        name: str,
        addresses: list[str],
        check: str = "both",
        policy_ref: str | None = None,
    ) -> None:
        super().__init__(name, policy_ref)
        self.addresses = {normalize_identity(a) for a in addresses}
        self.check = check

    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        for role, identity in _parties(params, self.check):
            if identity not in self.addresses:
                return PolicyDecision.deny(f"{role} {identity} is not allow-listed", rule=self.name)
        return PolicyDecision.allow("All parties allow-listed", rule=self.name)


class DenyListPolicy(Policy):
    """Listed identities may not send and/or receive."""

    def __init__(
        self,
        name: str,
        addresses: list[str],
        check: str = "both",
        policy_ref: str | None = None,
    ) -> None:
        super().__init__(name, policy_ref)
        self.addresses = {normalize_identity(a) for a in addresses}
        self.check = check

    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        for role, identity in _parties(params, self.check):
            if identity in self.addresses:
                return PolicyDecision.deny(f"{role} {identity} is deny-listed", rule=self.name)
        return PolicyDecision.allow("No party deny-listed", rule=self.name)


class MaxAmountPolicy(Policy):
    """No single transfer may exceed max_amount."""

    def __init__(self, name: str, max_amount: int, policy_ref: str | None = None) -> None:
        super().__init__(name, policy_ref)
        self.max_amount = max_amount

    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        amount = params.get(PARAM_AMOUNT)
        if amount > self.max_amount:
            return PolicyDecision.deny(
                f"Amount {amount} exceeds limit {self.max_amount}",
                rule=self.name,
            )
        return PolicyDecision.allow("Amount within limit", rule=self.name)


class CumulativeVolumePolicy(Policy):
    """
    Caps total executed volume.

    The counter only moves on the mutating path. Read-only checks compare
    against it but never change it.

    State layout:
        {"used": int} when per="global"
        {"used": {sender: int}} when per="sender"
    """

    def __init__(
        self,
        name: str,
        cap: int,
        per: str = "global",
        policy_ref: str | None = None,
    ) -> None:
        super().__init__(name, policy_ref)
        if per not in ("global", "sender"):
            msg = f"Unknown volume scope: {per}"
            raise ValueError(msg)
        self.cap = cap
        self.per = per

    def used(self, state: dict[str, Any], sender: str | None = None) -> int:
        """Volume consumed so far (for sender when per='sender')."""
        if self.per == "sender":
            return state.get("used", {}).get(sender, 0)
        return state.get("used", 0)

    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        amount = params.get(PARAM_AMOUNT)
        used = self.used(state, params.get(PARAM_FROM))
        if used + amount > self.cap:
            return PolicyDecision.deny(
                f"Cumulative volume {used} + {amount} exceeds cap {self.cap}",
                rule=self.name,
            )
        return PolicyDecision.allow(f"Cumulative volume {used + amount} within cap", rule=self.name)

    def on_run(self, params: ExtractedParameters, state: dict[str, Any]) -> None:
        amount = params.get(PARAM_AMOUNT)
        if self.per == "sender":
            sender = params.get(PARAM_FROM)
            per_sender = state.setdefault("used", {})
            per_sender[sender] = per_sender.get(sender, 0) + amount
        else:
            state["used"] = state.get("used", 0) + amount


class PausePolicy(Policy):
    """Rejects everything while paused."""

    def __init__(self, name: str, paused: bool = True, policy_ref: str | None = None) -> None:
        super().__init__(name, policy_ref)
        self.paused = paused

    def evaluate(self, params: ExtractedParameters, state: dict[str, Any]) -> PolicyDecision:
        if self.paused:
            return PolicyDecision.deny("Transfers are paused", rule=self.name)
        return PolicyDecision.allow("Not paused", rule=self.name)


def build_policy(
    config: AllowListPolicyConfig
    | DenyListPolicyConfig
    | MaxAmountPolicyConfig
    | CumulativeVolumePolicyConfig
    | PausePolicyConfig,
) -> Policy:
    """Create a policy from its configuration."""
    if isinstance(config, AllowListPolicyConfig):
        return AllowListPolicy(config.name, config.addresses, config.check)
    if isinstance(config, DenyListPolicyConfig):
        return DenyListPolicy(config.name, config.addresses, config.check)
    if isinstance(config, MaxAmountPolicyConfig):
        return MaxAmountPolicy(config.name, config.max_amount)
    if isinstance(config, CumulativeVolumePolicyConfig):
        return CumulativeVolumePolicy(config.name, config.cap, config.per)
    if isinstance(config, PausePolicyConfig):
        return PausePolicy(config.name, config.paused)
    msg = f"Unknown policy config: {type(config).__name__}"
    raise ValueError(msg)
