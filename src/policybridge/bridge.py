"""
Bridge wiring for policybridge.

The Bridge builds everything a configuration file describes and keeps it
together:
- One policy engine and one restriction registry
- Validators, with their policies registered against their own identity
- Rule sets over those validators

Execution Flow (execute):
    1. Open an engine transaction
    2. Evaluate the transfer in MUTATING mode
    3. Restricted -> roll back every state change made in step 2
    4. Allowed -> keep them

Usage:
    bridge = Bridge.from_file("bridge.yaml")
    outcome = bridge.evaluate("main", sender, recipient, 100)
    outcome = bridge.execute("main", sender, recipient, 100)
"""

import logging
from pathlib import Path

from policybridge.errors import ConfigError
from policybridge.policy import InMemoryPolicyEngine, Policy, build_policy
from policybridge.registry import RestrictionRegistry
from policybridge.schema import (
    BridgeConfig,
    EvaluationMode,
    EvaluationOutcome,
    OperationId,
    ValidatorConfig,
    load_config,
    load_config_from_string,
)
from policybridge.validators import ComplianceAdapter, ComplianceRule, RuleSet, Validator

logger = logging.getLogger(__name__)


class _Rollback(Exception):
    """Unwinds an engine transaction for a restricted transfer."""


class Bridge:
    """
    Everything built from one BridgeConfig.

    Attributes:
        config: The configuration the bridge was built from
        engine: Policy engine shared by all validators
        registry: Restriction registry shared by all validators
    """

    def __init__(self, config: BridgeConfig, engine: InMemoryPolicyEngine | None = None) -> None:
        """
        Build the bridge.

        Raises:
            ConfigError: If a validator or rule set references an unknown name
        """
        self.config = config
        self.admin = config.admin
        self.engine = engine or InMemoryPolicyEngine(config.admin, default_allow=config.default_allow)
        self.registry = RestrictionRegistry(config.admin, config.restriction_messages)
        self._policies: dict[str, Policy] = {p.name: build_policy(p) for p in config.policies}
        self._validators: dict[str, Validator] = {}

        for validator_config in config.validators:
            self._validators[validator_config.name] = self._build_validator(validator_config)

        for rule_set_config in config.rule_sets:
            members = [self._resolve(name) for name in rule_set_config.validators]
            self._validators[rule_set_config.name] = RuleSet(
                self.registry,
                rule_set_config.mode,
                members,
                admin=config.admin,
                identity=rule_set_config.identity,
                empty_allows=rule_set_config.empty_allows,
            )

        logger.debug("Bridge built with validators: %s", ", ".join(self._validators))

    @classmethod
    def from_file(cls, path: str | Path) -> "Bridge":
        return cls(load_config(path))

    @classmethod
    def from_string(cls, content: str) -> "Bridge":
        return cls(load_config_from_string(content))

    def _build_validator(self, config: ValidatorConfig) -> Validator:
        if config.kind == "adapter":
            validator = ComplianceAdapter(
                self.engine, self.registry, target=config.target, identity=config.identity
            )
        else:
            validator = ComplianceRule(self.engine, self.registry, identity=config.identity)

        for policy_name in config.policies:
            policy = self._policies.get(policy_name)
            if policy is None:
                raise ConfigError(
                    reference=policy_name,
                    message=f"Validator {config.name!r} references unknown policy {policy_name!r}",
                )
            self.engine.add_policy(
                validator.identity,
                OperationId.VALIDATE_TRANSFER,
                policy,
                caller=self.admin,
            )
        return validator

    def _resolve(self, name: str) -> Validator:
        validator = self._validators.get(name)
        if validator is None:
            raise ConfigError(reference=name, message=f"Unknown validator or rule set: {name!r}")
        return validator

    def validator(self, name: str) -> Validator:
        """
        Look up a validator or rule set by name.

        Raises:
            ConfigError: If no validator has that name
        """
        return self._resolve(name)

    def rule_set(self, name: str) -> RuleSet:
        """
        Look up a rule set by name.

        Raises:
            ConfigError: If the name is unknown or is not a rule set
        """
        validator = self._resolve(name)
        if not isinstance(validator, RuleSet):
            raise ConfigError(reference=name, message=f"{name!r} is not a rule set")
        return validator

    def names(self) -> list[str]:
        """Names of all validators and rule sets, in configuration order."""
        return list(self._validators)

    def evaluate(
        self,
        name: str,
        from_: str,
        to: str,
        amount: int,
        mode: EvaluationMode = EvaluationMode.READ_ONLY,
    ) -> EvaluationOutcome:
        """Evaluate a transfer with the named validator."""
        return self._resolve(name).evaluate(from_, to, amount, mode)

    def execute(self, name: str, from_: str, to: str, amount: int) -> EvaluationOutcome:
        """
        Evaluate an executing transfer atomically.

        State changes made during a restricted evaluation (for example by
        earlier members of an ALL rule set) are rolled back.
        """
        validator = self._resolve(name)
        outcome = None
        try:
            with self.engine.transaction():
                outcome = validator.evaluate(from_, to, amount, EvaluationMode.MUTATING)
                if not outcome.allowed:
                    raise _Rollback
        except _Rollback:
            logger.info("Transfer via %s restricted (code %d); state rolled back", name, outcome.code)
        return outcome

    def transaction(self):
        """Engine transaction for a host operation spanning several calls."""
        return self.engine.transaction()
