"""
Integration tests for the Bridge.

Tests cover:
- Building validators and rule sets from configuration
- Token-agnostic rules shared across ledgers
- Stateful policies across read-only and mutating evaluation
- Rollback of restricted executions
- Configuration errors
"""

import pytest

from policybridge.bridge import Bridge
from policybridge.errors import ConfigError, PermissionDeniedError
from policybridge.schema import EvaluationMode
from policybridge.validators import ComplianceAdapter, ComplianceRule, RuleSet

from helpers import ADMIN, ALICE, BOB, CAROL, MALLORY, TOKEN_1, TOKEN_2


def volume_used(bridge: Bridge, name: str, policy: str = "volume"):
    return bridge.engine.state_for(bridge.validator(name).identity, policy).get("used", 0)


# =============================================================================
# Wiring
# =============================================================================


class TestWiring:
    """Tests for building a bridge from configuration."""

    def test_builds_validators(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        assert bridge.names() == ["shared-rule", "token-1", "main"]
        assert isinstance(bridge.validator("shared-rule"), ComplianceRule)
        assert isinstance(bridge.validator("token-1"), ComplianceAdapter)
        assert isinstance(bridge.validator("main"), RuleSet)
        assert bridge.validator("token-1").target == TOKEN_1

    def test_policies_registered_against_validator(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        rule = bridge.validator("shared-rule")
        names = [p.name for p in bridge.engine.policies_for(rule.identity, rule.operation_id)]
        assert names == ["sanctions", "volume"]

    def test_custom_messages(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        assert bridge.registry.get(16) == "Sender is sanctioned"
        assert bridge.registry.get(1) == "Transfer rejected by compliance policy"

    def test_from_file(self, temp_dir, sample_config_yaml: str) -> None:
        path = temp_dir / "bridge.yaml"
        path.write_text(sample_config_yaml)
        assert "main" in Bridge.from_file(path).names()

    def test_fixed_identities(self) -> None:
        identity = "0x" + "77" * 20
        bridge = Bridge.from_string(
            f"""
admin: "{ADMIN}"
validators:
  - name: r
    kind: rule
    identity: "{identity}"
"""
        )
        assert bridge.validator("r").identity == identity


# =============================================================================
# Evaluation
# =============================================================================


class TestEvaluation:
    """Tests for evaluating through the bridge."""

    def test_rule_set_rejects_sanctioned_sender(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        outcome = bridge.evaluate("main", MALLORY, BOB, 10)
        assert outcome.code == 1
        assert outcome.validator == bridge.validator("shared-rule").identity
        assert "deny-listed" in outcome.reason

    def test_rule_set_allows(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        assert bridge.evaluate("main", ALICE, BOB, 10).allowed

    def test_message_update_visible(self, sample_config_yaml: str) -> None:
        """A registry update changes the message for the same code."""
        bridge = Bridge.from_string(sample_config_yaml)
        bridge.registry.set(1, "X", caller=ADMIN)
        outcome = bridge.evaluate("main", MALLORY, BOB, 10)
        assert outcome.code == 1
        assert outcome.message == "X"

    def test_default_deny(self) -> None:
        bridge = Bridge.from_string(
            f"""
admin: "{ADMIN}"
default_allow: false
validators:
  - name: empty
    kind: rule
"""
        )
        outcome = bridge.evaluate("empty", ALICE, BOB, 1)
        assert outcome.code == 1
        assert outcome.reason == "No policy registered"
        assert bridge.evaluate("empty", ALICE, BOB, 1, EvaluationMode.MUTATING).code == 1


class TestTokenAgnosticRules:
    """Tests for one rule serving several ledgers."""

    CONFIG = f"""
admin: "{ADMIN}"
policies:
  - name: volume
    type: cumulative_volume
    cap: 300
  - name: small
    type: max_amount
    max_amount: 50
validators:
  - name: shared
    kind: rule
    policies: [volume]
  - name: token-1
    kind: adapter
    target: "{TOKEN_1}"
    policies: [small]
rule_sets:
  - name: token-2
    validators: [shared]
  - name: token-3
    validators: [shared]
"""

    def test_shared_rule_state_spans_ledgers(self) -> None:
        """Executions for different ledgers consume the same counter."""
        bridge = Bridge.from_string(self.CONFIG)

        for ledger in ("token-2", "token-3", "token-2"):
            assert bridge.execute(ledger, ALICE, BOB, 100).allowed
        assert volume_used(bridge, "shared") == 300
        assert bridge.execute("token-3", CAROL, BOB, 1).code == 1
        assert not bridge.validator("shared").validate_transfer(CAROL, BOB, 1)

    def test_adapter_is_isolated(self) -> None:
        """The adapter neither sees the rule's policies nor serves other ledgers."""
        bridge = Bridge.from_string(self.CONFIG)
        adapter = bridge.validator("token-1")
        rule = bridge.validator("shared")

        assert adapter.detect_transfer_restriction(ALICE, BOB, 400) == 1
        assert rule.validate_transfer(ALICE, BOB, 40)
        assert adapter.operate_on_transfer(ALICE, BOB, 40, caller=TOKEN_1) == 0
        with pytest.raises(PermissionDeniedError):
            adapter.operate_on_transfer(ALICE, BOB, 40, caller=TOKEN_2)
        assert volume_used(bridge, "shared") == 0


# =============================================================================
# State
# =============================================================================


class TestCumulativeVolume:
    """Tests for state across read-only and mutating paths."""

    def test_cap_reached_after_three_runs(self, sample_config_yaml: str) -> None:
        """Read-only checks between runs never move the counter."""
        bridge = Bridge.from_string(sample_config_yaml)

        for expected in (100, 200, 300):
            assert bridge.evaluate("shared-rule", ALICE, BOB, 100).allowed
            assert bridge.evaluate("shared-rule", ALICE, BOB, 100).allowed
            assert bridge.execute("shared-rule", ALICE, BOB, 100).allowed
            assert volume_used(bridge, "shared-rule") == expected

        read_only = bridge.evaluate("shared-rule", ALICE, BOB, 100)
        assert read_only.code == 1
        outcome = bridge.execute("shared-rule", ALICE, BOB, 100)
        assert outcome.code == 1
        assert "exceeds cap" in outcome.reason
        assert volume_used(bridge, "shared-rule") == 300

    def test_read_only_view_from_bridge(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        view = bridge.validator("main").read_only()
        for _ in range(10):
            assert view.validate_transfer(ALICE, BOB, 100)
        assert volume_used(bridge, "shared-rule") == 0


class TestExecuteRollback:
    """Tests for atomic execution."""

    CONFIG = f"""
admin: "{ADMIN}"
policies:
  - name: volume
    type: cumulative_volume
    cap: 1000
  - name: small
    type: max_amount
    max_amount: 50
validators:
  - name: counter
    kind: rule
    policies: [volume]
  - name: strict
    kind: rule
    policies: [small]
rule_sets:
  - name: both
    mode: all
    validators: [counter, strict]
"""

    def test_restricted_execution_rolls_back(self) -> None:
        """Counters moved by earlier members are restored when a later one rejects."""
        bridge = Bridge.from_string(self.CONFIG)
        outcome = bridge.execute("both", ALICE, BOB, 100)
        assert outcome.code == 1
        assert volume_used(bridge, "counter") == 0

    def test_allowed_execution_commits(self) -> None:
        bridge = Bridge.from_string(self.CONFIG)
        assert bridge.execute("both", ALICE, BOB, 50).allowed
        assert volume_used(bridge, "counter") == 50

    def test_mutating_rule_set_evaluate_rolls_back(self) -> None:
        """A rule set undoes its members' runs even without execute()."""
        bridge = Bridge.from_string(self.CONFIG)
        assert bridge.evaluate("both", ALICE, BOB, 100, EvaluationMode.MUTATING).code == 1
        assert volume_used(bridge, "counter") == 0
        assert not bridge.rule_set("both").operate_on_transfer(ALICE, BOB, 100)
        assert volume_used(bridge, "counter") == 0

    def test_single_member_mutating_evaluate_commits(self) -> None:
        """A lone validator outside a rule set commits its own run."""
        bridge = Bridge.from_string(self.CONFIG)
        assert bridge.evaluate("counter", ALICE, BOB, 100, EvaluationMode.MUTATING).allowed
        assert volume_used(bridge, "counter") == 100

    def test_host_transaction(self) -> None:
        """A failing host operation undoes runs made inside its transaction."""
        bridge = Bridge.from_string(self.CONFIG)
        with pytest.raises(RuntimeError):
            with bridge.transaction():
                assert bridge.execute("both", ALICE, BOB, 10).allowed
                raise RuntimeError("ledger write failed")
        assert volume_used(bridge, "counter") == 0


# =============================================================================
# Configuration Errors
# =============================================================================


class TestConfigErrors:
    """Tests for unresolved references."""

    def test_unknown_policy(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            Bridge.from_string(
                f"""
admin: "{ADMIN}"
validators:
  - name: r
    kind: rule
    policies: [missing]
"""
            )
        assert exc_info.value.reference == "missing"

    def test_unknown_validator(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            Bridge.from_string(
                f"""
admin: "{ADMIN}"
rule_sets:
  - name: s
    validators: [ghost]
"""
            )
        assert exc_info.value.reference == "ghost"

    def test_rule_set_can_nest_earlier_rule_set(self) -> None:
        bridge = Bridge.from_string(
            f"""
admin: "{ADMIN}"
validators:
  - name: r
    kind: rule
rule_sets:
  - name: inner
    mode: any
    validators: [r]
  - name: outer
    validators: [inner]
"""
        )
        assert bridge.validator("inner") in bridge.validator("outer").validators

    def test_rule_set_lookup(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        assert len(bridge.rule_set("main")) == 2
        with pytest.raises(ConfigError):
            bridge.rule_set("shared-rule")

    def test_unknown_name_lookup(self, sample_config_yaml: str) -> None:
        bridge = Bridge.from_string(sample_config_yaml)
        with pytest.raises(ConfigError):
            bridge.evaluate("nope", ALICE, BOB, 1)
