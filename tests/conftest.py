"""
Pytest configuration and fixtures for policybridge tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from policybridge.policy import InMemoryPolicyEngine
from policybridge.registry import RestrictionRegistry

from helpers import ADMIN, MALLORY, TOKEN_1, StaticValidator


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def engine() -> InMemoryPolicyEngine:
    """An engine administered by ADMIN that allows when no policy is set."""
    return InMemoryPolicyEngine(admin=ADMIN)


@pytest.fixture
def registry() -> RestrictionRegistry:
    """A registry with the default messages."""
    return RestrictionRegistry(admin=ADMIN)


@pytest.fixture
def accepting() -> StaticValidator:
    return StaticValidator("0x" + "0a" * 20, allowed=True)


@pytest.fixture
def rejecting() -> StaticValidator:
    return StaticValidator("0x" + "0d" * 20, allowed=False)


@pytest.fixture
def sample_config_yaml() -> str:
    """A configuration with a shared rule, an adapter and a rule set."""
    return f"""
admin: "{ADMIN}"
restriction_messages:
  16: "Sender is sanctioned"
policies:
  - name: sanctions
    type: deny_list
    addresses: ["{MALLORY}"]
  - name: volume
    type: cumulative_volume
    cap: 300
  - name: max-per-transfer
    type: max_amount
    max_amount: 1000
validators:
  - name: shared-rule
    kind: rule
    policies: [sanctions, volume]
  - name: token-1
    kind: adapter
    target: "{TOKEN_1}"
    policies: [max-per-transfer]
rule_sets:
  - name: main
    mode: all
    validators: [shared-rule, token-1]
"""
