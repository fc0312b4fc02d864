"""
Policy module for policybridge.

The policy engine is an external collaborator of the bridge. This package
holds its contract, an in-process implementation with a few built-in
policies, and the encoding of the failure data engines report.

Key concepts:
    - PolicyEngine: check() is read-only, run() may mutate state atomically
    - Policies are registered per (validator identity, operation id)
    - Failures are opaque bytes; classify_failure() is the only reader
"""

from policybridge.policy.engine import InMemoryPolicyEngine, PolicyEngine, PostRunHook
from policybridge.policy.failures import (
    classify_failure,
    encode_policy_rejected,
    encode_policy_run_rejected,
)
from policybridge.policy.policies import (
    AllowListPolicy,
    CumulativeVolumePolicy,
    DenyListPolicy,
    MaxAmountPolicy,
    PausePolicy,
    Policy,
    build_policy,
)

__all__ = [
    "AllowListPolicy",
    "CumulativeVolumePolicy",
    "DenyListPolicy",
    "InMemoryPolicyEngine",
    "MaxAmountPolicy",
    "PausePolicy",
    "Policy",
    "PolicyEngine",
    "PostRunHook",
    "build_policy",
    "classify_failure",
    "encode_policy_rejected",
    "encode_policy_run_rejected",
]
