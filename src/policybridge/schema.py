"""
Schema definitions for policybridge.

This module defines the Pydantic models used throughout the bridge:
- CallPayload/ExtractedParameters: What the policy engine is asked about
- PolicyDecision: What a single policy decided
- EvaluationOutcome: What a validator reports back to the ledger
- BridgeConfig and friends: The YAML configuration file

Design Decisions:
    - Runtime models are frozen; a payload is built fresh per evaluation
    - Identities are normalized to lowercase on validation
    - Configuration models forbid unknown keys
"""

import re
from enum import Enum, IntEnum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from policybridge.errors import RESTRICTION_OK


# =============================================================================
# Identities and Amounts
# =============================================================================

IDENTITY_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
ZERO_IDENTITY = "0x" + "00" * 20
MAX_AMOUNT = 2**256 - 1


def normalize_identity(value: str) -> str:
    """
    Validate and normalize an identity.

    Identities are 20-byte values written as 0x-prefixed hex.

    Raises:
        ValueError: If the value is not a well-formed identity
    """
    if not isinstance(value, str) or not IDENTITY_PATTERN.match(value):
        msg = f"Invalid identity: {value!r}"
        raise ValueError(msg)
    return value.lower()


def same_identity(value: str, expected: str) -> bool:
    """
    Check whether value names the (already normalized) expected identity.

    A value that is not a well-formed identity never matches.
    """
    try:
        return normalize_identity(value) == expected
    except ValueError:
        return False


def validate_amount(value: int) -> int:
    """Validate that an amount fits in an unsigned 256-bit word."""
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Amount must be an integer, got {type(value).__name__}"
        raise ValueError(msg)
    if value < 0 or value > MAX_AMOUNT:
        msg = f"Amount out of range: {value}"
        raise ValueError(msg)
    return value


Identity = Annotated[str, AfterValidator(normalize_identity)]


# =============================================================================
# Enums
# =============================================================================


class OperationId(IntEnum):
    """
    Operation discriminators understood by the extractor.

    TRANSFER carries (to, amount); the sender is the caller.
    TRANSFER_FROM and VALIDATE_TRANSFER carry (from, to, amount).
    """

    TRANSFER = 1
    TRANSFER_FROM = 2
    VALIDATE_TRANSFER = 3


class EvaluationMode(str, Enum):
    """Whether an evaluation may produce persistent side effects."""

    READ_ONLY = "read_only"
    MUTATING = "mutating"


class CombinationMode(str, Enum):
    """How a rule set combines its validators."""

    ALL = "all"
    ANY = "any"


# =============================================================================
# Runtime Models
# =============================================================================


class CallPayload(BaseModel):
    """
    A single request to the policy engine.

    Attributes:
        operation_id: Operation discriminator (see OperationId)
        caller_identity: Identity on whose behalf the operation runs
        raw_data: Encoded operation arguments
        context: Opaque extra context, passed through untouched
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    operation_id: int = Field(..., ge=0, description="Operation discriminator")
    caller_identity: str = Field(..., description="Identity of the caller")
    raw_data: bytes = Field(default=b"", description="Encoded operation arguments")
    context: bytes = Field(default=b"", description="Opaque context bytes")


class ExtractedParameters(BaseModel):
    """
    Named parameters decoded from a CallPayload.

    Parameters keep the order in which the extractor produced them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pairs: tuple[tuple[str, Any], ...] = Field(default=())

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default if absent."""
        for name, value in self.pairs:
            if name == key:
                return value
        return default

    def keys(self) -> list[str]:
        return [name for name, _ in self.pairs]

    def as_dict(self) -> dict[str, Any]:
        return dict(self.pairs)


class PolicyDecision(BaseModel):
    """
    Result of evaluating one policy against extracted parameters.

    Attributes:
        allowed: Whether the policy permits the operation
        reason: Human-readable explanation of the decision
        rule_matched: Which policy produced this decision
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool = Field(..., description="Whether the operation is permitted")
    reason: str = Field(..., description="Human-readable explanation")
    rule_matched: str | None = Field(default=None, description="Policy that decided")

    @classmethod
    def allow(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create an ALLOW decision."""
        return cls(allowed=True, reason=reason, rule_matched=rule)

    @classmethod
    def deny(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        """Create a DENY decision."""
        return cls(allowed=False, reason=reason, rule_matched=rule)


class EvaluationOutcome(BaseModel):
    """
    What a validator reports for one transfer.

    Code 0 always means allowed, and only code 0 does.

    Attributes:
        allowed: Whether the transfer may proceed
        code: Restriction code (0-255)
        message: Registry message for the code
        reason: Engine-supplied reason, when the engine gave one
        validator: Identity of the validator that produced the outcome
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    code: int = Field(..., ge=0, le=255)
    message: str
    reason: str | None = None
    validator: str | None = None

    @model_validator(mode="after")
    def check_code_matches_allowed(self) -> "EvaluationOutcome":
        if self.allowed != (self.code == RESTRICTION_OK):
            msg = f"Outcome with code {self.code} cannot have allowed={self.allowed}"
            raise ValueError(msg)
        return self


# =============================================================================
# Configuration Models
# =============================================================================


class AllowListPolicyConfig(BaseModel):
    """Only listed identities may take part in a transfer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["allow_list"]
    name: str = Field(..., min_length=1)
    addresses: list[Identity] = Field(default_factory=list)
    check: Literal["from", "to", "both"] = "both"


class DenyListPolicyConfig(BaseModel):
    """Listed identities may not take part in a transfer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["deny_list"]
    name: str = Field(..., min_length=1)
    addresses: list[Identity] = Field(default_factory=list)
    check: Literal["from", "to", "both"] = "both"


class MaxAmountPolicyConfig(BaseModel):
    """No single transfer may exceed max_amount."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["max_amount"]
    name: str = Field(..., min_length=1)
    max_amount: int = Field(..., ge=0)


class CumulativeVolumePolicyConfig(BaseModel):
    """Total executed volume may not exceed cap."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["cumulative_volume"]
    name: str = Field(..., min_length=1)
    cap: int = Field(..., ge=0)
    per: Literal["global", "sender"] = "global"


class PausePolicyConfig(BaseModel):
    """Rejects every transfer while paused."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["pause"]
    name: str = Field(..., min_length=1)
    paused: bool = True


PolicyConfig = Annotated[
    Union[
        AllowListPolicyConfig,
        DenyListPolicyConfig,
        MaxAmountPolicyConfig,
        CumulativeVolumePolicyConfig,
        PausePolicyConfig,
    ],
    Field(discriminator="type"),
]


class ValidatorConfig(BaseModel):
    """
    A validator wired into the bridge.

    Attributes:
        name: Name used by rule sets and the CLI
        kind: "adapter" (bound to one target) or "rule" (token-agnostic)
        identity: Fixed identity; generated when omitted
        target: Bound target identity (adapters only)
        policies: Names of policies registered against this validator
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    kind: Literal["adapter", "rule"]
    identity: Identity | None = None
    target: Identity | None = None
    policies: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_target(self) -> "ValidatorConfig":
        if self.kind == "adapter" and self.target is None:
            msg = f"Adapter {self.name!r} needs a target"
            raise ValueError(msg)
        if self.kind == "rule" and self.target is not None:
            msg = f"Rule {self.name!r} is token-agnostic and cannot have a target"
            raise ValueError(msg)
        return self


class RuleSetConfig(BaseModel):
    """An ordered combination of validators."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    mode: CombinationMode = CombinationMode.ALL
    identity: Identity | None = None
    validators: list[str] = Field(default_factory=list)
    empty_allows: bool = True


class BridgeConfig(BaseModel):
    """
    Complete bridge configuration.

    Attributes:
        admin: Identity holding the administrator capability
        default_allow: Engine outcome when no policy is registered
        restriction_messages: Extra or overriding restriction messages
        policies: Policy definitions
        validators: Validators and the policies registered against them
        rule_sets: Rule sets over the validators
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    admin: Identity
    default_allow: bool = True
    restriction_messages: dict[int, str] = Field(default_factory=dict)
    policies: list[PolicyConfig] = Field(default_factory=list)
    validators: list[ValidatorConfig] = Field(default_factory=list)
    rule_sets: list[RuleSetConfig] = Field(default_factory=list)

    @field_validator("restriction_messages")
    @classmethod
    def validate_codes(cls, v: dict[int, str]) -> dict[int, str]:
        for code in v:
            if code < 0 or code > 255:
                msg = f"Restriction code out of range: {code}"
                raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_unique_names(self) -> "BridgeConfig":
        for label, names in (
            ("policy", [p.name for p in self.policies]),
            ("validator", [v.name for v in self.validators] + [r.name for r in self.rule_sets]),
        ):
            seen: set[str] = set()
            for name in names:
                if name in seen:
                    msg = f"Duplicate {label} name: {name}"
                    raise ValueError(msg)
                seen.add(name)
        return self


class TransferRequest(BaseModel):
    """One transfer in a simulation file."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    validator: str
    from_: Identity = Field(..., alias="from")
    to: Identity
    amount: Annotated[int, AfterValidator(validate_amount)]


class TransferBatch(BaseModel):
    """An ordered list of transfers to execute."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    transfers: list[TransferRequest] = Field(default_factory=list)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> BridgeConfig:
    """
    Load a bridge configuration from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return BridgeConfig.model_validate(data)


def load_config_from_string(content: str) -> BridgeConfig:
    """Load a bridge configuration from a YAML string."""
    data = yaml.safe_load(content)
    return BridgeConfig.model_validate(data)


def load_transfers(path: Path | str) -> TransferBatch:
    """Load a list of transfers from a YAML file."""
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    if isinstance(data, list):
        data = {"transfers": data}
    return TransferBatch.model_validate(data)
