"""
Exception hierarchy for policybridge.

All policybridge exceptions inherit from BridgeError, allowing callers to catch
all bridge-specific exceptions with a single except clause.

Exception Categories:
    - Extraction errors: the call payload could not be decoded
    - Engine failures: the policy engine rejected or failed an evaluation
    - Access errors: a privileged or mutating action was attempted without
      the required capability
    - ConfigError: the bridge configuration is invalid

Engine failures are special: they are produced by the failure classifier
and carried as values by the engine client. Each one knows the restriction
code it maps to, so validators never inspect raw failure data.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Extraction errors: 1xxx
ERROR_UNSUPPORTED_OPERATION = 1001
ERROR_MALFORMED_PAYLOAD = 1002

# Engine errors: 2xxx
ERROR_POLICY_REJECTED = 2001
ERROR_POLICY_RUN_REJECTED = 2002
ERROR_UNKNOWN_ENGINE_FAILURE = 2003
ERROR_ENGINE_REVERT = 2004

# Access errors: 3xxx
ERROR_PERMISSION_DENIED = 3001
ERROR_CAPABILITY = 3002
ERROR_REENTRANT_EVALUATION = 3003

# Configuration errors: 4xxx
ERROR_CONFIG_INVALID = 4001


# =============================================================================
# Restriction Codes
# =============================================================================

RESTRICTION_OK = 0
RESTRICTION_POLICY_REJECTED = 1
RESTRICTION_UNKNOWN_ERROR = 255


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class BridgeError(Exception):
    """
    Base exception for all policybridge errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Extraction Errors
# =============================================================================


@dataclass
class ExtractionError(BridgeError):
    """
    Base class for payload extraction errors.

    Both subclasses are fatal: they are surfaced immediately and never retried.

    Attributes:
        operation_id: The operation discriminator of the payload
    """

    operation_id: int | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation_id"] = self.operation_id


@dataclass
class UnsupportedOperationError(ExtractionError):
    """Raised when the extractor is given an unrecognized operation id."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unsupported operation: {self.operation_id}"
        if self.code == 0:
            self.code = ERROR_UNSUPPORTED_OPERATION
        super().__post_init__()


@dataclass
class MalformedPayloadError(ExtractionError):
    """Raised when raw call data cannot be decoded for a recognized operation."""

    detail: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed payload for operation {self.operation_id}: {self.detail}"
        if self.code == 0:
            self.code = ERROR_MALFORMED_PAYLOAD
        super().__post_init__()
        self.context["detail"] = self.detail


# =============================================================================
# Engine Failures
# =============================================================================


@dataclass
class EngineRevert(BridgeError):
    """
    Raised by a policy engine when check() or run() fails.

    The payload is opaque: only the failure classifier interprets it.

    Attributes:
        data: Raw failure data
    """

    data: bytes = b""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Policy engine reverted ({len(self.data)} bytes of failure data)"
        if self.code == 0:
            self.code = ERROR_ENGINE_REVERT
        self.context["data"] = self.data.hex()


@dataclass
class EngineFailure(BridgeError):
    """
    Base class for classified engine failures.

    Attributes:
        restriction_code: Restriction code this failure maps to
    """

    restriction_code: int = RESTRICTION_UNKNOWN_ERROR

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["restriction_code"] = self.restriction_code

    @property
    def reason(self) -> str | None:
        """Engine-supplied reason, if the failure carried one."""
        return None


@dataclass
class PolicyRejectedError(EngineFailure):
    """An explicit policy rejection from the read-only path."""

    policy_reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Policy rejected: {self.policy_reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_REJECTED
        self.restriction_code = RESTRICTION_POLICY_REJECTED
        super().__post_init__()
        self.context["reason"] = self.policy_reason

    @property
    def reason(self) -> str | None:
        return self.policy_reason


@dataclass
class PolicyRunRejectedError(EngineFailure):
    """An explicit policy rejection from the mutating path."""

    operation_id: int = 0
    policy_ref: str = ""
    policy_reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Policy {self.policy_ref} rejected operation "
                f"{self.operation_id}: {self.policy_reason}"
            )
        if self.code == 0:
            self.code = ERROR_POLICY_RUN_REJECTED
        self.restriction_code = RESTRICTION_POLICY_REJECTED
        super().__post_init__()
        self.context.update({
            "operation_id": self.operation_id,
            "policy_ref": self.policy_ref,
            "reason": self.policy_reason,
        })

    @property
    def reason(self) -> str | None:
        return self.policy_reason


@dataclass
class UnknownEngineFailureError(EngineFailure):
    """Any failure shape the classifier does not recognize."""

    data: bytes = b""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unknown engine failure ({len(self.data)} bytes)"
        if self.code == 0:
            self.code = ERROR_UNKNOWN_ENGINE_FAILURE
        self.restriction_code = RESTRICTION_UNKNOWN_ERROR
        super().__post_init__()
        self.context["data"] = self.data.hex()


# =============================================================================
# Access Errors
# =============================================================================


@dataclass
class PermissionDeniedError(BridgeError):
    """
    Raised when a privileged action is attempted by someone else.

    Attributes:
        caller: Identity that attempted the action
        action: Name of the privileged action
    """

    caller: str = ""
    action: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"{self.caller or 'anonymous'} is not allowed to {self.action}"
        if self.code == 0:
            self.code = ERROR_PERMISSION_DENIED
        self.context.update({
            "caller": self.caller,
            "action": self.action,
        })


@dataclass
class CapabilityError(BridgeError):
    """Raised when a mutating evaluation is requested through a read-only view."""

    validator: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Mutating evaluation is not available on read-only view of {self.validator}"
        if self.code == 0:
            self.code = ERROR_CAPABILITY
        if not self.suggestion:
            self.suggestion = "Call the validator itself from the code path that executes the transfer"
        self.context["validator"] = self.validator


@dataclass
class ReentrantEvaluationError(BridgeError):
    """Raised when a validator is called again while it is still evaluating."""

    validator: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Re-entrant evaluation of validator {self.validator}"
        if self.code == 0:
            self.code = ERROR_REENTRANT_EVALUATION
        self.context["validator"] = self.validator


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(BridgeError):
    """
    Raised when the bridge configuration is invalid.

    Attributes:
        reference: The name that could not be resolved (if applicable)
    """

    reference: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration: unknown reference {self.reference!r}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["reference"] = self.reference
