"""
Engine client binding.

Validators never call a policy engine directly. They go through an
EngineClient bound to their own identity, which turns the engine's
exceptions into an EngineResult value:

    success         the engine allowed the operation
    failure         a classified EngineFailure (see policy.failures)

Extraction and access errors are not engine outcomes. They propagate.
"""

import logging
from dataclasses import dataclass

from policybridge.errors import (
    BridgeError,
    EngineFailure,
    EngineRevert,
    UnknownEngineFailureError,
)
from policybridge.policy.engine import PolicyEngine
from policybridge.policy.failures import classify_failure
from policybridge.schema import CallPayload, normalize_identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineResult:
    """
    Outcome of one engine call.

    Attributes:
        ok: Whether the engine allowed the operation
        failure: The classified failure when ok is False
    """

    ok: bool
    failure: EngineFailure | None = None

    @classmethod
    def success(cls) -> "EngineResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, failure: EngineFailure) -> "EngineResult":
        return cls(ok=False, failure=failure)


class EngineClient:
    """
    Calls a policy engine on behalf of one validator identity.

    Attributes:
        engine: The policy engine
        identity: Identity the engine keys policies by
    """

    def __init__(self, engine: PolicyEngine, identity: str) -> None:
        self.engine = engine
        self.identity = normalize_identity(identity)

    def check(self, payload: CallPayload) -> EngineResult:
        """Read-only evaluation."""
        return self._call(self.engine.check, payload)

    def run(self, payload: CallPayload) -> EngineResult:
        """Mutating evaluation."""
        return self._call(self.engine.run, payload)

    def _call(self, entry_point, payload: CallPayload) -> EngineResult:
        try:
            entry_point(self.identity, payload)
        except EngineRevert as e:
            return EngineResult.failed(classify_failure(e.data))
        except BridgeError:
            raise
        except Exception as e:
            # Fail closed: an engine that breaks is an unknown failure, not a pass
            logger.warning("Policy engine raised %s for %s: %s", type(e).__name__, self.identity, e)
            return EngineResult.failed(UnknownEngineFailureError(message=f"Policy engine error: {e}"))
        return EngineResult.success()
