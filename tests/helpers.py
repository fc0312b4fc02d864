"""
Shared constants and test doubles for policybridge tests.
"""

from policybridge.schema import EvaluationMode, EvaluationOutcome
from policybridge.validators import Validator

ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20
MALLORY = "0x" + "ee" * 20
TOKEN_1 = "0x" + "01" * 20
TOKEN_2 = "0x" + "02" * 20
TOKEN_3 = "0x" + "03" * 20


class StaticValidator(Validator):
    """A third-party validator that always returns the same answer."""

    def __init__(self, identity: str, allowed: bool, code: int | None = None) -> None:
        self._identity = identity
        self.allowed = allowed
        self.code = 0 if allowed else (code if code is not None else 1)
        self.calls: list[EvaluationMode] = []

    @property
    def identity(self) -> str:
        return self._identity

    def evaluate(self, from_, to, amount, mode=EvaluationMode.READ_ONLY) -> EvaluationOutcome:
        self.calls.append(EvaluationMode(mode))
        return EvaluationOutcome(
            allowed=self.allowed,
            code=self.code,
            message="static allow" if self.allowed else "static deny",
            validator=self._identity,
        )
