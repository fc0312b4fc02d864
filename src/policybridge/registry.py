"""
Restriction registry for policybridge.

The registry maps restriction codes to the messages a ledger shows its
users. It is seeded with defaults at construction and only the administrator
may change it afterwards.

Design:
    - One registry per bridge, passed by reference to every validator
    - No module-level instance; whoever builds the bridge owns it
    - Writes are serialized with a lock

Usage:
    registry = RestrictionRegistry(admin=ADMIN)
    registry.get(1)  # "Transfer rejected by compliance policy"
    registry.set(1, "Blocked by KYC", caller=ADMIN)
"""

import logging
import threading
from collections.abc import Mapping

from policybridge.errors import (
    RESTRICTION_OK,
    RESTRICTION_POLICY_REJECTED,
    RESTRICTION_UNKNOWN_ERROR,
    PermissionDeniedError,
)
from policybridge.schema import normalize_identity, same_identity

logger = logging.getLogger(__name__)

DEFAULT_MESSAGES = {
    RESTRICTION_OK: "No restriction",
    RESTRICTION_POLICY_REJECTED: "Transfer rejected by compliance policy",
    RESTRICTION_UNKNOWN_ERROR: "Unknown compliance error occurred",
}

UNKNOWN_CODE_MESSAGE = "Unknown restriction code"


def _check_code(code: int) -> int:
    if isinstance(code, bool) or not isinstance(code, int) or not 0 <= code <= 255:
        msg = f"Restriction code must be an integer in 0-255, got {code!r}"
        raise ValueError(msg)
    return code


class RestrictionRegistry:
    """
    Keyed store of restriction code -> message.

    Attributes:
        admin: Identity allowed to change messages
        _messages: Internal mapping of codes to messages
    """

    def __init__(self, admin: str, messages: Mapping[int, str] | None = None) -> None:
        """
        Initialize the registry with the default messages.

        Args:
            admin: Identity holding the administrator capability
            messages: Extra messages applied on top of the defaults
        """
        self.admin = normalize_identity(admin)
        self._messages: dict[int, str] = dict(DEFAULT_MESSAGES)
        self._lock = threading.Lock()
        for code, message in (messages or {}).items():
            self._messages[_check_code(code)] = message

    def set(self, code: int, message: str, *, caller: str) -> None:
        """
        Set the message for a code, overwriting any previous one.

        Raises:
            PermissionDeniedError: If caller is not the admin
            ValueError: If code is outside 0-255
        """
        if not same_identity(caller, self.admin):
            raise PermissionDeniedError(caller=caller, action="set restriction message")
        _check_code(code)
        with self._lock:
            self._messages[code] = message
        logger.info("Restriction message for code %d set to %r", code, message)

    def get(self, code: int) -> str:
        """Return the message for code, or a fixed text if none is set."""
        return self._messages.get(code, UNKNOWN_CODE_MESSAGE)

    def codes(self) -> list[int]:
        """List the codes that have a message, in ascending order."""
        return sorted(self._messages)

    def as_dict(self) -> dict[int, str]:
        return dict(sorted(self._messages.items()))

    def __contains__(self, code: int) -> bool:
        return code in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        codes = ", ".join(str(c) for c in self.codes())
        return f"<RestrictionRegistry: [{codes}]>"
