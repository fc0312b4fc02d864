"""
Unit tests for the restriction registry.
"""

import pytest

from policybridge.errors import PermissionDeniedError
from policybridge.registry import DEFAULT_MESSAGES, UNKNOWN_CODE_MESSAGE, RestrictionRegistry

from helpers import ADMIN, MALLORY


class TestDefaults:
    """Tests for the seeded messages."""

    def test_seeded_messages(self, registry: RestrictionRegistry) -> None:
        assert registry.get(0) == "No restriction"
        assert registry.get(1) == "Transfer rejected by compliance policy"
        assert registry.get(255) == "Unknown compliance error occurred"

    def test_unknown_code(self, registry: RestrictionRegistry) -> None:
        assert registry.get(42) == UNKNOWN_CODE_MESSAGE
        assert 42 not in registry

    def test_extra_messages(self) -> None:
        """Messages given at construction are applied on top of the defaults."""
        registry = RestrictionRegistry(ADMIN, {16: "Sanctioned", 1: "Blocked"})
        assert registry.get(16) == "Sanctioned"
        assert registry.get(1) == "Blocked"
        assert registry.get(0) == "No restriction"
        assert registry.codes() == [0, 1, 16, 255]

    def test_defaults_not_shared(self) -> None:
        """Changing one registry leaves the defaults untouched."""
        registry = RestrictionRegistry(ADMIN)
        registry.set(1, "changed", caller=ADMIN)
        assert DEFAULT_MESSAGES[1] == "Transfer rejected by compliance policy"
        assert RestrictionRegistry(ADMIN).get(1) == "Transfer rejected by compliance policy"

    def test_bad_code_at_construction(self) -> None:
        with pytest.raises(ValueError):
            RestrictionRegistry(ADMIN, {256: "too big"})


class TestSet:
    """Tests for administrator updates."""

    def test_set_overwrites(self, registry: RestrictionRegistry) -> None:
        registry.set(1, "X", caller=ADMIN)
        assert registry.get(1) == "X"

    def test_set_new_code(self, registry: RestrictionRegistry) -> None:
        registry.set(16, "Sender is sanctioned", caller=ADMIN)
        assert registry.get(16) == "Sender is sanctioned"
        assert len(registry) == 4

    def test_non_admin_rejected(self, registry: RestrictionRegistry) -> None:
        """Unauthorized writes fail and change nothing."""
        with pytest.raises(PermissionDeniedError) as exc_info:
            registry.set(1, "hijacked", caller=MALLORY)
        assert exc_info.value.action == "set restriction message"
        assert registry.get(1) == "Transfer rejected by compliance policy"

    @pytest.mark.parametrize("caller", ["root", "", None])
    def test_malformed_caller_rejected(self, registry: RestrictionRegistry, caller) -> None:
        with pytest.raises(PermissionDeniedError):
            registry.set(1, "hijacked", caller=caller)
        assert registry.get(1) == "Transfer rejected by compliance policy"

    @pytest.mark.parametrize("code", [-1, 256, True, "1"])
    def test_invalid_code(self, registry: RestrictionRegistry, code) -> None:
        with pytest.raises(ValueError):
            registry.set(code, "bad", caller=ADMIN)

    def test_as_dict_sorted(self, registry: RestrictionRegistry) -> None:
        registry.set(7, "seven", caller=ADMIN)
        assert list(registry.as_dict()) == [0, 1, 7, 255]

    def test_repr(self, registry: RestrictionRegistry) -> None:
        assert repr(registry) == "<RestrictionRegistry: [0, 1, 255]>"
