"""
Unit tests for the extractor and word codec.

Tests cover:
- Two-field and three-field shapes
- Purity of extraction
- Unsupported operations
- Malformed payloads (wrong length, dirty padding, bad caller)
"""

import pytest

from policybridge.errors import MalformedPayloadError, UnsupportedOperationError
from policybridge.extract import (
    Extractor,
    encode_transfer,
    encode_transfer_from,
    extract,
)
from policybridge.extract.codec import (
    decode_identity,
    decode_string,
    encode_identity,
    encode_string,
    split_words,
)
from policybridge.schema import CallPayload, OperationId

from helpers import ALICE, BOB, CAROL


class TestCodec:
    """Tests for the word codec."""

    def test_identity_is_left_padded(self) -> None:
        """Identities occupy the low 20 bytes of a word."""
        word = encode_identity(ALICE)
        assert len(word) == 32
        assert word[:12] == b"\x00" * 12
        assert decode_identity(word) == ALICE

    def test_identity_is_lowercased(self) -> None:
        """Mixed-case identities decode to lowercase."""
        assert decode_identity(encode_identity("0x" + "AB" * 20)) == "0x" + "ab" * 20

    def test_dirty_padding_rejected(self) -> None:
        """Non-zero padding in an identity word is an error."""
        word = b"\x01" + encode_identity(ALICE)[1:]
        with pytest.raises(ValueError, match="padding"):
            decode_identity(word)

    def test_split_words_requires_exact_length(self) -> None:
        """Extra or missing bytes are rejected."""
        with pytest.raises(ValueError):
            split_words(b"\x00" * 65, 2)
        with pytest.raises(ValueError):
            split_words(b"\x00" * 63, 2)

    def test_string_round_trip(self) -> None:
        """Strings decode from their length word."""
        data = encode_string("kyc missing")
        assert len(data) % 32 == 0
        assert decode_string(data, 0) == "kyc missing"

    def test_string_length_past_end(self) -> None:
        """A length word that runs past the data is rejected."""
        data = (100).to_bytes(32, "big") + b"short"
        with pytest.raises(ValueError):
            decode_string(data, 0)


class TestExtractShapes:
    """Tests for the supported payload shapes."""

    def test_transfer_uses_caller_as_sender(self) -> None:
        """TRANSFER takes from from the caller identity."""
        payload = CallPayload(
            operation_id=OperationId.TRANSFER,
            caller_identity=ALICE,
            raw_data=encode_transfer(BOB, 250),
        )
        params = extract(payload)
        assert params.keys() == ["from", "to", "amount"]
        assert params.as_dict() == {"from": ALICE, "to": BOB, "amount": 250}

    @pytest.mark.parametrize("operation_id", [OperationId.TRANSFER_FROM, OperationId.VALIDATE_TRANSFER])
    def test_three_field_shapes(self, operation_id: OperationId) -> None:
        """Three-field shapes decode from explicitly, ignoring the caller."""
        payload = CallPayload(
            operation_id=operation_id,
            caller_identity=CAROL,
            raw_data=encode_transfer_from(ALICE, BOB, 7),
        )
        params = extract(payload)
        assert params.get("from") == ALICE
        assert params.get("to") == BOB
        assert params.get("amount") == 7

    def test_extraction_is_pure(self) -> None:
        """Identical payloads always yield identical parameters."""
        payload = CallPayload(
            operation_id=OperationId.VALIDATE_TRANSFER,
            caller_identity=ALICE,
            raw_data=encode_transfer_from(ALICE, BOB, 2**200),
        )
        extractor = Extractor()
        first = extractor.extract(payload)
        assert all(extractor.extract(payload) == first for _ in range(5))

    def test_large_amount(self) -> None:
        """Amounts use the whole word."""
        amount = 2**256 - 1
        payload = CallPayload(
            operation_id=OperationId.TRANSFER,
            caller_identity=ALICE,
            raw_data=encode_transfer(BOB, amount),
        )
        assert extract(payload).get("amount") == amount


class TestExtractErrors:
    """Tests for extraction failures."""

    def test_unsupported_operation(self) -> None:
        """Unknown discriminators are rejected before decoding."""
        payload = CallPayload(operation_id=42, caller_identity=ALICE, raw_data=b"")
        with pytest.raises(UnsupportedOperationError) as exc_info:
            extract(payload)
        assert exc_info.value.operation_id == 42

    def test_transfer_with_three_words_is_malformed(self) -> None:
        """The two-field shape does not accept a third word."""
        payload = CallPayload(
            operation_id=OperationId.TRANSFER,
            caller_identity=ALICE,
            raw_data=encode_transfer_from(ALICE, BOB, 1),
        )
        with pytest.raises(MalformedPayloadError):
            extract(payload)

    def test_empty_data_is_malformed(self) -> None:
        """No defaults are substituted for missing data."""
        payload = CallPayload(operation_id=OperationId.VALIDATE_TRANSFER, caller_identity=ALICE)
        with pytest.raises(MalformedPayloadError) as exc_info:
            extract(payload)
        assert exc_info.value.code == 1002

    def test_bad_caller_identity_is_malformed(self) -> None:
        """The two-field shape needs a well-formed caller."""
        payload = CallPayload(
            operation_id=OperationId.TRANSFER,
            caller_identity="alice",
            raw_data=encode_transfer(BOB, 1),
        )
        with pytest.raises(MalformedPayloadError):
            extract(payload)

    def test_dirty_identity_word_is_malformed(self) -> None:
        """Dirty padding in raw data is rejected."""
        raw = bytearray(encode_transfer_from(ALICE, BOB, 1))
        raw[0] = 0xFF
        payload = CallPayload(
            operation_id=OperationId.VALIDATE_TRANSFER,
            caller_identity=ALICE,
            raw_data=bytes(raw),
        )
        with pytest.raises(MalformedPayloadError):
            extract(payload)

    def test_encode_rejects_negative_amount(self) -> None:
        """Encoding validates the amount."""
        with pytest.raises(ValueError):
            encode_transfer(BOB, -1)
