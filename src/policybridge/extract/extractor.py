"""
Extractor: decode a CallPayload into named parameters.

The extractor is stateless and pure. The same (operation_id, caller_identity,
raw_data) always yields the same ExtractedParameters, and malformed input is
rejected rather than filled in with defaults.

Supported shapes:
    TRANSFER            from = caller_identity, (to, amount) from raw_data
    TRANSFER_FROM       (from, to, amount) from raw_data
    VALIDATE_TRANSFER   (from, to, amount) from raw_data
"""

from policybridge.errors import MalformedPayloadError, UnsupportedOperationError
from policybridge.extract.codec import (
    decode_identity,
    decode_uint,
    encode_identity,
    encode_uint,
    split_words,
)
from policybridge.schema import (
    CallPayload,
    ExtractedParameters,
    OperationId,
    normalize_identity,
    validate_amount,
)

PARAM_FROM = "from"
PARAM_TO = "to"
PARAM_AMOUNT = "amount"

THREE_FIELD_OPERATIONS = frozenset({OperationId.TRANSFER_FROM, OperationId.VALIDATE_TRANSFER})


def encode_transfer(to: str, amount: int) -> bytes:
    """Build raw_data for the two-field TRANSFER shape."""
    return encode_identity(to) + encode_uint(validate_amount(amount))


def encode_transfer_from(from_: str, to: str, amount: int) -> bytes:
    """Build raw_data for the three-field shapes."""
    return encode_identity(from_) + encode_identity(to) + encode_uint(validate_amount(amount))


class Extractor:
    """
    Decodes call payloads for the operations it supports.

    Usage:
        params = Extractor().extract(payload)
        params.get("amount")
    """

    supported_operations = frozenset(OperationId)

    def supports(self, operation_id: int) -> bool:
        return operation_id in self.supported_operations

    def extract(self, payload: CallPayload) -> ExtractedParameters:
        """
        Decode payload into (from, to, amount).

        Raises:
            UnsupportedOperationError: operation_id is not recognized
            MalformedPayloadError: raw_data does not fit the operation's shape
        """
        operation_id = payload.operation_id
        if not self.supports(operation_id):
            raise UnsupportedOperationError(operation_id=operation_id)

        try:
            if operation_id == OperationId.TRANSFER:
                from_ = normalize_identity(payload.caller_identity)
                to_word, amount_word = split_words(payload.raw_data, 2)
                to = decode_identity(to_word)
            else:
                from_word, to_word, amount_word = split_words(payload.raw_data, 3)
                from_ = decode_identity(from_word)
                to = decode_identity(to_word)
            amount = decode_uint(amount_word)
        except ValueError as e:
            raise MalformedPayloadError(operation_id=operation_id, detail=str(e)) from e

        return ExtractedParameters(
            pairs=(
                (PARAM_FROM, from_),
                (PARAM_TO, to),
                (PARAM_AMOUNT, amount),
            )
        )


default_extractor = Extractor()


def extract(payload: CallPayload) -> ExtractedParameters:
    """Decode payload with the default extractor."""
    return default_extractor.extract(payload)
