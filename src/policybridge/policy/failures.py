"""
Failure data produced by policy engines, and its classifier.

Engines report failures as opaque bytes. This module is the one place that
looks inside them:

    PolicyRejected(string)
        selector | offset | length | reason

    PolicyRunRejected(uint256,address,string)
        selector | operation_id | policy_ref | offset | length | reason

A selector is the first four bytes of the SHA3-256 digest of the signature.
Everything else (short data, unknown selectors, truncated bodies) is an
unknown failure. classify_failure() never raises.
"""

import hashlib

from policybridge.errors import (
    EngineFailure,
    PolicyRejectedError,
    PolicyRunRejectedError,
    UnknownEngineFailureError,
)
from policybridge.extract.codec import (
    WORD_SIZE,
    decode_identity,
    decode_string,
    decode_uint,
    encode_identity,
    encode_string,
    encode_uint,
)

SELECTOR_SIZE = 4


def selector(signature: str) -> bytes:
    """Compute the 4-byte discriminator for a failure signature."""
    return hashlib.sha3_256(signature.encode("ascii")).digest()[:SELECTOR_SIZE]


POLICY_REJECTED_SIGNATURE = "PolicyRejected(string)"
POLICY_RUN_REJECTED_SIGNATURE = "PolicyRunRejected(uint256,address,string)"

POLICY_REJECTED_SELECTOR = selector(POLICY_REJECTED_SIGNATURE)
POLICY_RUN_REJECTED_SELECTOR = selector(POLICY_RUN_REJECTED_SIGNATURE)


# =============================================================================
# Encoding (engine side)
# =============================================================================


def encode_policy_rejected(reason: str) -> bytes:
    """Encode a single-reason rejection."""
    return POLICY_REJECTED_SELECTOR + encode_uint(WORD_SIZE) + encode_string(reason)


def encode_policy_run_rejected(operation_id: int, policy_ref: str, reason: str) -> bytes:
    """Encode a rejection from the mutating path."""
    return (
        POLICY_RUN_REJECTED_SELECTOR
        + encode_uint(operation_id)
        + encode_identity(policy_ref)
        + encode_uint(3 * WORD_SIZE)
        + encode_string(reason)
    )


# =============================================================================
# Classification (bridge side)
# =============================================================================


def _word(body: bytes, index: int) -> bytes:
    start = index * WORD_SIZE
    word = body[start : start + WORD_SIZE]
    if len(word) != WORD_SIZE:
        msg = f"Missing word {index}"
        raise ValueError(msg)
    return word


def _decode_policy_rejected(body: bytes) -> PolicyRejectedError:
    offset = decode_uint(_word(body, 0))
    return PolicyRejectedError(policy_reason=decode_string(body, offset))


def _decode_policy_run_rejected(body: bytes) -> PolicyRunRejectedError:
    operation_id = decode_uint(_word(body, 0))
    policy_ref = decode_identity(_word(body, 1))
    offset = decode_uint(_word(body, 2))
    return PolicyRunRejectedError(
        operation_id=operation_id,
        policy_ref=policy_ref,
        policy_reason=decode_string(body, offset),
    )


_DECODERS = {
    POLICY_REJECTED_SELECTOR: _decode_policy_rejected,
    POLICY_RUN_REJECTED_SELECTOR: _decode_policy_run_rejected,
}


def classify_failure(data: bytes) -> EngineFailure:
    """
    Map raw failure data to a classified engine failure.

    Returns:
        PolicyRejectedError or PolicyRunRejectedError for recognized
        rejections, UnknownEngineFailureError for anything else
    """
    data = bytes(data or b"")
    if len(data) < SELECTOR_SIZE:
        return UnknownEngineFailureError(data=data)

    decoder = _DECODERS.get(data[:SELECTOR_SIZE])
    if decoder is None:
        return UnknownEngineFailureError(data=data)

    try:
        return decoder(data[SELECTOR_SIZE:])
    except ValueError:
        return UnknownEngineFailureError(data=data)
