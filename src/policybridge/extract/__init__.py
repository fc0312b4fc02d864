"""
Extraction module for policybridge.

Turns opaque call payloads into named transfer parameters. This is the only
place where call data is decoded.
"""

from policybridge.extract.extractor import (
    PARAM_AMOUNT,
    PARAM_FROM,
    PARAM_TO,
    Extractor,
    encode_transfer,
    encode_transfer_from,
    extract,
)

__all__ = [
    "PARAM_AMOUNT",
    "PARAM_FROM",
    "PARAM_TO",
    "Extractor",
    "encode_transfer",
    "encode_transfer_from",
    "extract",
]
