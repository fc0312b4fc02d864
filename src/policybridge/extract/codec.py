"""
Fixed-width word codec.

Call data and failure data are sequences of 32-byte words:
- Identities occupy the low 20 bytes of a word; the high 12 bytes must be zero
- Unsigned integers are big-endian and fill the whole word
- Strings are a length word followed by UTF-8 bytes padded to a word boundary

Decoders are strict. Anything that does not fit the expected shape raises
ValueError; callers turn that into their own error type.
"""

from policybridge.schema import MAX_AMOUNT, normalize_identity

WORD_SIZE = 32
IDENTITY_SIZE = 20


def encode_uint(value: int) -> bytes:
    """Encode an unsigned integer as one word."""
    if value < 0 or value > MAX_AMOUNT:
        msg = f"Value does not fit in a word: {value}"
        raise ValueError(msg)
    return value.to_bytes(WORD_SIZE, "big")


def decode_uint(word: bytes) -> int:
    """Decode one word as an unsigned integer."""
    if len(word) != WORD_SIZE:
        msg = f"Expected {WORD_SIZE} bytes, got {len(word)}"
        raise ValueError(msg)
    return int.from_bytes(word, "big")


def encode_identity(identity: str) -> bytes:
    """Encode an identity as one left-padded word."""
    raw = bytes.fromhex(normalize_identity(identity)[2:])
    return raw.rjust(WORD_SIZE, b"\x00")


def decode_identity(word: bytes) -> str:
    """Decode one word as an identity, rejecting dirty padding."""
    if len(word) != WORD_SIZE:
        msg = f"Expected {WORD_SIZE} bytes, got {len(word)}"
        raise ValueError(msg)
    padding, raw = word[: WORD_SIZE - IDENTITY_SIZE], word[WORD_SIZE - IDENTITY_SIZE :]
    if any(padding):
        msg = "Identity word has non-zero padding"
        raise ValueError(msg)
    return "0x" + raw.hex()


def split_words(data: bytes, count: int) -> list[bytes]:
    """Split data into exactly count words."""
    if len(data) != count * WORD_SIZE:
        msg = f"Expected {count * WORD_SIZE} bytes ({count} words), got {len(data)}"
        raise ValueError(msg)
    return [data[i * WORD_SIZE : (i + 1) * WORD_SIZE] for i in range(count)]


def encode_string(text: str) -> bytes:
    """Encode a string as a length word plus padded UTF-8 data."""
    raw = text.encode("utf-8")
    padded_len = -(-len(raw) // WORD_SIZE) * WORD_SIZE
    return encode_uint(len(raw)) + raw.ljust(padded_len, b"\x00")


def decode_string(data: bytes, offset: int) -> str:
    """
    Decode a string whose length word starts at offset.

    Invalid UTF-8 is replaced rather than rejected: the bytes came from a
    policy, and the reason is only ever displayed.
    """
    if offset < 0 or offset + WORD_SIZE > len(data):
        msg = f"String offset {offset} out of range"
        raise ValueError(msg)
    length = decode_uint(data[offset : offset + WORD_SIZE])
    start = offset + WORD_SIZE
    if start + length > len(data):
        msg = f"String length {length} runs past end of data"
        raise ValueError(msg)
    return data[start : start + length].decode("utf-8", errors="replace")
