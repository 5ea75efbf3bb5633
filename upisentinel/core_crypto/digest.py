"""
Digest Engine

Deterministic SHA-256 digests for block sealing and verification.

- SHA-256 provided by the `cryptography` backend
- Fixed-length output: 64 lowercase hex characters (256 bits)
- Canonical block encoding shared by mining and verification

The engine is stateless. Any byte sequence, including the empty one,
is valid input.
"""

import json
from typing import Any, Sequence

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes


DIGEST_SIZE = 32  # bytes
DIGEST_HEX_LENGTH = DIGEST_SIZE * 2


class DigestUnavailable(RuntimeError):
    """The cryptographic backend cannot provide SHA-256."""


def digest(data: bytes) -> str:
    """
    Compute the SHA-256 digest of a byte sequence.

    Args:
        data: Input bytes (any length)

    Returns:
        64-character lowercase hexadecimal string

    Raises:
        DigestUnavailable: If the backend does not support SHA-256

    Example:
        >>> digest(b"abc")
        'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'
    """
    try:
        hasher = hashes.Hash(hashes.SHA256())
    except UnsupportedAlgorithm as exc:
        raise DigestUnavailable(f"SHA-256 is not available: {exc}") from exc
    hasher.update(bytes(data))
    return hasher.finalize().hex()


def ensure_available() -> None:
    """
    Probe the backend once.

    Raises:
        DigestUnavailable: If SHA-256 cannot be computed
    """
    digest(b"")


def canonical_records(records: Sequence[Any]) -> str:
    """Serialize records as compact JSON with sorted keys."""
    return json.dumps(
        list(records),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )


def block_header(
    records: Sequence[Any],
    previous_digest: str,
    created_at: int
) -> str:
    """Nonce-independent prefix of the block encoding."""
    return canonical_records(records) + previous_digest + str(created_at)


def encode_block(
    records: Sequence[Any],
    previous_digest: str,
    created_at: int,
    nonce: int
) -> bytes:
    """
    Encode the hashed fields of a block.

    Layout: canonical JSON of the records, then the previous digest,
    the decimal timestamp and the decimal nonce, as UTF-8.
    """
    return (block_header(records, previous_digest, created_at) + str(nonce)).encode('utf-8')


def block_digest(
    records: Sequence[Any],
    previous_digest: str,
    created_at: int,
    nonce: int
) -> str:
    """Digest of a block's hashed fields."""
    return digest(encode_block(records, previous_digest, created_at, nonce))


if __name__ == "__main__":
    test_cases = [
        (b"", "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"),
        (b"abc", "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"),
        (b"The quick brown fox jumps over the lazy dog",
         "d7a8fbb307d7809469ca9abcb0082e4f8d5651e46d3cdb762d02d0bf37c9e592"),
    ]

    print("Digest Engine Test")
    print("=" * 60)

    all_passed = True
    for data, expected in test_cases:
        result = digest(data)
        passed = result == expected
        all_passed = all_passed and passed
        print(f"\nInput:    {data[:50]}")
        print(f"Expected: {expected}")
        print(f"Got:      {result}")
        print(f"Status:   {'PASS' if passed else 'FAIL'}")

    print("\n" + "=" * 60)
    print(f"Overall: {'All tests passed!' if all_passed else 'Some tests failed!'}")
