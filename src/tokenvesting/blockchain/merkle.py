"""
Merkle commitment verification for vesting allocations.

Leaves are keccak256 over the packed tuple
(identity[32], allocation[uint256], start[uint64], end[uint64], unlock_pct[uint8]).
Interior nodes hash the sorted pair of their children, so proofs carry only
sibling hashes and no position bits.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from tokenvesting.blockchain.vesting import UINT64_MAX, UINT256_MAX
from tokenvesting.core.blockchain_exceptions import ValidationError
from tokenvesting.core.crypto_utils import HASH_LENGTH, coerce_bytes, keccak256
from tokenvesting.core.identity import Identity

logger = logging.getLogger(__name__)

HashFn = Callable[[bytes], bytes]
ProofItem = bytes | str


def encode_leaf(
    identity: Identity | bytes | str,
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    init_unlock_percentage: int,
) -> bytes:
    """Packed encoding of an allocation tuple."""
    ident = Identity.parse(identity)
    for name, value, upper in (
        ("allocation", allocation, UINT256_MAX),
        ("start_timestamp", start_timestamp, UINT64_MAX),
        ("end_timestamp", end_timestamp, UINT64_MAX),
        ("init_unlock_percentage", init_unlock_percentage, 0xFF),
    ):
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= upper:
            raise ValidationError(f"{name} out of range: {value!r}")
    return (
        ident.raw
        + allocation.to_bytes(32, "big")
        + start_timestamp.to_bytes(8, "big")
        + end_timestamp.to_bytes(8, "big")
        + init_unlock_percentage.to_bytes(1, "big")
    )


def compute_leaf(
    identity: Identity | bytes | str,
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    init_unlock_percentage: int,
    hash_fn: HashFn = keccak256,
) -> bytes:
    return hash_fn(
        encode_leaf(identity, allocation, start_timestamp, end_timestamp, init_unlock_percentage)
    )


def hash_pair(a: bytes, b: bytes, hash_fn: HashFn = keccak256) -> bytes:
    # Sort hashes so the pair is order independent
    if a > b:
        a, b = b, a
    return hash_fn(a + b)


def process_proof(leaf: bytes, proof: Iterable[ProofItem], hash_fn: HashFn = keccak256) -> bytes:
    """
    Fold a proof into the root it implies.

    Raises:
        ValueError: If a proof element is not a 32-byte hash.
    """
    current_hash = leaf
    for sibling in proof:
        current_hash = hash_pair(current_hash, coerce_bytes(sibling, HASH_LENGTH), hash_fn)
    return current_hash


class MerkleVerifier:
    """Checks allocation tuples against an immutable commitment root."""

    def __init__(self, root: bytes | str, hash_fn: HashFn = keccak256) -> None:
        self._root = coerce_bytes(root, HASH_LENGTH)
        self._hash_fn = hash_fn

    @property
    def root(self) -> bytes:
        return self._root

    def verify(
        self,
        identity: Identity | bytes | str,
        allocation: int,
        start_timestamp: int,
        end_timestamp: int,
        init_unlock_percentage: int,
        proof: Sequence[ProofItem] | None,
    ) -> bool:
        """
        True only when the tuple is committed under the root.

        Malformed identities, out-of-range fields and malformed proof items all
        yield False.
        """
        if proof is None or isinstance(proof, (str, bytes)):
            return False
        try:
            leaf = compute_leaf(
                identity,
                allocation,
                start_timestamp,
                end_timestamp,
                init_unlock_percentage,
                self._hash_fn,
            )
            computed_root = process_proof(leaf, proof, self._hash_fn)
        except (ValidationError, ValueError, TypeError) as exc:
            logger.debug(
                "Rejected malformed allocation data",
                extra={"event": "merkle.malformed_input", "error": str(exc)},
            )
            return False
        return computed_root == self._root


def verify_allocation(
    identity: Identity | bytes | str,
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    init_unlock_percentage: int,
    proof: Sequence[ProofItem] | None,
    root: bytes | str,
    hash_fn: HashFn = keccak256,
) -> bool:
    try:
        verifier = MerkleVerifier(root, hash_fn)
    except ValueError:
        return False
    return verifier.verify(
        identity, allocation, start_timestamp, end_timestamp, init_unlock_percentage, proof
    )
