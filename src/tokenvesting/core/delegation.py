"""
Delegated recipient authorization.

The configured authority signs keccak256(identity ‖ recipient) under the
EIP-191 personal-message convention. Recovery and hashing are injected so
the verification rule can be exercised with deterministic fakes.
"""

from __future__ import annotations

import logging
from typing import Callable

from tokenvesting.core.blockchain_exceptions import InvalidAddressError, ValidationError
from tokenvesting.core.crypto_utils import (
    address_bytes,
    is_zero_address,
    keccak256,
    normalize_address,
    recover_message_signer,
    sign_message_hash,
)
from tokenvesting.core.identity import Identity

logger = logging.getLogger(__name__)

SignerRecovery = Callable[[bytes, "bytes | str | None"], "str | None"]


def delegation_digest(
    identity: Identity | bytes | str,
    recipient: str,
    hash_fn: Callable[[bytes], bytes] = keccak256,
) -> bytes:
    """Message hash the authority signs to delegate identity to recipient."""
    return hash_fn(Identity.parse(identity).raw + address_bytes(recipient))


def sign_delegation(
    private_key: bytes | str,
    identity: Identity | bytes | str,
    recipient: str,
) -> bytes:
    """Authority-side helper producing a delegation signature."""
    return sign_message_hash(private_key, delegation_digest(identity, recipient))


class DelegationVerifier:
    def __init__(
        self,
        recover_signer: SignerRecovery = recover_message_signer,
        hash_fn: Callable[[bytes], bytes] = keccak256,
    ) -> None:
        self._recover_signer = recover_signer
        self._hash_fn = hash_fn

    def digest(self, identity: Identity | bytes | str, recipient: str) -> bytes:
        return delegation_digest(identity, recipient, self._hash_fn)

    def verify_signature(
        self,
        identity: Identity | bytes | str,
        recipient: str,
        signature: bytes | str | None,
        authority: str,
    ) -> bool:
        """
        True if signature over (identity, recipient) recovers to authority.

        Malformed inputs and failed recovery are a plain False.
        """
        if signature is None or is_zero_address(authority):
            return False
        try:
            message_hash = self.digest(identity, recipient)
            expected = normalize_address(authority, "authority")
        except ValidationError:
            return False

        recovered = self._recover_signer(message_hash, signature)
        if recovered is None or is_zero_address(recovered):
            logger.debug(
                "Delegation signature did not recover",
                extra={"event": "delegation.recovery_failed"},
            )
            return False
        try:
            return normalize_address(recovered) == expected
        except InvalidAddressError:
            return False
