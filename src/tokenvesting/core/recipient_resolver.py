"""
Recipient resolution for vesting activation.

Native-address identities may self-claim without a signature. Every other
case, including a foreign identity whose low bytes happen to match the
caller, needs the authority's delegation signature.
"""

from __future__ import annotations

import logging

from tokenvesting.core.blockchain_exceptions import (
    MissingRecipientError,
    UnauthorizedDelegationError,
)
from tokenvesting.core.crypto_utils import is_zero_address, normalize_address
from tokenvesting.core.delegation import DelegationVerifier
from tokenvesting.core.identity import Identity

logger = logging.getLogger(__name__)


class RecipientResolver:
    def __init__(self, delegation_verifier: DelegationVerifier | None = None) -> None:
        self.delegation_verifier = delegation_verifier or DelegationVerifier()

    def resolve(
        self,
        caller: str,
        identity: Identity | bytes | str,
        requested_recipient: str | None,
        signature: bytes | str | None,
        authority: str,
    ) -> str:
        """
        Produce the single recipient authorized for this activation.

        Args:
            caller: Address invoking the activation (msg.sender)
            identity: Identity being activated
            requested_recipient: Recipient named by the caller, None/zero if unset
            signature: Authority signature over (identity, requested_recipient)
            authority: Currently configured delegation signer

        Returns:
            Checksummed recipient address

        Raises:
            MissingRecipientError: No recipient named and caller cannot self-claim
            UnauthorizedDelegationError: Signature does not authorize the recipient
        """
        ident = Identity.parse(identity)
        caller_address = normalize_address(caller, "caller")
        own_address = ident.native_address
        requested = None if is_zero_address(requested_recipient) else normalize_address(
            requested_recipient, "recipient"
        )

        if requested is None and own_address is not None and caller_address == own_address:
            return caller_address

        if requested is not None and own_address is not None and requested == own_address:
            return requested

        if requested is None:
            raise MissingRecipientError(
                "Recipient required: identity is not the caller's own address",
                details={"identity": ident.hex(), "caller": caller_address},
            )

        if not self.delegation_verifier.verify_signature(ident, requested, signature, authority):
            logger.warning(
                "Rejected delegation signature",
                extra={
                    "event": "delegation.rejected",
                    "identity": ident.hex(),
                    "recipient": requested,
                },
            )
            raise UnauthorizedDelegationError(
                "Invalid delegation signature",
                details={"identity": ident.hex(), "recipient": requested},
            )
        return requested
