"""
Delegation signatures: the authority's EIP-191 signature over (identity, recipient).
"""

import pytest

from tokenvesting.core.crypto_utils import (
    ZERO_ADDRESS,
    keccak256,
    recover_message_signer,
    sign_message_hash,
)
from tokenvesting.core.delegation import (
    DelegationVerifier,
    delegation_digest,
    sign_delegation,
)


class TestDelegationDigest:
    def test_digest_is_keccak_of_identity_and_recipient(self, foreign_identity, dave):
        expected = keccak256(foreign_identity.raw + bytes.fromhex(dave.address[2:]))
        assert delegation_digest(foreign_identity, dave.address) == expected

    def test_recipient_case_does_not_change_digest(self, foreign_identity, dave):
        assert delegation_digest(foreign_identity, dave.address.lower()) == delegation_digest(
            foreign_identity, dave.address
        )


class TestVerifySignature:
    def test_authority_signature_verifies(self, authority, foreign_identity, dave):
        signature = sign_delegation(authority.key, foreign_identity, dave.address)
        assert len(signature) == 65
        assert DelegationVerifier().verify_signature(
            foreign_identity, dave.address, signature, authority.address
        )

    def test_hex_signature_accepted(self, authority, foreign_identity, dave):
        signature = sign_delegation(authority.key, foreign_identity, dave.address)
        assert DelegationVerifier().verify_signature(
            foreign_identity, dave.address, "0x" + signature.hex(), authority.address
        )

    def test_signature_for_other_recipient_rejected(self, authority, foreign_identity, dave, carol):
        signature = sign_delegation(authority.key, foreign_identity, dave.address)
        assert not DelegationVerifier().verify_signature(
            foreign_identity, carol.address, signature, authority.address
        )

    def test_non_authority_signer_rejected(self, bob, authority, foreign_identity, dave):
        signature = sign_delegation(bob.key, foreign_identity, dave.address)
        assert not DelegationVerifier().verify_signature(
            foreign_identity, dave.address, signature, authority.address
        )

    @pytest.mark.parametrize(
        "signature",
        [None, b"", b"\x01" * 64, b"\x01" * 65, b"\x00" * 65, "0xnothex", "00" * 66],
    )
    def test_malformed_signature_is_a_plain_failure(self, authority, foreign_identity, dave, signature):
        assert not DelegationVerifier().verify_signature(
            foreign_identity, dave.address, signature, authority.address
        )

    def test_malformed_recipient_is_a_plain_failure(self, authority, foreign_identity):
        assert not DelegationVerifier().verify_signature(
            foreign_identity, "0x1234", b"\x01" * 65, authority.address
        )

    def test_zero_authority_never_matches(self, foreign_identity, dave):
        verifier = DelegationVerifier(recover_signer=lambda message_hash, signature: ZERO_ADDRESS)
        assert not verifier.verify_signature(foreign_identity, dave.address, b"sig", ZERO_ADDRESS)

    def test_zero_recovered_address_rejected(self, authority, foreign_identity, dave):
        verifier = DelegationVerifier(recover_signer=lambda message_hash, signature: ZERO_ADDRESS)
        assert not verifier.verify_signature(foreign_identity, dave.address, b"sig", authority.address)

    def test_injected_recovery(self, authority, foreign_identity, dave):
        seen = []

        def fake_recover(message_hash, signature):
            seen.append(message_hash)
            return authority.address if signature == b"approved" else None

        verifier = DelegationVerifier(recover_signer=fake_recover)
        assert verifier.verify_signature(foreign_identity, dave.address, b"approved", authority.address)
        assert not verifier.verify_signature(foreign_identity, dave.address, b"denied", authority.address)
        assert seen[0] == delegation_digest(foreign_identity, dave.address)


class TestRecoverMessageSigner:
    def test_recovers_signer(self, authority):
        message_hash = keccak256(b"payload")
        assert recover_message_signer(message_hash, sign_message_hash(authority.key, message_hash)) == authority.address

    def test_wrong_length_returns_none(self):
        assert recover_message_signer(keccak256(b"payload"), b"\x01" * 10) is None
