"""Utility helpers for keccak hashing, account addresses and EIP-191 signatures."""

from __future__ import annotations

from Crypto.Hash import keccak
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import to_checksum_address

from tokenvesting.core.blockchain_exceptions import InvalidAddressError

ZERO_ADDRESS = "0x" + "0" * 40
ADDRESS_LENGTH = 20
HASH_LENGTH = 32
SIGNATURE_LENGTH = 65

def keccak256(data: bytes) -> bytes:
    """Compute keccak256 hash (same as Ethereum)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()

def coerce_bytes(value: bytes | bytearray | str, length: int | None = None) -> bytes:
    """
    Accept raw bytes or a hex string (with or without 0x) and return bytes.

    Raises:
        ValueError: If the value is not bytes/hex or has the wrong length.
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        hex_part = value[2:] if value[:2].lower() == "0x" else value
        raw = bytes.fromhex(hex_part)
    else:
        raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")
    if length is not None and len(raw) != length:
        raise ValueError(f"Expected {length} bytes, got {len(raw)}")
    return raw

def is_zero_address(address: str | bytes | None) -> bool:
    if address is None:
        return True
    if isinstance(address, (bytes, bytearray)):
        return not any(address)
    return address.lower() in ("", "0x", ZERO_ADDRESS)

def normalize_address(address: str | bytes, field: str = "address") -> str:
    """
    Return the EIP-55 checksummed form of an account address.

    Raises:
        InvalidAddressError: If the address is malformed.
    """
    try:
        if isinstance(address, (bytes, bytearray)) and len(address) != ADDRESS_LENGTH:
            raise ValueError(f"expected {ADDRESS_LENGTH} bytes, got {len(address)}")
        return to_checksum_address(address)
    except (ValueError, TypeError) as exc:
        raise InvalidAddressError(
            f"Invalid {field}: {address!r}", details={"field": field}
        ) from exc

def address_bytes(address: str) -> bytes:
    """Raw 20-byte form of an address."""
    return bytes.fromhex(normalize_address(address)[2:])

def recover_message_signer(message_hash: bytes, signature: bytes | str | None) -> str | None:
    """
    Recover the signer of an EIP-191 ("Ethereum Signed Message") signature.

    Returns:
        The checksummed signer address, or None if the signature is malformed
        or does not recover to a valid public key.
    """
    if signature is None:
        return None
    try:
        raw_signature = coerce_bytes(signature, SIGNATURE_LENGTH)
        signable = encode_defunct(primitive=message_hash)
        return Account.recover_message(signable, signature=raw_signature)
    except (ValueError, TypeError, BadSignature, KeyValidationError):
        return None

def sign_message_hash(private_key: bytes | str, message_hash: bytes) -> bytes:
    """Produce a 65-byte EIP-191 signature over a 32-byte message hash."""
    signable = encode_defunct(primitive=message_hash)
    signed = Account.sign_message(signable, private_key=private_key)
    return bytes(signed.signature)

def generate_account() -> tuple[str, str]:
    """Create a fresh keypair, returning (address, private key hex)."""
    account = Account.create()
    return account.address, account.key.hex()
