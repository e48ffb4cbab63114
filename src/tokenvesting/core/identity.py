"""
Participant identities.

An identity is an opaque 32-byte value committed into the merkle tree. It may
encode a native account address (12 zero bytes followed by the 20 address
bytes) or an address from a foreign address space. The kind is derived once,
explicitly, so native and foreign identities are never confused by silently
reinterpreting their low-order bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tokenvesting.core.blockchain_exceptions import InvalidIdentityError
from tokenvesting.core.crypto_utils import (
    ADDRESS_LENGTH,
    HASH_LENGTH,
    address_bytes,
    coerce_bytes,
    normalize_address,
)

_NATIVE_PADDING = HASH_LENGTH - ADDRESS_LENGTH


class IdentityKind(Enum):
    NATIVE = "native"
    FOREIGN = "foreign"


def is_native_address_form(raw: bytes) -> bool:
    """True when the high-order 12 bytes are zero and the address bytes are not."""
    if len(raw) != HASH_LENGTH:
        return False
    return not any(raw[:_NATIVE_PADDING]) and any(raw[_NATIVE_PADDING:])


@dataclass(frozen=True)
class Identity:
    raw: bytes
    kind: IdentityKind

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Identity":
        if len(raw) != HASH_LENGTH:
            raise InvalidIdentityError(
                f"Identity must be {HASH_LENGTH} bytes, got {len(raw)}"
            )
        kind = IdentityKind.NATIVE if is_native_address_form(raw) else IdentityKind.FOREIGN
        return cls(raw=bytes(raw), kind=kind)

    @classmethod
    def parse(cls, value: "Identity | bytes | str") -> "Identity":
        """Accept an Identity, 32 raw bytes or a 64-digit hex string."""
        if isinstance(value, Identity):
            return value
        try:
            raw = coerce_bytes(value)
        except ValueError as exc:
            raise InvalidIdentityError(f"Malformed identity: {value!r}") from exc
        return cls.from_bytes(raw)

    @classmethod
    def from_address(cls, address: str) -> "Identity":
        """Left-pad a native account address into identity form."""
        return cls.from_bytes(b"\x00" * _NATIVE_PADDING + address_bytes(address))

    @property
    def is_native(self) -> bool:
        return self.kind is IdentityKind.NATIVE

    @property
    def native_address(self) -> str | None:
        """Checksummed account address for native identities, None otherwise."""
        if not self.is_native:
            return None
        return normalize_address(self.raw[_NATIVE_PADDING:])

    def hex(self) -> str:
        return "0x" + self.raw.hex()

    def __str__(self) -> str:
        return self.hex()
