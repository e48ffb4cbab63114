"""
Fungible token used as the vesting ledger's transfer primitive.

The ledger only depends on the TokenTransfer protocol: an ``address`` and a
``transfer(sender, recipient, amount) -> bool`` call. ERC20Token is an
in-memory implementation with the EIP-20 balance rules, used for local
deployments and tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from tokenvesting.core.blockchain_exceptions import VestingError
from tokenvesting.core.crypto_utils import ZERO_ADDRESS, keccak256

logger = logging.getLogger(__name__)


class TokenError(VestingError):
    """Raised when a token operation violates EIP-20 balance rules."""
    pass


@runtime_checkable
class TokenTransfer(Protocol):
    address: str

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    In-memory ERC20 balances with owner-only minting.

    ``on_transfer`` is invoked after balances move, the way a receiving
    contract's hook would be; it may call back into the vesting ledger.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    owner: str = ""
    balances: dict[str, int] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)
    on_transfer: Callable[[str, str, int], None] | None = None

    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            addr_hash = keccak256(f"{self.name}{self.symbol}{time.time()}".encode())
            self.address = f"0x{addr_hash[-20:].hex()}"

    def balance_of(self, account: str) -> int:
        return self.balances.get(self._normalize(account), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move tokens from sender to recipient.

        Raises:
            TokenError: On a zero recipient, invalid amount or insufficient balance
        """
        sender_norm = self._normalize(sender)
        recipient_norm = self._normalize(recipient)
        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise TokenError(
                f"ERC20: transfer amount exceeds balance ({amount} > {sender_balance})"
            )

        previous = {
            sender_norm: sender_balance,
            recipient_norm: self.balances.get(recipient_norm, 0),
        }
        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
        self._emit_transfer(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            },
        )

        if self.on_transfer is not None:
            try:
                self.on_transfer(sender_norm, recipient_norm, amount)
            except BaseException:
                # A failing receive hook reverts the whole transfer
                self.balances.update(previous)
                self.events.pop()
                raise
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Mint new tokens (owner only)."""
        if self._normalize(minter) != self._normalize(self.owner):
            raise TokenError("ERC20: caller is not owner")
        to_norm = self._normalize(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)
        if self.total_supply + amount > self.UINT256_MAX:
            raise TokenError("ERC20: total supply overflow")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit_transfer(ZERO_ADDRESS, to_norm, amount)
        return True

    def _normalize(self, address: str) -> str:
        return address.lower()

    def _validate_address(self, address: str, field: str) -> None:
        if address == ZERO_ADDRESS or not address:
            raise TokenError(f"ERC20: {field} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if amount < 0:
            raise TokenError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise TokenError("ERC20: amount exceeds uint256")

    def _emit_transfer(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Transfer",
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
            )
        )
