"""
Linear token vesting with merkle-committed allocations.

Allocations are committed off-line into a merkle root fixed at deployment.
Each identity activates its allocation exactly once, binding it to a
recipient address (itself, or a wallet the delegation authority signed
for), and the recipient then releases the vested portion over time.

Every mutating entry point:
- takes ``caller`` explicitly (msg.sender)
- is serialized and rejects re-entrant calls
- commits all of its writes or none of them
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

from tokenvesting.blockchain.merkle import HashFn, MerkleVerifier, ProofItem
from tokenvesting.blockchain.vesting import (
    VestingSchedule,
    claimable_amount,
    validate_schedule_terms,
    vested_amount,
)
from tokenvesting.core.blockchain_exceptions import (
    AuthorizationError,
    ConfigurationError,
    InvalidAddressError,
    InvalidProofError,
    NoAllocationError,
    ReentrancyError,
    TokenAlreadySetError,
    TransferFailedError,
    UnauthorizedCallerError,
)
from tokenvesting.core.contracts.erc20 import TokenTransfer
from tokenvesting.core.contracts.vesting_ledger import VestingLedger
from tokenvesting.core.crypto_utils import (
    HASH_LENGTH,
    coerce_bytes,
    is_zero_address,
    keccak256,
    normalize_address,
)
from tokenvesting.core.delegation import DelegationVerifier
from tokenvesting.core.identity import Identity
from tokenvesting.core.recipient_resolver import RecipientResolver

if TYPE_CHECKING:
    from tokenvesting.core.config import VestingConfig

logger = logging.getLogger(__name__)


@dataclass
class VestingEvent:
    """Record of a committed ledger mutation."""

    event_type: str
    data: dict[str, Any]
    timestamp: int = field(default_factory=lambda: int(time.time()))


class TokenVestingLinear:
    def __init__(
        self,
        owner: str,
        authority_signer: str,
        commitment_root: bytes | str,
        time_provider: Callable[[], int] | None = None,
        delegation_verifier: DelegationVerifier | None = None,
        hash_fn: HashFn = keccak256,
        address: str | None = None,
    ) -> None:
        """
        Deploy the vesting ledger.

        Args:
            owner: Administrator address
            authority_signer: Address whose signatures authorize delegation
            commitment_root: 32-byte merkle root of all eligible allocations
            time_provider: Source of the current timestamp (block time)
            delegation_verifier: Signature check, injectable for tests
            hash_fn: Hash primitive used for leaves and proof nodes
            address: Ledger's own account address (token holder)

        Raises:
            ConfigurationError: On a zero owner/authority or malformed root
        """
        self.owner = self._require_config_address(owner, "owner")
        self.authority_signer = self._require_config_address(authority_signer, "authority signer")
        try:
            root = coerce_bytes(commitment_root, HASH_LENGTH)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid commitment root: {exc}") from exc

        self._merkle = MerkleVerifier(root, hash_fn)
        self._resolver = RecipientResolver(delegation_verifier or DelegationVerifier(hash_fn=hash_fn))
        self._time_provider = time_provider or (lambda: int(time.time()))
        self.address = normalize_address(address) if address else normalize_address(
            keccak256(root + bytes.fromhex(self.owner[2:]))[-20:]
        )

        self.ledger = VestingLedger()
        self.token: TokenTransfer | None = None
        self.events: list[VestingEvent] = []

        self._lock = threading.RLock()
        self._entered = False

        logger.info(
            "TokenVestingLinear deployed",
            extra={
                "event": "vesting.deployed",
                "address": self.address,
                "root": root.hex(),
                "authority": self.authority_signer,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: "VestingConfig",
        time_provider: Callable[[], int] | None = None,
    ) -> "TokenVestingLinear":
        config.validate()
        return cls(
            owner=config.owner,
            authority_signer=config.authority_signer,
            commitment_root=config.commitment_root,
            time_provider=time_provider,
        )

    @property
    def commitment_root(self) -> bytes:
        return self._merkle.root

    # ==================== Mutating Operations ====================

    def activate_vesting(
        self,
        caller: str,
        identity: Identity | bytes | str,
        allocation: int,
        start_timestamp: int,
        end_timestamp: int,
        init_unlock_percentage: int,
        proof: Sequence[ProofItem],
        requested_recipient: str | None = None,
        signature: bytes | str | None = None,
    ) -> str:
        """
        Activate a committed allocation and bind it to a recipient.

        Returns:
            The recipient address now holding the schedule

        Raises:
            InvalidProofError: Allocation data does not verify against the root
            InvalidScheduleError: Committed terms are degenerate
            MissingRecipientError / UnauthorizedDelegationError: Recipient not authorized
            RecipientAlreadyAllocatedError / IdentityAlreadyBoundError: Slot conflict
        """
        with self._non_reentrant("activate_vesting"):
            if not self._merkle.verify(
                identity, allocation, start_timestamp, end_timestamp, init_unlock_percentage, proof
            ):
                logger.warning(
                    "Rejected activation with invalid commitment data",
                    extra={"event": "vesting.invalid_proof", "caller": caller},
                )
                raise InvalidProofError("Invalid commitment data")

            ident = Identity.parse(identity)
            validate_schedule_terms(allocation, start_timestamp, end_timestamp, init_unlock_percentage)

            recipient = self._resolver.resolve(
                caller, ident, requested_recipient, signature, self.authority_signer
            )
            schedule = VestingSchedule(
                allocation=allocation,
                claimed=0,
                start_timestamp=start_timestamp,
                end_timestamp=end_timestamp,
                init_unlock_percentage=init_unlock_percentage,
            )
            self.ledger.seed(ident, recipient, schedule)
            self._emit(
                "VestingActivated",
                identity=ident.hex(),
                recipient=recipient,
                allocation=allocation,
            )
            logger.info(
                "Vesting activated for %s",
                recipient,
                extra={
                    "event": "vesting.activated",
                    "identity": ident.hex(),
                    "recipient": recipient,
                    "allocation": allocation,
                    "delegated": ident.native_address != recipient,
                },
            )
            return recipient

    def release_tokens(self, recipient: str) -> int:
        """
        Transfer the currently claimable amount to recipient.

        ``claimed`` is updated before the token is called; a failed transfer
        rolls the update back.

        Returns:
            Amount transferred (0 when nothing is claimable)

        Raises:
            NoAllocationError: Recipient holds no schedule
            TransferFailedError: Token transfer failed
        """
        with self._non_reentrant("release_tokens"):
            recipient = normalize_address(recipient, "recipient")
            schedule = self._require_schedule(recipient)
            if self.token is None:
                raise ConfigurationError("Token address not set")

            amount = claimable_amount(schedule, self._current_time())
            if amount == 0:
                logger.debug(
                    "Nothing claimable for %s",
                    recipient,
                    extra={"event": "vesting.nothing_claimable", "recipient": recipient},
                )
                return 0

            self.ledger.record_claim(recipient, amount)
            self._transfer(recipient, amount)

            self._emit("TokensReleased", recipient=recipient, amount=amount)
            logger.info(
                "Released %d tokens to %s",
                amount,
                recipient,
                extra={"event": "vesting.released", "recipient": recipient, "amount": amount},
            )
            return amount

    def update_recipient_wallet(
        self,
        caller: str,
        identity: Identity | bytes | str,
        new_recipient: str,
    ) -> None:
        """Move the caller's schedule to a new wallet (caller must be the bound recipient)."""
        with self._non_reentrant("update_recipient_wallet"):
            caller = normalize_address(caller, "caller")
            self._migrate(Identity.parse(identity), caller, new_recipient, actor=caller)

    def admin_update_recipient_wallet(
        self,
        caller: str,
        identity: Identity | bytes | str,
        current_recipient: str,
        new_recipient: str,
    ) -> None:
        """Owner-initiated migration on behalf of the bound recipient."""
        with self._non_reentrant("admin_update_recipient_wallet"):
            self._require_owner(caller)
            current = normalize_address(current_recipient, "current recipient")
            self._migrate(Identity.parse(identity), current, new_recipient, actor=self.owner)

    def set_authority_signer(self, caller: str, new_signer: str) -> None:
        with self._non_reentrant("set_authority_signer"):
            self._require_owner(caller)
            signer = self._require_config_address(new_signer, "authority signer")
            previous = self.authority_signer
            self.authority_signer = signer
            self._emit("AuthoritySignerUpdated", previous=previous, current=signer)
            logger.info(
                "Authority signer rotated",
                extra={"event": "vesting.authority_updated", "previous": previous, "current": signer},
            )

    def set_token_address(self, caller: str, token: TokenTransfer) -> None:
        """Attach the token contract (write-once)."""
        with self._non_reentrant("set_token_address"):
            self._require_owner(caller)
            if token is None or is_zero_address(getattr(token, "address", None)):
                raise ConfigurationError("Invalid token address")
            if self.token is not None:
                raise TokenAlreadySetError(
                    "Token address already set", details={"token": self.token.address}
                )
            self._require_config_address(token.address, "token address")
            self.token = token
            self._emit("TokenAddressSet", token=token.address)
            logger.info(
                "Token address set",
                extra={"event": "vesting.token_set", "token": token.address},
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._non_reentrant("transfer_ownership"):
            self._require_owner(caller)
            owner = self._require_config_address(new_owner, "new owner")
            previous = self.owner
            self.owner = owner
            self._emit("OwnershipTransferred", previous=previous, current=owner)
            logger.info(
                "Ownership transferred",
                extra={"event": "vesting.ownership_transferred", "previous": previous, "current": owner},
            )

    # ==================== Read-only Queries ====================

    def claimable_amount(self, recipient: str) -> int:
        with self._lock:
            schedule = self._require_schedule(normalize_address(recipient, "recipient"))
            return claimable_amount(schedule, self._current_time())

    def claimable_amount_by_identity(self, identity: Identity | bytes | str) -> int:
        """Claimable amount for an identity's bound recipient, 0 if unbound."""
        with self._lock:
            recipient = self.ledger.recipient_of(Identity.parse(identity))
            if recipient is None:
                return 0
            schedule = self.ledger.schedule_of(recipient)
            if schedule is None:
                return 0
            return claimable_amount(schedule, self._current_time())

    def vested_amount(self, recipient: str) -> int:
        with self._lock:
            schedule = self._require_schedule(normalize_address(recipient, "recipient"))
            return vested_amount(schedule, self._current_time())

    def get_schedule(self, recipient: str) -> VestingSchedule | None:
        with self._lock:
            return self.ledger.schedule_of(normalize_address(recipient, "recipient"))

    def recipient_of(self, identity: Identity | bytes | str) -> str | None:
        with self._lock:
            return self.ledger.recipient_of(Identity.parse(identity))

    def verify_allocation(
        self,
        identity: Identity | bytes | str,
        allocation: int,
        start_timestamp: int,
        end_timestamp: int,
        init_unlock_percentage: int,
        proof: Sequence[ProofItem],
    ) -> bool:
        return self._merkle.verify(
            identity, allocation, start_timestamp, end_timestamp, init_unlock_percentage, proof
        )

    # ==================== Helpers ====================

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._entered:
                logger.warning(
                    "Rejected re-entrant call to %s",
                    operation,
                    extra={"event": "vesting.reentrancy_blocked", "operation": operation},
                )
                raise ReentrancyError(f"Re-entrant call to {operation}")
            self._entered = True
            events_mark = len(self.events)
            try:
                with self.ledger.transaction():
                    yield
            except BaseException:
                del self.events[events_mark:]
                raise
            finally:
                self._entered = False

    def _migrate(self, ident: Identity, current: str, new_recipient: str, actor: str) -> None:
        if self.ledger.recipient_of(ident) != current:
            logger.warning(
                "Rejected wallet update by unbound recipient",
                extra={"event": "vesting.migration_unauthorized", "identity": ident.hex(), "actor": actor},
            )
            raise UnauthorizedCallerError(
                "Caller is not the bound recipient", details={"identity": ident.hex()}
            )
        if is_zero_address(new_recipient):
            raise InvalidAddressError("Invalid recipient: null address")
        new_recipient = normalize_address(new_recipient, "new recipient")

        schedule = self.ledger.migrate(ident, current, new_recipient)
        self._emit(
            "RecipientUpdated",
            identity=ident.hex(),
            previous=current,
            current=new_recipient,
            actor=actor,
        )
        logger.info(
            "Recipient wallet updated",
            extra={
                "event": "vesting.recipient_updated",
                "identity": ident.hex(),
                "previous": current,
                "current": new_recipient,
                "claimed": schedule.claimed,
            },
        )

    def _transfer(self, recipient: str, amount: int) -> None:
        try:
            ok = self.token.transfer(self.address, recipient, amount)
        except AuthorizationError:
            raise
        except Exception as exc:
            logger.error(
                "Token transfer raised: %s",
                exc,
                extra={"event": "vesting.transfer_failed", "recipient": recipient, "amount": amount},
            )
            raise TransferFailedError("Token transfer failed", reason=str(exc)) from exc
        if ok is not True:
            logger.error(
                "Token transfer reported failure",
                extra={"event": "vesting.transfer_failed", "recipient": recipient, "amount": amount},
            )
            raise TransferFailedError("Token transfer failed", reason="transfer returned false")

    def _require_schedule(self, recipient: str) -> VestingSchedule:
        schedule = self.ledger.schedule_of(recipient)
        if schedule is None or schedule.allocation == 0:
            raise NoAllocationError("No allocation", details={"recipient": recipient})
        return schedule

    def _require_owner(self, caller: str) -> None:
        try:
            is_owner = normalize_address(caller, "caller") == self.owner
        except InvalidAddressError:
            is_owner = False
        if not is_owner:
            logger.warning(
                "Rejected admin call from non-owner",
                extra={"event": "vesting.not_owner", "caller": str(caller)},
            )
            raise UnauthorizedCallerError("Caller is not owner")

    @staticmethod
    def _require_config_address(address: str, field: str) -> str:
        if is_zero_address(address):
            raise ConfigurationError(f"Invalid {field}: zero address")
        try:
            return normalize_address(address, field)
        except InvalidAddressError as exc:
            raise ConfigurationError(f"Invalid {field}: {address!r}") from exc

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def _emit(self, event_type: str, **data: Any) -> None:
        self.events.append(
            VestingEvent(event_type=event_type, data=data, timestamp=self._current_time())
        )

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "address": self.address,
                "owner": self.owner,
                "authority_signer": self.authority_signer,
                "commitment_root": "0x" + self.commitment_root.hex(),
                "token_address": self.token.address if self.token is not None else None,
                "ledger": self.ledger.to_dict(),
            }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        token: TokenTransfer | None = None,
        time_provider: Callable[[], int] | None = None,
    ) -> "TokenVestingLinear":
        """
        Restore a ledger; ``token`` must match the persisted token address.

        Raises:
            ConfigurationError: If the token does not match the stored address
        """
        contract = cls(
            owner=data["owner"],
            authority_signer=data["authority_signer"],
            commitment_root=data["commitment_root"],
            time_provider=time_provider,
            address=data.get("address"),
        )
        contract.ledger = VestingLedger.from_dict(data.get("ledger", {}))
        stored_token = data.get("token_address")
        if stored_token is not None:
            if token is None or token.address.lower() != stored_token.lower():
                raise ConfigurationError(
                    "Token does not match persisted token address",
                    details={"token_address": stored_token},
                )
            contract.token = token
        return contract
