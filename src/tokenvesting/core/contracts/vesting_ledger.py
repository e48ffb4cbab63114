"""
Authoritative vesting state: recipient -> schedule and identity -> recipient.

Writes go through a journal while a transaction is open. Leaving the
transaction with an exception replays the journal backwards, so a failed
operation leaves no trace in either map.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from tokenvesting.blockchain.vesting import VestingSchedule
from tokenvesting.core.blockchain_exceptions import (
    IdentityAlreadyBoundError,
    LedgerStateError,
    NoAllocationError,
    RecipientAlreadyAllocatedError,
    UnauthorizedCallerError,
    VestingError,
)
from tokenvesting.core.crypto_utils import normalize_address
from tokenvesting.core.identity import Identity

logger = logging.getLogger(__name__)

_MISSING = object()


class VestingLedger:
    def __init__(self) -> None:
        self._schedules: dict[str, VestingSchedule] = {}
        self._recipients: dict[bytes, str] = {}
        self._journal: list[tuple[dict, Any, Any]] | None = None

    # ==================== Reads ====================

    def schedule_of(self, recipient: str) -> VestingSchedule | None:
        return self._schedules.get(recipient)

    def recipient_of(self, identity: Identity) -> str | None:
        return self._recipients.get(identity.raw)

    def has_allocation(self, recipient: str) -> bool:
        schedule = self._schedules.get(recipient)
        return schedule is not None and schedule.allocation > 0

    def is_bound(self, identity: Identity) -> bool:
        return identity.raw in self._recipients

    def __len__(self) -> int:
        return len(self._schedules)

    # ==================== Transactions ====================

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    @contextmanager
    def transaction(self) -> Iterator["VestingLedger"]:
        if self._journal is not None:
            raise LedgerStateError("Ledger transaction already open")
        self._journal = []
        try:
            yield self
        except BaseException:
            self._rollback()
            raise
        finally:
            self._journal = None

    def _rollback(self) -> None:
        journal = self._journal or []
        for mapping, key, previous in reversed(journal):
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous
        if journal:
            logger.info(
                "Ledger transaction rolled back",
                extra={"event": "ledger.rollback", "writes": len(journal)},
            )

    def _write(self, mapping: dict, key: Any, value: Any) -> None:
        if self._journal is None:
            raise LedgerStateError("Ledger writes require an open transaction")
        self._journal.append((mapping, key, mapping.get(key, _MISSING)))
        if value is _MISSING:
            mapping.pop(key, None)
        else:
            mapping[key] = value

    # ==================== Writes ====================

    def seed(self, identity: Identity, recipient: str, schedule: VestingSchedule) -> None:
        """Bind identity to recipient and store its fresh schedule."""
        if self.has_allocation(recipient):
            raise RecipientAlreadyAllocatedError(
                "Recipient already has an allocation", details={"recipient": recipient}
            )
        if self.is_bound(identity):
            raise IdentityAlreadyBoundError(
                "Identity already activated", details={"identity": identity.hex()}
            )
        if schedule.allocation <= 0 or schedule.claimed != 0:
            raise LedgerStateError("Seeded schedules need an allocation and nothing claimed")

        self._write(self._recipients, identity.raw, recipient)
        self._write(self._schedules, recipient, schedule)

    def record_claim(self, recipient: str, amount: int) -> VestingSchedule:
        schedule = self._schedules.get(recipient)
        if schedule is None or schedule.allocation == 0:
            raise NoAllocationError("No allocation", details={"recipient": recipient})
        if amount < 0:
            raise LedgerStateError("Claimed amount cannot decrease")
        claimed = schedule.claimed + amount
        if claimed > schedule.allocation:
            raise LedgerStateError(
                "Claimed amount would exceed allocation",
                details={"recipient": recipient, "claimed": claimed},
            )
        updated = schedule.with_claimed(claimed)
        self._write(self._schedules, recipient, updated)
        return updated

    def migrate(self, identity: Identity, current_recipient: str, new_recipient: str) -> VestingSchedule:
        """Move the whole schedule to new_recipient and clear the old slot."""
        if self._recipients.get(identity.raw) != current_recipient:
            raise UnauthorizedCallerError(
                "Recipient is not bound to this identity",
                details={"identity": identity.hex(), "recipient": current_recipient},
            )
        if self.has_allocation(new_recipient):
            raise RecipientAlreadyAllocatedError(
                "Recipient already has an allocation", details={"recipient": new_recipient}
            )
        schedule = self._schedules.get(current_recipient)
        if schedule is None:
            raise NoAllocationError("No allocation", details={"recipient": current_recipient})

        self._write(self._recipients, identity.raw, new_recipient)
        self._write(self._schedules, new_recipient, schedule)
        self._write(self._schedules, current_recipient, _MISSING)
        return schedule

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedules": {
                recipient: schedule.to_dict() for recipient, schedule in self._schedules.items()
            },
            "recipients": {
                "0x" + raw.hex(): recipient for raw, recipient in self._recipients.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VestingLedger":
        """
        Restore persisted state, normalizing addresses and re-checking invariants.

        Raises:
            LedgerStateError: On a malformed schedule, binding or address
        """
        ledger = cls()
        try:
            for recipient, raw_schedule in data.get("schedules", {}).items():
                address = normalize_address(recipient, "recipient")
                schedule = VestingSchedule.from_dict(raw_schedule)
                if address in ledger._schedules:
                    raise LedgerStateError(
                        "Duplicate recipient in persisted state", details={"recipient": address}
                    )
                if schedule.allocation <= 0 or not 0 <= schedule.claimed <= schedule.allocation:
                    raise LedgerStateError(
                        "Persisted schedule breaks allocation bounds",
                        details={"recipient": address, "claimed": schedule.claimed},
                    )
                ledger._schedules[address] = schedule

            for identity, recipient in data.get("recipients", {}).items():
                ident = Identity.parse(identity)
                address = normalize_address(recipient, "recipient")
                if address not in ledger._schedules:
                    raise LedgerStateError(
                        "Identity bound to a recipient without a schedule",
                        details={"identity": ident.hex(), "recipient": address},
                    )
                ledger._recipients[ident.raw] = address
        except LedgerStateError:
            raise
        except (VestingError, KeyError, TypeError, ValueError) as exc:
            raise LedgerStateError(f"Invalid persisted ledger state: {exc}") from exc
        return ledger
