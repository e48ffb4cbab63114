"""
Ledger store: slot uniqueness and journal-based rollback.
"""

import pytest

from tokenvesting.blockchain.vesting import VestingSchedule
from tokenvesting.core.blockchain_exceptions import (
    IdentityAlreadyBoundError,
    LedgerStateError,
    NoAllocationError,
    RecipientAlreadyAllocatedError,
    UnauthorizedCallerError,
)
from tokenvesting.core.contracts.vesting_ledger import VestingLedger


def schedule(allocation=1000, claimed=0):
    return VestingSchedule(
        allocation=allocation,
        claimed=claimed,
        start_timestamp=0,
        end_timestamp=100,
        init_unlock_percentage=10,
    )


@pytest.fixture
def ledger():
    return VestingLedger()


@pytest.fixture
def seeded(ledger, alice_identity, alice):
    with ledger.transaction():
        ledger.seed(alice_identity, alice.address, schedule())
    return ledger


class TestSeed:
    def test_seed_binds_identity_and_schedule(self, seeded, alice_identity, alice):
        assert seeded.recipient_of(alice_identity) == alice.address
        assert seeded.schedule_of(alice.address) == schedule()
        assert seeded.has_allocation(alice.address)
        assert len(seeded) == 1

    def test_recipient_slot_conflict(self, seeded, foreign_identity, alice):
        with pytest.raises(RecipientAlreadyAllocatedError):
            with seeded.transaction():
                seeded.seed(foreign_identity, alice.address, schedule(2000))
        assert seeded.schedule_of(alice.address).allocation == 1000
        assert not seeded.is_bound(foreign_identity)

    def test_identity_conflict(self, seeded, alice_identity, dave):
        with pytest.raises(IdentityAlreadyBoundError):
            with seeded.transaction():
                seeded.seed(alice_identity, dave.address, schedule())
        assert seeded.schedule_of(dave.address) is None

    def test_seed_requires_fresh_schedule(self, ledger, alice_identity, alice):
        with pytest.raises(LedgerStateError):
            with ledger.transaction():
                ledger.seed(alice_identity, alice.address, schedule(claimed=1))

    def test_writes_outside_transaction_rejected(self, ledger, alice_identity, alice):
        with pytest.raises(LedgerStateError):
            ledger.seed(alice_identity, alice.address, schedule())
        assert not ledger.is_bound(alice_identity)


class TestTransactions:
    def test_rollback_restores_every_write(self, seeded, alice_identity, foreign_identity, alice, dave):
        before = seeded.to_dict()
        with pytest.raises(RuntimeError):
            with seeded.transaction():
                seeded.record_claim(alice.address, 300)
                seeded.seed(foreign_identity, dave.address, schedule(2000))
                seeded.migrate(alice_identity, alice.address, "0x" + "22" * 20)
                raise RuntimeError("external call failed")
        assert seeded.to_dict() == before
        assert not seeded.in_transaction

    def test_nested_transaction_rejected(self, ledger):
        with pytest.raises(LedgerStateError):
            with ledger.transaction():
                with ledger.transaction():
                    pass
        assert not ledger.in_transaction


class TestRecordClaim:
    def test_increments_claimed(self, seeded, alice):
        with seeded.transaction():
            seeded.record_claim(alice.address, 100)
            updated = seeded.record_claim(alice.address, 450)
        assert updated.claimed == 550
        assert seeded.schedule_of(alice.address).claimed == 550

    def test_cannot_exceed_allocation(self, seeded, alice):
        with pytest.raises(LedgerStateError):
            with seeded.transaction():
                seeded.record_claim(alice.address, 1001)
        assert seeded.schedule_of(alice.address).claimed == 0

    def test_cannot_decrease(self, seeded, alice):
        with pytest.raises(LedgerStateError):
            with seeded.transaction():
                seeded.record_claim(alice.address, -1)

    def test_unknown_recipient(self, ledger, dave):
        with pytest.raises(NoAllocationError):
            with ledger.transaction():
                ledger.record_claim(dave.address, 1)


class TestMigrate:
    def test_moves_whole_schedule(self, seeded, alice_identity, alice, dave):
        with seeded.transaction():
            seeded.record_claim(alice.address, 550)
            moved = seeded.migrate(alice_identity, alice.address, dave.address)
        assert moved.claimed == 550
        assert seeded.schedule_of(dave.address) == schedule(claimed=550)
        assert seeded.schedule_of(alice.address) is None
        assert not seeded.has_allocation(alice.address)
        assert seeded.recipient_of(alice_identity) == dave.address

    def test_requires_current_binding(self, seeded, alice_identity, bob, dave):
        with pytest.raises(UnauthorizedCallerError):
            with seeded.transaction():
                seeded.migrate(alice_identity, bob.address, dave.address)

    def test_target_slot_must_be_empty(self, seeded, alice_identity, foreign_identity, alice, dave):
        with seeded.transaction():
            seeded.seed(foreign_identity, dave.address, schedule(2000))
        with pytest.raises(RecipientAlreadyAllocatedError):
            with seeded.transaction():
                seeded.migrate(alice_identity, alice.address, dave.address)


class TestSerialization:
    def test_round_trip(self, seeded, alice_identity, alice):
        restored = VestingLedger.from_dict(seeded.to_dict())
        assert restored.recipient_of(alice_identity) == alice.address
        assert restored.schedule_of(alice.address) == schedule()

    def test_lowercased_addresses_are_normalized(self, seeded, alice_identity, alice):
        data = seeded.to_dict()
        data["schedules"] = {k.lower(): v for k, v in data["schedules"].items()}
        data["recipients"] = {k: v.lower() for k, v in data["recipients"].items()}

        restored = VestingLedger.from_dict(data)
        assert restored.recipient_of(alice_identity) == alice.address
        assert restored.has_allocation(alice.address)
        with restored.transaction():
            assert restored.record_claim(alice.address, 100).claimed == 100

    @pytest.mark.parametrize("allocation,claimed", [(0, 0), (1000, 1001), (1000, -1)])
    def test_rejects_schedule_outside_bounds(self, seeded, alice, allocation, claimed):
        data = seeded.to_dict()
        data["schedules"][alice.address].update(allocation=allocation, claimed=claimed)
        with pytest.raises(LedgerStateError):
            VestingLedger.from_dict(data)

    def test_rejects_binding_without_schedule(self, seeded, alice):
        data = seeded.to_dict()
        del data["schedules"][alice.address]
        with pytest.raises(LedgerStateError):
            VestingLedger.from_dict(data)

    def test_rejects_malformed_recipient(self, seeded, alice):
        data = seeded.to_dict()
        data["schedules"]["not-an-address"] = data["schedules"].pop(alice.address)
        with pytest.raises(LedgerStateError):
            VestingLedger.from_dict(data)
