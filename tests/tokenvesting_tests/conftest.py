import pytest
from eth_account import Account

from tests.helpers.allocation_tree import AllocationTree
from tokenvesting.core.contracts.erc20 import ERC20Token
from tokenvesting.core.contracts.token_vesting_linear import TokenVestingLinear
from tokenvesting.core.identity import Identity


class Clock:
    """Settable block timestamp."""

    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def _account(seed):
    return Account.from_key(bytes([seed]) * 32)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def owner():
    return _account(1)


@pytest.fixture
def authority():
    return _account(2)


@pytest.fixture
def alice():
    return _account(3)


@pytest.fixture
def bob():
    return _account(4)


@pytest.fixture
def carol():
    return _account(5)


@pytest.fixture
def dave():
    return _account(6)


@pytest.fixture
def alice_identity(alice):
    return Identity.from_address(alice.address)


@pytest.fixture
def foreign_identity():
    return Identity.from_bytes(bytes.fromhex("a1" * 32))


@pytest.fixture
def spoof_identity(bob):
    """Foreign identity whose low 20 bytes equal bob's address."""
    return Identity.from_bytes(b"\xff" * 12 + bytes.fromhex(bob.address[2:]))


@pytest.fixture
def tree(alice_identity, foreign_identity, spoof_identity, carol):
    return AllocationTree([
        (alice_identity, 1000, 0, 100, 10),
        (foreign_identity, 2000, 0, 200, 0),
        (spoof_identity, 300, 0, 100, 50),
        (Identity.from_address(carol.address), 500, 50, 50, 0),
    ])


@pytest.fixture
def vesting(owner, authority, tree, clock):
    return TokenVestingLinear(
        owner=owner.address,
        authority_signer=authority.address,
        commitment_root=tree.root,
        time_provider=clock,
    )


@pytest.fixture
def token(owner, vesting):
    token = ERC20Token(name="Vest Token", symbol="VEST", owner=owner.address)
    token.mint(owner.address, vesting.address, 10_000)
    vesting.set_token_address(owner.address, token)
    return token
