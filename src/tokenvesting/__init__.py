"""
tokenvesting - merkle-committed linear token vesting ledger

Allocations are committed into a merkle root at deployment. Each identity
activates its allocation once (self-claim, or delegated by an authority
signature) and its recipient releases the linearly vested portion over time.

Main Components:
- blockchain.vesting: vesting calculator
- blockchain.merkle: commitment verification
- core.contracts.token_vesting_linear: the ledger entry points
"""

__version__ = "0.1.0"
__author__ = "tokenvesting developers"

__all__ = []
