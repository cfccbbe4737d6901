"""
MultiSend token ledgers.

The engine consumes fungible tokens through the TokenLedger capability.
"""

from multisend.tokens.base import TokenLedger
from multisend.tokens.memory import InMemoryTokenLedger
from multisend.tokens.web3_ledger import ERC20_ABI, Web3TokenLedger

__all__ = [
    "TokenLedger",
    "InMemoryTokenLedger",
    "Web3TokenLedger",
    "ERC20_ABI",
]
