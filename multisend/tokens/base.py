"""
Token ledger capability consumed by the settlement engine.

The engine never implements a token; it only calls these four operations
on an external ledger. Implementations:

    InMemoryTokenLedger   in-process ledger, rolls back with the world state
    Web3TokenLedger       ERC20 contract reached through web3.py

Return-value contract (mirrors ERC20):
    transfer / transfer_from return False when the ledger refuses the
    movement. Raising is reserved for misuse or an unreachable ledger and
    aborts the engine call that triggered it.
"""

from abc import ABC, abstractmethod


class TokenLedger(ABC):

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksum address identifying this token."""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        ...

    @abstractmethod
    def allowance(self, owner: str, spender: str) -> int:
        ...

    @abstractmethod
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        """Move amount from sender's own balance to `to`."""

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        """Move amount from owner to `to`, spending spender's allowance."""
