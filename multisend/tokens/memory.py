"""
In-memory ERC20-style ledger.

Used by the test suite and by local simulations. It takes part in world
state snapshots, so a call that aborts leaves token balances and
allowances untouched.
"""

import logging
from typing import Any, Dict, Set, Tuple

from multisend.core.exceptions import InvalidAmountError
from multisend.core.models import normalize_address
from multisend.core.state import Participant
from multisend.tokens.base import TokenLedger


logger = logging.getLogger(__name__)


class InMemoryTokenLedger(TokenLedger, Participant):

    def __init__(self, address: str, symbol: str = "TKN", decimals: int = 18) -> None:
        self._address = normalize_address(address)
        self.symbol = symbol
        self.decimals = decimals

        self._balances:   Dict[str, int]             = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        # Recipients this ledger refuses to credit (e.g. a blocklist).
        self._blocked:    Set[str]                   = set()

    @property
    def address(self) -> str:
        return self._address

    # ── Test and setup helpers ────────────────────────────────

    def mint(self, to: str, amount: int) -> None:
        _check_amount(amount)
        to = normalize_address(to)
        self._balances[to] = self._balances.get(to, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        self._allowances[(normalize_address(owner), normalize_address(spender))] = amount

    def block(self, account: str) -> None:
        self._blocked.add(normalize_address(account))

    def unblock(self, account: str) -> None:
        self._blocked.discard(normalize_address(account))

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    # ── TokenLedger ───────────────────────────────────────────

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        _check_amount(amount)
        return self._move(normalize_address(sender), normalize_address(to), amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        _check_amount(amount)
        key = (normalize_address(owner), normalize_address(spender))
        allowed = self._allowances.get(key, 0)
        if allowed < amount:
            logger.debug("%s: allowance %d < %d for %s", self.symbol, allowed, amount, key)
            return False
        if not self._move(key[0], normalize_address(to), amount):
            return False
        self._allowances[key] = allowed - amount
        return True

    # ── Participant ───────────────────────────────────────────

    def snapshot(self) -> Any:
        return dict(self._balances), dict(self._allowances), set(self._blocked)

    def restore(self, state: Any) -> None:
        balances, allowances, blocked = state
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self._blocked = set(blocked)

    # ── Internal ──────────────────────────────────────────────

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if to in self._blocked:
            logger.debug("%s: transfer to blocked account %s refused", self.symbol, to)
            return False
        available = self._balances.get(sender, 0)
        if available < amount:
            return False
        self._balances[sender] = available - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        return True

    def __repr__(self) -> str:
        return f"InMemoryTokenLedger({self.symbol} @ {self._address})"


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmountError("Token amount must be a non-negative int",
                                 {"amount": amount})
