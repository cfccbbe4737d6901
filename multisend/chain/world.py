"""
multisend/chain/world.py

In-process execution platform the settlement engine runs on.

WorldState owns:
    - native balances, keyed by checksum address
    - receive hooks: Python callables standing in for recipient contract code
    - per-account storage slots that hooks may write
    - registered token ledgers
    - pending event logs of the call in flight

Call contract — atomic(), in this exact order:
    1. Acquire the world lock (re-entrant; serialises callers across threads)
    2. Snapshot balances, storage, pending logs and every participant
    3. Run the body
    4. At the outermost level: commit pending logs to the EventLog
    5. On any exception in 3 or 4: restore the snapshot, re-raise

Gas contract — while recipient code runs, the meter of its transfer is on
top of a stack and every world operation charges it: value movement
(CALL_VALUE_GAS), event emission (log_cost), storage writes (SSTORE_GAS).
Nothing is charged when the stack is empty.

Nested atomic() blocks snapshot independently, so a failed value transfer
(or a rejected re-entrant call) undoes only its own effects.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from multisend.chain.gas import (
    CALL_GAS,
    CALL_VALUE_GAS,
    GAS_STIPEND,
    SSTORE_GAS,
    GasMeter,
    log_cost,
)
from multisend.core.exceptions import (
    InsufficientFundingError,
    InvalidAmountError,
    InvalidTokenError,
)
from multisend.core.models import (
    EventName,
    EventRecord,
    LogEntry,
    encode_event_args,
    is_zero_address,
    normalize_address,
)
from multisend.core.state import Participant
from multisend.ledger.event_log import EventLog
from multisend.tokens.base import TokenLedger


logger = logging.getLogger(__name__)


@dataclass
class Transaction:
    """Handle yielded by atomic(). committed is filled at outermost commit."""
    depth:     int
    start:     int
    logs:      List[LogEntry]    = field(default_factory=list)
    committed: List[EventRecord] = field(default_factory=list)


class ReceiveContext:
    """
    What recipient code sees while receiving value.

    Every gas-consuming action goes through this object so the
    transfer's stipend is enforced.
    """

    def __init__(
        self,
        world:     "WorldState",
        sender:    str,
        recipient: str,
        amount:    int,
        gas:       GasMeter,
    ) -> None:
        self.world     = world
        self.sender    = sender
        self.recipient = recipient
        self.amount    = amount
        self.gas       = gas

    def emit_log(self, **args: Any) -> None:
        self.world.emit(self.recipient, EventName.HOOK_LOG, args)

    def sstore(self, key: str, value: Any) -> None:
        self.world.storage_set(self.recipient, key, value)

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Call out to another account (e.g. back into the engine).

        Whatever the callee does to the world is charged to this
        transfer's gas.
        """
        self.world.charge_gas(CALL_GAS, "call")
        return fn(*args, **kwargs)


Hook = Callable[[ReceiveContext], None]


class WorldState:
    """
    Native balances, recipient code and call atomicity.

    Thread-safe: every call runs under one re-entrant lock.
    """

    def __init__(self, event_log: Optional[EventLog] = None) -> None:
        self.event_log = event_log if event_log is not None else EventLog()

        self._lock:         threading.RLock             = threading.RLock()
        self._depth:        int                         = 0
        self._balances:     Dict[str, int]              = {}
        self._storage:      Dict[Tuple[str, str], Any]  = {}
        self._hooks:        Dict[str, Hook]             = {}
        self._tokens:       Dict[str, TokenLedger]      = {}
        self._pending:      List[LogEntry]              = []
        self._participants: List[Participant]           = []
        self._meters:       List[GasMeter]              = []

    # ── Accounts ──────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native value out of thin air (genesis allocation)."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmountError("Funding amount must be a non-negative int",
                                     {"amount": amount})
        with self._lock:
            address = normalize_address(address)
            self._balances[address] = self._balances.get(address, 0) + amount

    def set_hook(self, address: str, hook: Optional[Hook]) -> None:
        """Install (or with None, remove) code that runs when address receives value."""
        address = normalize_address(address)
        if hook is None:
            self._hooks.pop(address, None)
        else:
            self._hooks[address] = hook

    def storage_get(self, address: str, key: str, default: Any = None) -> Any:
        return self._storage.get((normalize_address(address), key), default)

    def storage_set(self, address: str, key: str, value: Any) -> None:
        self.charge_gas(SSTORE_GAS, "sstore")
        self._storage[(normalize_address(address), key)] = value

    # ── Tokens ────────────────────────────────────────────────

    def register_token(self, ledger: TokenLedger) -> TokenLedger:
        address = normalize_address(ledger.address)
        self._tokens[address] = ledger
        if isinstance(ledger, Participant):
            self.register_participant(ledger)
        return ledger

    def token(self, address: str) -> TokenLedger:
        try:
            address = normalize_address(address)
        except ValueError:
            raise InvalidTokenError("Token is not an address", {"token": address})
        if is_zero_address(address):
            raise InvalidTokenError("Token cannot be the native asset sentinel",
                                    {"token": address})
        ledger = self._tokens.get(address)
        if ledger is None:
            raise InvalidTokenError("Unknown token", {"token": address})
        return ledger

    def register_participant(self, participant: Participant) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    # ── Events ────────────────────────────────────────────────

    def emit(self, emitter: str, name: str, args: Dict[str, Any]) -> LogEntry:
        if self._depth == 0:
            raise RuntimeError("emit() called outside of an atomic() call")
        encoded = encode_event_args(name, args)
        data_bytes = sum(len(str(v)) for v in encoded.values())
        self.charge_gas(log_cost(topics=1, data_bytes=data_bytes), "log")
        entry = LogEntry(emitter=emitter, name=name, args=dict(args))
        self._pending.append(entry)
        return entry

    # ── Atomicity ─────────────────────────────────────────────

    @contextmanager
    def atomic(self) -> Iterator[Transaction]:
        with self._lock:
            snapshot = self._snapshot()
            self._depth += 1
            tx = Transaction(depth=self._depth, start=len(self._pending))
            try:
                yield tx
                tx.logs = list(self._pending[tx.start:])
                if tx.depth == 1:
                    tx.committed = self.event_log.append_all(self._pending)
                    self._pending = []
            except Exception as exc:
                self._restore(snapshot)
                logger.debug("Rolled back call at depth %d: %s", tx.depth, exc)
                raise
            finally:
                self._depth -= 1

    # ── Gas ───────────────────────────────────────────────────

    def charge_gas(self, amount: int, operation: str = "") -> None:
        """Charge the running recipient code, if any. Raises OutOfGasError."""
        with self._lock:
            if self._meters:
                self._meters[-1].charge(amount, operation)

    # ── Value movement ────────────────────────────────────────

    def move(self, sender: str, to: str, amount: int) -> None:
        """
        Debit sender and credit to. No recipient code runs.

        Raises InsufficientFundingError when sender cannot cover amount.
        Used for the value attached to a payable call.
        """
        self.charge_gas(CALL_VALUE_GAS, "value")
        self._move(sender, to, amount)

    def _move(self, sender: str, to: str, amount: int) -> None:
        sender = normalize_address(sender)
        to = normalize_address(to)
        available = self._balances.get(sender, 0)
        if amount > available:
            raise InsufficientFundingError(
                "Sender balance too low",
                {"sender": sender, "available": available, "required": amount},
            )
        self._balances[sender] = available - amount
        self._balances[to] = self._balances.get(to, 0) + amount

    def send_value(
        self,
        sender: str,
        to:     str,
        amount: int,
        gas:    Optional[int] = GAS_STIPEND,
    ) -> bool:
        """
        Transfer native value and run the recipient's code with a gas limit.

        Returns False, with every effect of the attempt undone, if the
        sender cannot pay or the recipient's code raises anything: a
        revert, running out of gas, a rejected MultiSend call or a plain
        error. Never retries.

        Called from inside other recipient code, the transfer itself is
        charged CALL_VALUE_GAS to the caller's meter first; a caller that
        cannot pay for it runs out of gas itself.
        """
        self.charge_gas(CALL_VALUE_GAS, "value")
        try:
            with self.atomic():
                self._move(sender, to, amount)
                to = normalize_address(to)
                hook = self._hooks.get(to)
                if hook is not None:
                    meter = GasMeter(gas)
                    self._meters.append(meter)
                    try:
                        hook(ReceiveContext(self, sender, to, amount, meter))
                    finally:
                        self._meters.pop()
        except Exception as exc:
            logger.debug("Value transfer %s -> %s of %d failed: %s",
                         sender, to, amount, exc)
            return False
        return True

    # ── Internal ──────────────────────────────────────────────

    def _snapshot(self) -> Tuple[Any, ...]:
        return (
            dict(self._balances),
            dict(self._storage),
            len(self._pending),
            [(p, p.snapshot()) for p in self._participants],
        )

    def _restore(self, snapshot: Tuple[Any, ...]) -> None:
        balances, storage, pending_len, participants = snapshot
        self._balances = balances
        self._storage = storage
        del self._pending[pending_len:]
        for participant, state in participants:
            participant.restore(state)

    def __repr__(self) -> str:
        return (
            f"WorldState(accounts={len(self._balances)}, "
            f"tokens={len(self._tokens)}, events={len(self.event_log)})"
        )
