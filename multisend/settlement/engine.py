"""
MultiSend settlement engine.

Pays many recipients from one payer in a single call, in the native asset
or in a fungible token, optionally charging a flat fee.

Every mutating operation runs as one call on the world state:

    WorldState.atomic()          all-or-nothing; rolled back on any error
      ReentrancyGuard.entered()  rejects re-entry from recipient code
        attached value moved in
        validate -> fee -> collect fee -> pay each recipient -> refund
        summary event

Delivery semantics (native and token alike): best effort, at most one
attempt per recipient. A refused payout does not abort the call; it emits
TransferFailed / TokenTransferFailed and the amount stays with the engine,
where the owner can withdraw it. A call can therefore succeed while some
recipients received nothing: inspect SettlementReceipt.failed or the
events. A failed fee collection is handled the same way.

Fatal conditions (bad batch, short funding, unauthorized caller,
re-entry, token pull failure, refund failure, withdrawal failure, fee
above ceiling) raise and leave no trace in the world state.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from eth_utils import keccak

from multisend.chain.world import Transaction, WorldState
from multisend.core.exceptions import (
    AccessControlError,
    BatchTooLargeError,
    EmptyBatchError,
    InsufficientBalanceError,
    InsufficientFundingError,
    InvalidAmountError,
    InvalidRecipientError,
    MultiSendError,
    NoFundsError,
    NotOwnerError,
    RefundFailedError,
    TokenPullFailedError,
    WithdrawalTransferFailedError,
    ZeroAddressError,
)
from multisend.core.guard import GuardState, ReentrancyGuard
from multisend.core.models import (
    MAX_RECIPIENTS,
    ZERO_ADDRESS,
    EngineConfig,
    EventName,
    SettlementReceipt,
    TransferOutcome,
    is_zero_address,
    normalize_address,
)
from multisend.core.state import Participant
from multisend.settlement.batch import (
    EqualSplit,
    is_amount,
    required_funding,
    split_equal,
    validate_amounts,
    validate_recipients,
    validate_value,
)
from multisend.settlement.fees import current_fee, validate_flat_fee
from multisend.tokens.base import TokenLedger


logger = logging.getLogger(__name__)


@dataclass
class _Call:
    tx:     Transaction
    sender: str
    value:  int


class MultiSendEngine(Participant):
    """
    Batch settlement engine bound to one WorldState.

    The owner is fixed at construction. The fee collector can be changed by
    the owner; the owner itself cannot.
    """

    def __init__(
        self,
        world:         WorldState,
        owner:         str,
        fee_collector: Optional[str] = None,
        flat_fee:      int = 0,
        fees_enabled:  bool = False,
        address:       Optional[str] = None,
    ) -> None:
        owner = _config_address(owner, "owner")
        fee_collector = _config_address(fee_collector or owner, "fee_collector")
        validate_flat_fee(flat_fee)

        self.world = world
        self.address = normalize_address(address) if address else derive_engine_address(owner)
        self._config = EngineConfig(
            owner=         owner,
            fee_collector= fee_collector,
            flat_fee=      flat_fee,
            fees_enabled=  bool(fees_enabled),
        )
        self._guard = ReentrancyGuard()

        world.register_participant(self)
        with world.atomic():
            world.emit(self.address, EventName.OWNERSHIP_TRANSFERRED, {
                "previousOwner": ZERO_ADDRESS,
                "newOwner":      owner,
            })
        logger.info("MultiSend engine %s deployed (owner=%s)", self.address, owner)

    # ── Reads ─────────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._config.owner

    @property
    def fee_collector(self) -> str:
        return self._config.fee_collector

    @property
    def flat_fee(self) -> int:
        return self._config.flat_fee

    @property
    def fees_enabled(self) -> bool:
        return self._config.fees_enabled

    @property
    def guard_state(self) -> GuardState:
        return self._guard.state

    def get_current_fee(self) -> int:
        return current_fee(self._config)

    def get_balance(self) -> int:
        return self.world.balance_of(self.address)

    def get_token_balance(self, token: str) -> int:
        return self.world.token(token).balance_of(self.address)

    def quote_equal(self, recipient_count: int, funding: int) -> EqualSplit:
        """What send_equal would pay each of recipient_count recipients."""
        if recipient_count <= 0:
            raise EmptyBatchError("No recipients provided")
        if recipient_count > MAX_RECIPIENTS:
            raise BatchTooLargeError(f"Maximum {MAX_RECIPIENTS} recipients allowed",
                                     {"count": recipient_count})
        return split_equal(validate_value(funding), self.get_current_fee(), recipient_count)

    def quote_different(self, amounts: Sequence[int]) -> int:
        """Value to attach to send_different for these amounts."""
        for i, amount in enumerate(amounts):
            if not is_amount(amount) or amount <= 0:
                raise InvalidAmountError("Amount must be a positive integer",
                                         {"index": i, "amount": amount})
        return required_funding(amounts, self.get_current_fee())

    # ── Native batches ────────────────────────────────────────

    def send_equal(self, sender: str, recipients: Sequence[str], value: int) -> SettlementReceipt:
        """Split value minus the fee equally; the floor remainder is refunded."""
        with self._call("send_equal", sender, value) as call:
            recipients = validate_recipients(recipients)
            fee = self.get_current_fee()
            split = split_equal(call.value, fee, len(recipients))

            outcomes = self._collect_fee(fee)
            for recipient in recipients:
                outcomes.append(self._pay_native(recipient, split.per_recipient))
            self._refund(call.sender, split.remainder)

            self.world.emit(self.address, EventName.MULTI_TRANSFER, {
                "sender":         call.sender,
                "totalAmount":    split.distributed,
                "feeAmount":      fee,
                "recipientCount": len(recipients),
            })
            receipt = SettlementReceipt(
                operation=       "send_equal",
                sender=          call.sender,
                total_amount=    split.distributed,
                fee_amount=      fee,
                recipient_count= len(recipients),
                per_recipient=   split.per_recipient,
                refund=          split.remainder,
                outcomes=        tuple(outcomes),
            )
        return self._settled(receipt, call)

    def send_different(
        self,
        sender:     str,
        recipients: Sequence[str],
        amounts:    Sequence[int],
        value:      int,
    ) -> SettlementReceipt:
        """Pay each recipient its own amount; value above amounts plus fee is refunded."""
        with self._call("send_different", sender, value) as call:
            recipients = validate_recipients(recipients)
            amounts = validate_amounts(recipients, amounts)
            fee = self.get_current_fee()
            total = sum(amounts)
            required = required_funding(amounts, fee)
            if call.value < required:
                raise InsufficientFundingError(
                    "Insufficient value for amounts plus fee",
                    {"value": call.value, "required": required},
                )

            outcomes = self._collect_fee(fee)
            for recipient, amount in zip(recipients, amounts):
                outcomes.append(self._pay_native(recipient, amount))
            refund = call.value - required
            self._refund(call.sender, refund)

            self.world.emit(self.address, EventName.MULTI_TRANSFER, {
                "sender":         call.sender,
                "totalAmount":    total,
                "feeAmount":      fee,
                "recipientCount": len(recipients),
            })
            receipt = SettlementReceipt(
                operation=       "send_different",
                sender=          call.sender,
                total_amount=    total,
                fee_amount=      fee,
                recipient_count= len(recipients),
                refund=          refund,
                outcomes=        tuple(outcomes),
            )
        return self._settled(receipt, call)

    # ── Token batches ─────────────────────────────────────────

    def send_equal_token(
        self,
        sender:       str,
        token:        str,
        recipients:   Sequence[str],
        total_amount: int,
        value:        int = 0,
    ) -> SettlementReceipt:
        """
        Split total_amount of a token equally.

        Only recipients * per_recipient is pulled from the sender. The
        fee is paid in the native asset out of value; the rest of value
        is refunded.
        """
        with self._call("send_equal_token", sender, value) as call:
            ledger = self.world.token(token)
            recipients = validate_recipients(recipients)
            if not is_amount(total_amount) or total_amount <= 0:
                raise InvalidAmountError("Total amount must be a positive integer",
                                         {"total_amount": total_amount})
            fee = self._require_fee_value(call.value)
            split = split_equal(total_amount, 0, len(recipients))

            self._pull(ledger, call.sender, split.distributed)
            outcomes = self._collect_fee(fee)
            for recipient in recipients:
                outcomes.append(self._pay_token(ledger, recipient, split.per_recipient))
            refund = call.value - fee
            self._refund(call.sender, refund)

            self._emit_token_summary(call.sender, ledger, split.distributed, fee, len(recipients))
            receipt = SettlementReceipt(
                operation=       "send_equal_token",
                sender=          call.sender,
                asset=           ledger.address,
                total_amount=    split.distributed,
                fee_amount=      fee,
                recipient_count= len(recipients),
                per_recipient=   split.per_recipient,
                refund=          refund,
                outcomes=        tuple(outcomes),
            )
        return self._settled(receipt, call)

    def send_different_token(
        self,
        sender:     str,
        token:      str,
        recipients: Sequence[str],
        amounts:    Sequence[int],
        value:      int = 0,
    ) -> SettlementReceipt:
        with self._call("send_different_token", sender, value) as call:
            ledger = self.world.token(token)
            recipients = validate_recipients(recipients)
            amounts = validate_amounts(recipients, amounts)
            fee = self._require_fee_value(call.value)
            total = sum(amounts)

            self._pull(ledger, call.sender, total)
            outcomes = self._collect_fee(fee)
            for recipient, amount in zip(recipients, amounts):
                outcomes.append(self._pay_token(ledger, recipient, amount))
            refund = call.value - fee
            self._refund(call.sender, refund)

            self._emit_token_summary(call.sender, ledger, total, fee, len(recipients))
            receipt = SettlementReceipt(
                operation=       "send_different_token",
                sender=          call.sender,
                asset=           ledger.address,
                total_amount=    total,
                fee_amount=      fee,
                recipient_count= len(recipients),
                refund=          refund,
                outcomes=        tuple(outcomes),
            )
        return self._settled(receipt, call)

    # ── Deposits ──────────────────────────────────────────────

    def receive(self, sender: str, value: int) -> SettlementReceipt:
        """Accept a plain deposit. Recoverable by the owner via withdraw()."""
        with self._call("receive", sender, value) as call:
            receipt = SettlementReceipt(operation="receive", sender=call.sender,
                                        total_amount=call.value)
        return self._settled(receipt, call)

    # ── Fee administration ────────────────────────────────────

    def toggle_fees(self, sender: str) -> SettlementReceipt:
        with self._call("toggle_fees", sender) as call:
            self._only_owner(call.sender)
            self._config.fees_enabled = not self._config.fees_enabled
            self.world.emit(self.address, EventName.FEES_TOGGLED,
                            {"enabled": self._config.fees_enabled})
            receipt = SettlementReceipt(operation="toggle_fees", sender=call.sender)
        logger.info("Fees %s", "enabled" if self.fees_enabled else "disabled")
        return self._settled(receipt, call)

    def set_flat_fee(self, sender: str, amount: int) -> SettlementReceipt:
        with self._call("set_flat_fee", sender) as call:
            self._only_owner(call.sender)
            validate_flat_fee(amount)
            old_fee = self._config.flat_fee
            self._config.flat_fee = amount
            self.world.emit(self.address, EventName.FLAT_FEE_UPDATED,
                            {"oldFee": old_fee, "newFee": amount})
            receipt = SettlementReceipt(operation="set_flat_fee", sender=call.sender,
                                        fee_amount=amount)
        logger.info("Flat fee changed from %d to %d wei", old_fee, amount)
        return self._settled(receipt, call)

    def set_fee_collector(self, sender: str, fee_collector: str) -> SettlementReceipt:
        with self._call("set_fee_collector", sender) as call:
            self._only_owner(call.sender)
            new_collector = _config_address(fee_collector, "fee_collector")
            old_collector = self._config.fee_collector
            self._config.fee_collector = new_collector
            self.world.emit(self.address, EventName.FEE_COLLECTOR_UPDATED, {
                "oldCollector": old_collector,
                "newCollector": new_collector,
            })
            receipt = SettlementReceipt(operation="set_fee_collector", sender=call.sender)
        logger.info("Fee collector changed from %s to %s", old_collector, new_collector)
        return self._settled(receipt, call)

    # ── Recovery ──────────────────────────────────────────────

    def withdraw(self, sender: str, amount: int = 0) -> SettlementReceipt:
        """Send amount (0 = everything) of the engine's native balance to the owner."""
        with self._call("withdraw", sender) as call:
            self._only_owner(call.sender)
            amount = self._withdrawal_amount(amount, self.get_balance())
            if not self.world.send_value(self.address, self.owner, amount, gas=None):
                raise WithdrawalTransferFailedError(
                    "Withdrawal transfer to owner failed",
                    {"owner": self.owner, "amount": amount},
                )
            self.world.emit(self.address, EventName.WITHDRAWAL,
                            {"owner": self.owner, "amount": amount})
            receipt = SettlementReceipt(operation="withdraw", sender=call.sender,
                                        total_amount=amount)
        logger.info("Owner withdrew %d wei", amount)
        return self._settled(receipt, call)

    def withdraw_token(self, sender: str, token: str, amount: int = 0) -> SettlementReceipt:
        """Send amount (0 = everything) of the engine's token balance to the owner."""
        with self._call("withdraw_token", sender) as call:
            self._only_owner(call.sender)
            ledger = self.world.token(token)
            amount = self._withdrawal_amount(amount, ledger.balance_of(self.address))
            if not ledger.transfer(self.address, self.owner, amount):
                raise WithdrawalTransferFailedError(
                    "Token withdrawal transfer to owner failed",
                    {"owner": self.owner, "token": ledger.address, "amount": amount},
                )
            self.world.emit(self.address, EventName.TOKEN_WITHDRAWAL, {
                "owner":  self.owner,
                "token":  ledger.address,
                "amount": amount,
            })
            receipt = SettlementReceipt(operation="withdraw_token", sender=call.sender,
                                        asset=ledger.address, total_amount=amount)
        logger.info("Owner withdrew %d of token %s", amount, ledger.address)
        return self._settled(receipt, call)

    # ── Participant ───────────────────────────────────────────

    def snapshot(self) -> EngineConfig:
        return self._config.copy()

    def restore(self, state: EngineConfig) -> None:
        self._config = state.copy()

    # ── Internal: call boundary ───────────────────────────────

    @contextmanager
    def _call(self, operation: str, sender: str, value: int = 0) -> Iterator[_Call]:
        try:
            sender = normalize_address(sender)
        except ValueError:
            raise AccessControlError("Caller is not a valid address", {"sender": sender})
        value = validate_value(value)

        try:
            with self.world.atomic() as tx:
                with self._guard.entered(operation):
                    if value:
                        self.world.move(sender, self.address, value)
                    yield _Call(tx=tx, sender=sender, value=value)
        except MultiSendError as exc:
            logger.warning("%s by %s aborted: %s", operation, sender, exc)
            raise

    def _settled(self, receipt: SettlementReceipt, call: _Call) -> SettlementReceipt:
        receipt.events = list(call.tx.committed)
        if receipt.recipient_count:
            logger.info(
                "%s by %s settled: %d recipients, %d routed, fee %d, refund %d, %d failed",
                receipt.operation, receipt.sender, receipt.recipient_count,
                receipt.total_amount, receipt.fee_amount, receipt.refund,
                len(receipt.failed),
            )
        return receipt

    def _only_owner(self, sender: str) -> None:
        if sender != self._config.owner:
            raise NotOwnerError("Caller is not the owner", {"sender": sender})

    # ── Internal: value movement ──────────────────────────────

    def _require_fee_value(self, value: int) -> int:
        fee = self.get_current_fee()
        if value < fee:
            raise InsufficientFundingError("Attached value does not cover the fee",
                                           {"value": value, "fee": fee})
        return fee

    def _collect_fee(self, fee: int) -> list:
        """Pay the fee collector. Returns the outcome list for the batch."""
        if fee == 0:
            return []
        collector = self._config.fee_collector
        ok = self.world.send_value(self.address, collector, fee)
        if not ok:
            logger.warning("Fee collection of %d wei to %s failed; kept by engine",
                           fee, collector)
            self.world.emit(self.address, EventName.TRANSFER_FAILED,
                            {"recipient": collector, "amount": fee})
        return [TransferOutcome(recipient=collector, amount=fee, succeeded=ok, is_fee=True)]

    def _pay_native(self, recipient: str, amount: int) -> TransferOutcome:
        ok = self.world.send_value(self.address, recipient, amount)
        if not ok:
            logger.warning("Payout of %d wei to %s failed; kept by engine", amount, recipient)
            self.world.emit(self.address, EventName.TRANSFER_FAILED,
                            {"recipient": recipient, "amount": amount})
        return TransferOutcome(recipient=recipient, amount=amount, succeeded=ok)

    def _pay_token(self, ledger: TokenLedger, recipient: str, amount: int) -> TransferOutcome:
        ok = ledger.transfer(self.address, recipient, amount)
        if not ok:
            logger.warning("Token payout of %d to %s failed; kept by engine", amount, recipient)
            self.world.emit(self.address, EventName.TOKEN_TRANSFER_FAILED, {
                "token":     ledger.address,
                "recipient": recipient,
                "amount":    amount,
            })
        return TransferOutcome(recipient=recipient, amount=amount, succeeded=ok)

    def _pull(self, ledger: TokenLedger, owner: str, amount: int) -> None:
        allowance = ledger.allowance(owner, self.address)
        balance = ledger.balance_of(owner)
        details = {"token": ledger.address, "sender": owner, "amount": amount,
                   "allowance": allowance, "balance": balance}
        if allowance < amount or balance < amount:
            raise TokenPullFailedError("Cannot pull batch total from sender", details)
        if not ledger.transfer_from(self.address, owner, self.address, amount):
            raise TokenPullFailedError("Token refused to move batch total", details)

    def _refund(self, to: str, amount: int) -> None:
        if amount == 0:
            return
        if not self.world.send_value(self.address, to, amount, gas=None):
            raise RefundFailedError("Could not refund excess value",
                                    {"sender": to, "amount": amount})

    def _emit_token_summary(self, sender: str, ledger: TokenLedger,
                            total: int, fee: int, count: int) -> None:
        self.world.emit(self.address, EventName.MULTI_TOKEN_TRANSFER, {
            "sender":         sender,
            "token":          ledger.address,
            "totalAmount":    total,
            "feeAmount":      fee,
            "recipientCount": count,
        })

    @staticmethod
    def _withdrawal_amount(amount: int, balance: int) -> int:
        amount = validate_value(amount, "amount")
        if balance == 0:
            raise NoFundsError("No funds to withdraw")
        if amount == 0:
            return balance
        if amount > balance:
            raise InsufficientBalanceError("Withdrawal exceeds balance",
                                           {"amount": amount, "balance": balance})
        return amount

    def __repr__(self) -> str:
        return (
            f"MultiSendEngine(address={self.address}, owner={self.owner}, "
            f"fee={self.get_current_fee()})"
        )


def derive_engine_address(owner: str, nonce: int = 0) -> str:
    """Default engine address: last 20 bytes of keccak(owner || nonce)."""
    digest = keccak(bytes.fromhex(owner[2:]) + nonce.to_bytes(32, "big"))
    return normalize_address("0x" + digest[-20:].hex())


def _config_address(value: str, name: str) -> str:
    try:
        address = normalize_address(value)
    except ValueError:
        raise InvalidRecipientError(f"{name} is not an address", {name: value})
    if is_zero_address(address):
        raise ZeroAddressError(f"{name} cannot be the zero address")
    return address
