"""
tests/test_engine_native.py

Native-asset batches: equal split and explicit amounts.

  RECONCILIATION
    NAT-01  3 recipients, 0.1 unit, fees off: 33333333333333333 each, 1 wei refunded
    NAT-02  Equal split with fee: funding == fee + delivered + refund
    NAT-03  Explicit amounts refund funding - sum - fee exactly
    NAT-04  Explicit amounts short of sum + fee abort with nothing moved
    NAT-05  Duplicate recipients are paid once per occurrence

  BOUNDS
    NAT-06  0 recipients rejected
    NAT-07  200 recipients accepted
    NAT-08  201 recipients rejected
    NAT-09  Zero / malformed recipient rejected
    NAT-10  Split that floors to zero rejected
    NAT-11  Funding equal to the fee rejected

  DELIVERY
    NAT-12  Reverting recipient: TransferFailed, others paid, amount kept by engine
    NAT-13  Recipient code may log within the stipend
    NAT-14  Recipient code that writes storage runs out of gas
    NAT-15  Failed fee collection is recorded, not fatal
    NAT-16  Refund the payer cannot accept aborts the whole call
    NAT-17  Recipient code raising any error is recorded as a failed payout
    NAT-18  Recipient code emitting an unencodable log fails alone; the log stays usable
"""

import pytest

from helpers.accounts import (
    COLLECTOR,
    FEE,
    PAYER,
    crashing_hook,
    float_logging_hook,
    logging_hook,
    recipients,
    reverting_hook,
    storing_hook,
)
from multisend.core.exceptions import (
    BatchTooLargeError,
    EmptyBatchError,
    InsufficientFundingError,
    InvalidAmountError,
    InvalidRecipientError,
    LengthMismatchError,
    RefundFailedError,
    ZeroPerRecipientError,
)
from multisend.core.models import ZERO_ADDRESS, EventName


TENTH = 10 ** 17   # 0.1 native unit


def _snapshot_balances(world, accounts):
    return {a: world.balance_of(a) for a in accounts}


# ─────────────────────────────────────────────────────────────
# Reconciliation
# ─────────────────────────────────────────────────────────────

class TestReconciliation:

    def test_NAT01_equal_split_floor_remainder_refunded(self, world, engine):
        before = world.balance_of(PAYER)
        rs = recipients(3)

        receipt = engine.send_equal(PAYER, rs, TENTH)

        assert receipt.per_recipient == 33333333333333333
        assert receipt.refund == 1
        assert receipt.total_amount == 3 * 33333333333333333
        for r in rs:
            assert world.balance_of(r) == 33333333333333333
        assert world.balance_of(PAYER) == before - TENTH + 1
        assert engine.get_balance() == 0

        [summary] = receipt.events_named(EventName.MULTI_TRANSFER)
        assert summary.args == {
            "sender":         PAYER,
            "totalAmount":    99999999999999999,
            "feeAmount":      0,
            "recipientCount": 3,
        }

    def test_NAT02_equal_split_with_fee_reconciles(self, world, fee_engine):
        rs = recipients(7)
        value = TENTH + 12345

        receipt = fee_engine.send_equal(PAYER, rs, value)

        per = (value - FEE) // 7
        assert receipt.per_recipient == per
        assert receipt.fee_amount == FEE
        assert world.balance_of(COLLECTOR) == FEE
        assert value - FEE - receipt.refund == 7 * per
        assert receipt.delivered + FEE + receipt.refund == value
        assert fee_engine.get_balance() == 0

    def test_NAT03_explicit_amounts_exact_refund(self, world, fee_engine):
        rs = recipients(3)
        amounts = [10 ** 16, 2 * 10 ** 16, 3 * 10 ** 16]
        before = world.balance_of(PAYER)

        receipt = fee_engine.send_different(PAYER, rs, amounts, TENTH)

        assert receipt.refund == TENTH - sum(amounts) - FEE
        assert receipt.total_amount == sum(amounts)
        for r, amount in zip(rs, amounts):
            assert world.balance_of(r) == amount
        assert world.balance_of(PAYER) == before - sum(amounts) - FEE
        assert world.balance_of(COLLECTOR) == FEE

    def test_NAT03_exact_funding_has_no_refund(self, world, engine):
        receipt = engine.send_different(PAYER, recipients(2), [5, 7], 12)
        assert receipt.refund == 0
        assert engine.get_balance() == 0

    def test_NAT04_underfunded_amounts_abort(self, world, fee_engine):
        rs = recipients(2)
        tracked = rs + [PAYER, COLLECTOR, fee_engine.address]
        before = _snapshot_balances(world, tracked)
        log_len = len(world.event_log)

        with pytest.raises(InsufficientFundingError):
            fee_engine.send_different(PAYER, rs, [TENTH, TENTH], 2 * TENTH)

        assert _snapshot_balances(world, tracked) == before
        assert len(world.event_log) == log_len

    def test_NAT05_duplicate_recipients_paid_per_occurrence(self, world, engine):
        r = recipients(1)[0]
        engine.send_different(PAYER, [r, r], [3, 4], 7)
        assert world.balance_of(r) == 7

    def test_length_mismatch_rejected(self, engine):
        with pytest.raises(LengthMismatchError):
            engine.send_different(PAYER, recipients(3), [1, 2], 3)

    @pytest.mark.parametrize("bad", [0, -1, True, 1.5])
    def test_non_positive_or_non_int_amount_rejected(self, engine, bad):
        with pytest.raises(InvalidAmountError):
            engine.send_different(PAYER, recipients(2), [1, bad], 10)

    def test_value_above_payer_balance_rejected(self, world, engine):
        with pytest.raises(InsufficientFundingError):
            engine.send_equal(PAYER, recipients(2), world.balance_of(PAYER) + 1)


# ─────────────────────────────────────────────────────────────
# Bounds
# ─────────────────────────────────────────────────────────────

class TestBounds:

    def test_NAT06_empty_batch(self, engine):
        with pytest.raises(EmptyBatchError):
            engine.send_equal(PAYER, [], TENTH)
        with pytest.raises(EmptyBatchError):
            engine.send_different(PAYER, [], [], TENTH)

    def test_NAT07_two_hundred_recipients(self, world, engine):
        rs = recipients(200)
        receipt = engine.send_equal(PAYER, rs, 200 * 10 ** 15)
        assert receipt.recipient_count == 200
        assert receipt.per_recipient == 10 ** 15
        assert all(world.balance_of(r) == 10 ** 15 for r in rs)

    def test_NAT08_two_hundred_one_recipients(self, world, engine):
        before = world.balance_of(PAYER)
        with pytest.raises(BatchTooLargeError):
            engine.send_equal(PAYER, recipients(201), TENTH)
        with pytest.raises(BatchTooLargeError):
            engine.send_different(PAYER, recipients(201), [1] * 201, 201)
        assert world.balance_of(PAYER) == before

    @pytest.mark.parametrize("bad", [ZERO_ADDRESS, "0x1234", "not-an-address", None])
    def test_NAT09_invalid_recipient(self, engine, bad):
        with pytest.raises(InvalidRecipientError):
            engine.send_equal(PAYER, [recipients(1)[0], bad], TENTH)

    def test_NAT10_zero_per_recipient(self, engine):
        with pytest.raises(ZeroPerRecipientError):
            engine.send_equal(PAYER, recipients(3), 2)

    def test_NAT11_funding_must_exceed_fee(self, fee_engine):
        with pytest.raises(InsufficientFundingError):
            fee_engine.send_equal(PAYER, recipients(1), FEE)

    def test_zero_value_rejected(self, engine):
        with pytest.raises(InsufficientFundingError):
            engine.send_equal(PAYER, recipients(1), 0)


# ─────────────────────────────────────────────────────────────
# Delivery
# ─────────────────────────────────────────────────────────────

class TestDelivery:

    def test_NAT12_reverting_recipient_is_isolated(self, world, engine):
        rs = recipients(3)
        world.set_hook(rs[1], reverting_hook)

        receipt = engine.send_equal(PAYER, rs, 3 * 10 ** 15)

        assert world.balance_of(rs[0]) == 10 ** 15
        assert world.balance_of(rs[1]) == 0
        assert world.balance_of(rs[2]) == 10 ** 15
        assert engine.get_balance() == 10 ** 15

        assert [o.recipient for o in receipt.failed] == [rs[1]]
        assert receipt.delivered == 2 * 10 ** 15
        [failure] = receipt.events_named(EventName.TRANSFER_FAILED)
        assert failure.args == {"recipient": rs[1], "amount": 10 ** 15}

        # totalAmount counts the failed payout too
        [summary] = receipt.events_named(EventName.MULTI_TRANSFER)
        assert summary.args["totalAmount"] == 3 * 10 ** 15

    def test_NAT13_recipient_logs_within_stipend(self, world, engine):
        rs = recipients(2)
        world.set_hook(rs[0], logging_hook)

        receipt = engine.send_equal(PAYER, rs, 2000)

        assert receipt.failed == []
        [log] = receipt.events_named(EventName.HOOK_LOG)
        assert log.emitter == rs[0]
        assert log.args == {"received": 1000}

    def test_NAT14_storage_write_exceeds_stipend(self, world, engine):
        rs = recipients(2)
        world.set_hook(rs[0], storing_hook)

        receipt = engine.send_equal(PAYER, rs, 2000)

        assert [o.recipient for o in receipt.failed] == [rs[0]]
        assert world.storage_get(rs[0], "last_payment") is None
        assert world.balance_of(rs[0]) == 0

    def test_NAT15_fee_collection_failure_recorded(self, world, fee_engine):
        world.set_hook(COLLECTOR, reverting_hook)
        rs = recipients(2)

        receipt = fee_engine.send_equal(PAYER, rs, TENTH)

        assert not receipt.fee_collected
        assert receipt.failed == []
        assert fee_engine.get_balance() == FEE
        [failure] = receipt.events_named(EventName.TRANSFER_FAILED)
        assert failure.args == {"recipient": COLLECTOR, "amount": FEE}

    def test_NAT16_refund_failure_aborts(self, world, engine):
        rs = recipients(3)
        tracked = rs + [PAYER, engine.address]
        before = _snapshot_balances(world, tracked)
        log_len = len(world.event_log)
        world.set_hook(PAYER, reverting_hook)

        with pytest.raises(RefundFailedError):
            engine.send_equal(PAYER, rs, TENTH)

        assert _snapshot_balances(world, tracked) == before
        assert len(world.event_log) == log_len

    def test_no_refund_needed_skips_payer_code(self, world, engine):
        world.set_hook(PAYER, reverting_hook)
        receipt = engine.send_equal(PAYER, recipients(3), 3000)
        assert receipt.refund == 0

    def test_events_committed_in_emission_order(self, world, engine):
        rs = recipients(2)
        world.set_hook(rs[0], reverting_hook)
        receipt = engine.send_equal(PAYER, rs, 2000)

        assert [e.name for e in receipt.events] == [
            EventName.TRANSFER_FAILED,
            EventName.MULTI_TRANSFER,
        ]
        assert receipt.events[-1] is world.event_log.last

    def test_NAT17_any_error_in_recipient_code_is_a_failed_payout(self, world, engine):
        rs = recipients(3)
        world.set_hook(rs[1], crashing_hook)

        receipt = engine.send_equal(PAYER, rs, 3000)

        assert [o.recipient for o in receipt.failed] == [rs[1]]
        assert world.balance_of(rs[0]) == 1000
        assert world.balance_of(rs[1]) == 0
        assert world.balance_of(rs[2]) == 1000
        assert engine.get_balance() == 1000

    def test_NAT18_unencodable_recipient_log_fails_alone(self, world, engine):
        rs = recipients(2)
        world.set_hook(rs[0], float_logging_hook)
        payer_before = world.balance_of(PAYER)

        receipt = engine.send_equal(PAYER, rs, 2000)

        assert [o.recipient for o in receipt.failed] == [rs[0]]
        assert receipt.events_named(EventName.HOOK_LOG) == []
        assert world.balance_of(rs[0]) == 0
        assert world.balance_of(rs[1]) == 1000
        assert engine.get_balance() == 1000
        assert world.balance_of(PAYER) == payer_before - 2000
        assert world.event_log.verify()

        world.set_hook(rs[0], None)
        follow_up = engine.send_equal(PAYER, rs, 2000)
        assert follow_up.failed == []
        assert follow_up.events[-1] is world.event_log.last
        assert world.event_log.verify()


# ─────────────────────────────────────────────────────────────
# Quotes
# ─────────────────────────────────────────────────────────────

class TestQuotes:

    def test_quote_equal_matches_send(self, fee_engine):
        quote = fee_engine.quote_equal(3, TENTH)
        receipt = fee_engine.send_equal(PAYER, recipients(3), TENTH)
        assert quote.per_recipient == receipt.per_recipient
        assert quote.remainder == receipt.refund
        assert quote.fee == FEE

    def test_quote_different_includes_fee(self, fee_engine):
        assert fee_engine.quote_different([1, 2, 3]) == 6 + FEE

    def test_quote_bounds(self, engine):
        with pytest.raises(EmptyBatchError):
            engine.quote_equal(0, TENTH)
        with pytest.raises(BatchTooLargeError):
            engine.quote_equal(201, TENTH)
        with pytest.raises(InvalidAmountError):
            engine.quote_different([1, 0])
