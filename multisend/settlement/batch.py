"""
Batch validation and split arithmetic.

Pure functions: nothing here touches balances. The engine validates a
whole batch before moving any value, so a malformed batch aborts before
the fee is collected or a single recipient is paid.
"""

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from multisend.core.exceptions import (
    BatchTooLargeError,
    EmptyBatchError,
    InsufficientFundingError,
    InvalidAmountError,
    InvalidRecipientError,
    LengthMismatchError,
    ZeroPerRecipientError,
)
from multisend.core.models import MAX_RECIPIENTS, is_zero_address, normalize_address


@dataclass(frozen=True)
class EqualSplit:
    """
    Result of dividing funding equally after the fee.

    funding - fee == distributed + remainder
    distributed   == count * per_recipient
    """
    per_recipient: int
    distributed:   int
    remainder:     int
    fee:           int
    count:         int


def is_amount(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_recipients(recipients: Sequence[str]) -> Tuple[str, ...]:
    """
    Check batch size and every recipient address.

    Returns the recipients in checksum form, order preserved.
    Duplicates are allowed and paid once per occurrence.
    """
    if recipients is None or len(recipients) == 0:
        raise EmptyBatchError("No recipients provided")
    if len(recipients) > MAX_RECIPIENTS:
        raise BatchTooLargeError(
            f"Maximum {MAX_RECIPIENTS} recipients allowed",
            {"count": len(recipients)},
        )

    normalized = []
    for i, recipient in enumerate(recipients):
        try:
            address = normalize_address(recipient)
        except ValueError:
            raise InvalidRecipientError("Recipient is not an address",
                                        {"index": i, "recipient": recipient})
        if is_zero_address(address):
            raise InvalidRecipientError("Recipient is the zero address", {"index": i})
        normalized.append(address)
    return tuple(normalized)


def validate_amounts(recipients: Sequence[str], amounts: Sequence[int]) -> Tuple[int, ...]:
    """Check amounts line up with recipients and are all positive ints."""
    if amounts is None or len(amounts) != len(recipients):
        raise LengthMismatchError(
            "Recipients and amounts length mismatch",
            {"recipients": len(recipients), "amounts": 0 if amounts is None else len(amounts)},
        )
    for i, amount in enumerate(amounts):
        if not is_amount(amount) or amount <= 0:
            raise InvalidAmountError("Amount must be a positive integer",
                                     {"index": i, "amount": amount})
    return tuple(amounts)


def validate_value(value: Any, name: str = "value") -> int:
    """Attached value and stated totals: non-negative ints."""
    if not is_amount(value) or value < 0:
        raise InvalidAmountError(f"{name} must be a non-negative integer", {name: value})
    return value


def split_equal(funding: int, fee: int, count: int) -> EqualSplit:
    """
    Divide funding - fee equally between count recipients, flooring.

    The floor remainder is reported, never distributed.
    """
    if count <= 0:
        raise EmptyBatchError("No recipients provided")
    if funding <= fee:
        raise InsufficientFundingError(
            "Funding must exceed the fee",
            {"funding": funding, "fee": fee},
        )
    per_recipient = (funding - fee) // count
    if per_recipient == 0:
        raise ZeroPerRecipientError(
            "Amount per recipient rounds down to zero",
            {"funding": funding, "fee": fee, "count": count},
        )
    distributed = per_recipient * count
    return EqualSplit(
        per_recipient= per_recipient,
        distributed=   distributed,
        remainder=     funding - fee - distributed,
        fee=           fee,
        count=         count,
    )


def required_funding(amounts: Sequence[int], fee: int) -> int:
    return sum(amounts) + fee
