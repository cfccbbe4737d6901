"""
MultiSend Exception Hierarchy

All exceptions inherit from MultiSendError for easy catching.

Every error raised out of a MultiSendEngine operation is fatal: the call
is aborted and the world state is restored to what it was before the call.
Per-recipient payout failures are NOT errors; they are recorded as
TransferFailed / TokenTransferFailed events on a successful call.
"""


class MultiSendError(Exception):
    """Base exception for all MultiSend errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ── Batch validation ──────────────────────────────────────────

class BatchValidationError(MultiSendError):
    """Raised when a recipient/amount batch is malformed"""
    pass


class EmptyBatchError(BatchValidationError):
    """Raised when a batch has no recipients"""
    pass


class BatchTooLargeError(BatchValidationError):
    """Raised when a batch exceeds MAX_RECIPIENTS"""
    pass


class LengthMismatchError(BatchValidationError):
    """Raised when recipients and amounts differ in length"""
    pass


class InvalidRecipientError(BatchValidationError):
    """Raised when a recipient is the zero address or not an address"""
    pass


class InvalidAmountError(BatchValidationError):
    """Raised when an amount is zero, negative or not an integer"""
    pass


class InvalidTokenError(BatchValidationError):
    """Raised when a token address is not a registered token ledger"""
    pass


class ZeroAddressError(MultiSendError):
    """Raised when a configuration address is the zero address"""
    pass


# ── Funding ───────────────────────────────────────────────────

class FundingError(MultiSendError):
    """Raised when supplied value cannot cover a batch"""
    pass


class InsufficientFundingError(FundingError):
    """Raised when supplied value does not cover amounts plus fee"""
    pass


class ZeroPerRecipientError(FundingError):
    """Raised when an equal split floors to zero per recipient"""
    pass


# ── Access control / guard ────────────────────────────────────

class AccessControlError(MultiSendError):
    """Raised when a caller may not perform an operation"""
    pass


class NotOwnerError(AccessControlError):
    """Raised when a non-owner invokes an owner-only operation"""
    pass


class ReentrantCallError(AccessControlError):
    """Raised when a guarded operation is entered while another is running"""
    pass


# ── Transfers ─────────────────────────────────────────────────

class TransferError(MultiSendError):
    """Raised when a value or token movement fails fatally"""
    pass


class TokenPullFailedError(TransferError):
    """Raised when the batch total cannot be pulled from the caller"""
    pass


class RefundFailedError(TransferError):
    """Raised when excess value cannot be returned to the caller"""
    pass


class TokenLedgerError(TransferError):
    """Raised when a token ledger is misused or unreachable"""
    pass


# ── Withdrawal ────────────────────────────────────────────────

class WithdrawalError(MultiSendError):
    """Raised when an owner withdrawal cannot be performed"""
    pass


class NoFundsError(WithdrawalError):
    """Raised when there is nothing to withdraw"""
    pass


class InsufficientBalanceError(WithdrawalError):
    """Raised when a withdrawal exceeds the held balance"""
    pass


class WithdrawalTransferFailedError(WithdrawalError):
    """Raised when the transfer to the owner fails"""
    pass


# ── Fees ──────────────────────────────────────────────────────

class FeeError(MultiSendError):
    """Raised when fee configuration is invalid"""
    pass


class FeeTooHighError(FeeError):
    """Raised when a flat fee exceeds FEE_CEILING"""
    pass


# ── Execution platform ────────────────────────────────────────
# Not MultiSendErrors: these describe what happens inside a recipient's
# code during a value transfer, and only ever turn a transfer into a
# failed one.

class ExecutionReverted(Exception):
    """Raised by recipient code to reject an incoming transfer"""
    pass


class OutOfGasError(ExecutionReverted):
    """Raised when recipient code exceeds the transfer's gas allowance"""

    def __init__(self, used: int, limit: int, operation: str = ""):
        super().__init__(
            f"Out of gas: {used}/{limit}"
            + (f" (operation: {operation})" if operation else "")
        )
        self.used = used
        self.limit = limit
        self.operation = operation
