"""
Gas metering for code that runs while receiving value.

Costs follow the EVM schedule closely enough for the one property that
matters here: a transfer's stipend pays for emitting a log, but not for a
storage write or any real work.
"""

from typing import Optional

from multisend.core.exceptions import OutOfGasError


# Allowance forwarded with every batch payout.
GAS_STIPEND = 2300

LOG_BASE_GAS  = 375
LOG_TOPIC_GAS = 375
LOG_DATA_GAS  = 8     # per byte of log data
SSTORE_GAS    = 20000
CALL_GAS      = 700
# Extra cost of a call that carries value; more than a whole stipend.
CALL_VALUE_GAS = 9000


def log_cost(topics: int = 1, data_bytes: int = 0) -> int:
    return LOG_BASE_GAS + LOG_TOPIC_GAS * topics + LOG_DATA_GAS * data_bytes


class GasMeter:
    """
    Charges gas against a fixed limit.

    limit=None means unbounded (all remaining gas forwarded), used for
    transfers to the owner.
    """

    def __init__(self, limit: Optional[int]):
        self.limit = limit
        self.used = 0

    def charge(self, amount: int, operation: str = "") -> None:
        self.used += amount
        if self.limit is not None and self.used > self.limit:
            raise OutOfGasError(self.used, self.limit, operation)

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)

    def __repr__(self) -> str:
        return f"GasMeter(used={self.used}, limit={self.limit})"
