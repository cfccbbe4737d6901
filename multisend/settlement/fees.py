"""
Flat protocol fee.

One fee per call, independent of batch size or value. Disabled fees cost
nothing, but the configured amount is kept so re-enabling restores it.
"""

from multisend.core.exceptions import FeeTooHighError, InvalidAmountError
from multisend.core.models import FEE_CEILING, EngineConfig
from multisend.settlement.batch import is_amount


def validate_flat_fee(amount: int) -> int:
    if not is_amount(amount) or amount < 0:
        raise InvalidAmountError("Fee must be a non-negative integer", {"fee": amount})
    if amount > FEE_CEILING:
        raise FeeTooHighError("Fee exceeds ceiling",
                              {"fee": amount, "ceiling": FEE_CEILING})
    return amount


def current_fee(config: EngineConfig) -> int:
    return config.flat_fee if config.fees_enabled else 0
