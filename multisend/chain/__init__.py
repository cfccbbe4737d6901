"""
MultiSend execution platform.

World state, value transfers with gas-bounded recipient code, and
call-level atomicity for the settlement engine.
"""

from multisend.chain.gas import GAS_STIPEND, GasMeter
from multisend.chain.world import ReceiveContext, Transaction, WorldState

__all__ = [
    "GAS_STIPEND",
    "GasMeter",
    "ReceiveContext",
    "Transaction",
    "WorldState",
]
